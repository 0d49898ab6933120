"""Approval session: one exclusive, disposable approval flow for a claim."""

from __future__ import annotations

import inspect
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol
from uuid import uuid4

from claimdesk_api.core.logging import approval_logger
from claimdesk_api.domain.claims import CartItem, Claim, ItemRef, PickerItem
from claimdesk_api.observability.approvals import ApprovalObservabilityStore, get_approval_store
from claimdesk_api.schemas.claims import ApprovalPayload, PreviewRequest, PreviewResult, RejectPayload
from claimdesk_api.services.credentials import StaticTokenProvider

from .cart import CartModel, CartRow
from .committer import ApprovalCommitter, CompletionCallback
from .errors import GrantSelectionLockedError, SessionClosedError
from .grants import GrantLine, GrantSelectionModel
from .item_search import DebouncedItemSearch, PickerFetchers, PickerKind
from .preview import PreviewCoordinator, PreviewPhase
from .validation import ValidationReport


class ApprovalGateway(Protocol):
    async def preview(self, claim_id: str, request: PreviewRequest) -> PreviewResult:
        ...

    async def approve(self, claim_id: str, payload: ApprovalPayload) -> None:
        ...

    async def reject(self, claim_id: str, payload: RejectPayload) -> None:
        ...


class ApprovalSession:
    """Owns the cart, grant selection, note and preview state for one claim.

    Everything is built fresh from ``claim`` when the session opens and is
    discarded when it closes; reopening a claim means a new session. Every
    mutation bumps the preview revision so an earlier preview turns stale.
    """

    def __init__(
        self,
        claim: Claim,
        gateway: ApprovalGateway,
        *,
        fetchers: PickerFetchers | None = None,
        on_complete: CompletionCallback | None = None,
        session_id: str | None = None,
        debounce_seconds: float = 0.2,
        credentials: StaticTokenProvider | None = None,
        store: ApprovalObservabilityStore | None = None,
    ) -> None:
        self.id = session_id or uuid4().hex
        self.claim = claim
        self.credentials = credentials
        self._active = True
        self._on_complete = on_complete
        self._store = store or get_approval_store()
        self._log = approval_logger(claim_id=claim.id, session_id=self.id)
        self.opened_at = datetime.now(timezone.utc)
        self.last_activity_at = self.opened_at

        self.cart = CartModel(
            claim.scope_kind,
            bill_total=claim.default_bill_total,
            on_change=self._inputs_changed,
        )
        self.grants = GrantSelectionModel(
            claim.approval_pick_limit,
            eligible_items=claim.eligible_grant_items,
            existing_grants=claim.existing_grants,
            on_change=self._inputs_changed,
        )
        self._note = ""
        self.preview = PreviewCoordinator(
            claim,
            self.cart,
            self.grants,
            gateway,
            is_active=self.is_active,
            session_id=self.id,
            store=self._store,
        )
        self.committer = ApprovalCommitter(
            claim,
            self.grants,
            self.preview,
            gateway,
            on_complete=self._complete,
            is_active=self.is_active,
            session_id=self.id,
            store=self._store,
        )
        self._fetchers = (fetchers or PickerFetchers()).restricted_to(self.grants.eligibility)
        self._debounce_seconds = debounce_seconds
        self._searches: dict[PickerKind, DebouncedItemSearch] = {}

        self._store.record_session_event("opened")
        self._log.info(
            "Approval session opened",
            redemption_type=claim.redemption_type.value,
            scope_kind=claim.scope_kind.value,
            grant_mode=self.grants.mode.value,
            seeded_grants=len(self.grants.lines),
        )

    def is_active(self) -> bool:
        return self._active

    @property
    def note(self) -> str:
        return self._note

    @property
    def busy(self) -> bool:
        return self.preview.busy or self.committer.busy

    def validation(self) -> ValidationReport:
        return self.preview.validation()

    def touch(self) -> None:
        self.last_activity_at = datetime.now(timezone.utc)

    def _ensure_open(self) -> None:
        if not self._active:
            raise SessionClosedError("Approval session is closed")
        self.touch()

    def _inputs_changed(self, reason: str) -> None:
        self.preview.mark_inputs_changed(reason)

    # Cart

    def add_cart_item(self, item: CartItem) -> CartRow:
        self._ensure_open()
        return self.cart.add_or_increment_item(item)

    def set_row_qty(self, row_id: str, qty: int) -> CartRow:
        self._ensure_open()
        return self.cart.set_row_qty(row_id, qty)

    def set_row_unit_price(self, row_id: str, price: Decimal | None) -> CartRow:
        self._ensure_open()
        return self.cart.set_row_unit_price(row_id, price)

    def update_cart_row(self, row_id: str, **changes) -> CartRow:
        self._ensure_open()
        return self.cart.update_row(row_id, **changes)

    def remove_row(self, row_id: str) -> None:
        self._ensure_open()
        self.cart.remove_row(row_id)

    def set_bill_total(self, value: Decimal | None) -> None:
        self._ensure_open()
        self.cart.set_bill_total(value)

    def set_note(self, value: str | None) -> None:
        self._ensure_open()
        self._note = value or ""
        self._inputs_changed("note")

    # Grants

    def add_grant(self, ref: ItemRef, *, default_qty: int | None = None) -> bool:
        self._ensure_open()
        return self.grants.add(ref, default_qty=default_qty)

    def set_grant_qty(self, ref: ItemRef, qty: int) -> GrantLine:
        self._ensure_open()
        return self.grants.set_qty(ref, qty)

    def remove_grant(self, ref: ItemRef) -> bool:
        self._ensure_open()
        return self.grants.remove(ref)

    # Search

    async def search(self, picker: PickerKind, query: str) -> list[PickerItem] | None:
        self._ensure_open()
        if picker.is_grant and not self.grants.needs_picker:
            raise GrantSelectionLockedError("This claim does not take grant selections")
        search = self._searches.get(picker)
        if search is None:
            search = DebouncedItemSearch(self._fetchers.for_kind(picker), debounce_seconds=self._debounce_seconds)
            self._searches[picker] = search
        return await search.search(query)

    # Actions

    async def request_preview(self) -> PreviewPhase:
        self._ensure_open()
        return await self.preview.request()

    async def approve(self) -> bool:
        self._ensure_open()
        return await self.committer.approve(self._note)

    async def reject(self, reason: str | None = None) -> bool:
        self._ensure_open()
        return await self.committer.reject(reason)

    async def _complete(self, claim_id: str) -> None:
        try:
            if self._on_complete is not None:
                outcome = self._on_complete(claim_id)
                if inspect.isawaitable(outcome):
                    await outcome
        finally:
            self.close()

    def close(self) -> bool:
        if not self._active:
            return False
        self._active = False
        self._store.record_session_event("closed")
        self._log.info("Approval session closed", completed_action=self.committer.completed)
        return True


__all__ = ["ApprovalGateway", "ApprovalSession"]
