"""Preview coordinator: request lifecycle and staleness tracking for redemption previews."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ClassVar, Protocol, Union

from claimdesk_api.core.logging import approval_logger
from claimdesk_api.domain.claims import BundleRef, Claim, ProductRef, ScopeKind
from claimdesk_api.observability.approvals import ApprovalObservabilityStore, get_approval_store
from claimdesk_api.observability.tracing import get_approval_tracer
from claimdesk_api.schemas.claims import (
    PreviewCartEntry,
    PreviewGrantEntry,
    PreviewRequest,
    PreviewResult,
)
from claimdesk_api.services.claims_client import ClaimsApiError
from claimdesk_api.services.credentials import NotAuthenticatedError

from .cart import CartModel, CartRow
from .errors import ActionInProgressError, PreviewInputsInvalidError, SessionClosedError
from .grants import GrantSelectionModel
from .validation import ValidationReport, validate_inputs


class PreviewState(str, Enum):
    NO_PREVIEW = "NO_PREVIEW"
    PREVIEWING = "PREVIEWING"
    READY = "READY"
    STALE = "STALE"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class NoPreview:
    state: ClassVar[PreviewState] = PreviewState.NO_PREVIEW


@dataclass(frozen=True, slots=True)
class Previewing:
    state: ClassVar[PreviewState] = PreviewState.PREVIEWING
    previous: PreviewResult | None = None


@dataclass(frozen=True, slots=True)
class PreviewReady:
    state: ClassVar[PreviewState] = PreviewState.READY
    result: PreviewResult


@dataclass(frozen=True, slots=True)
class PreviewStale:
    state: ClassVar[PreviewState] = PreviewState.STALE
    result: PreviewResult


@dataclass(frozen=True, slots=True)
class PreviewFailed:
    state: ClassVar[PreviewState] = PreviewState.FAILED
    message: str


PreviewPhase = Union[NoPreview, Previewing, PreviewReady, PreviewStale, PreviewFailed]


class PreviewGateway(Protocol):
    async def preview(self, claim_id: str, request: PreviewRequest) -> PreviewResult:
        """Ask the pricing service for a redemption preview."""


def _cart_entry(row: CartRow) -> PreviewCartEntry:
    unit_price = float(row.unit_price) if row.unit_price is not None else None
    ref = row.ref
    if isinstance(ref, ProductRef):
        return PreviewCartEntry(product_id=ref.id, qty=row.qty, unit_price=unit_price)
    if isinstance(ref, BundleRef):
        return PreviewCartEntry(bundle_id=ref.id, qty=row.qty, unit_price=unit_price)
    raise TypeError(f"Unsupported item reference {ref!r}")


def build_preview_request(claim: Claim, cart: CartModel, grants: GrantSelectionModel) -> PreviewRequest:
    """Translate the session inputs into the pricing service request.

    Only product grant lines are sent; bundle grants are carried by the
    approval payload alone.
    """

    bill_total = cart.bill_total
    cart_entries = None
    if claim.scope_kind is ScopeKind.LIST:
        cart_entries = [_cart_entry(row) for row in cart.rows]
    selected = [
        PreviewGrantEntry(product_id=line.ref.id, qty=line.qty)
        for line in grants.lines
        if isinstance(line.ref, ProductRef)
    ]
    return PreviewRequest(
        redemption_type=claim.redemption_type,
        bill_total=float(bill_total) if bill_total is not None and bill_total > 0 else None,
        cart=cart_entries,
        selected_grants=selected or None,
    )


class PreviewCoordinator:
    """Owns the preview state for one approval session.

    The coordinator tracks an input revision that the session bumps on every
    cart, grant, bill total or note mutation. A reply that comes back after
    the revision moved lands as ``PreviewStale`` so it can never gate an
    approval, and a reply that comes back after the session closed is
    dropped without touching state.
    """

    def __init__(
        self,
        claim: Claim,
        cart: CartModel,
        grants: GrantSelectionModel,
        gateway: PreviewGateway,
        *,
        is_active: Callable[[], bool] = lambda: True,
        session_id: str | None = None,
        store: ApprovalObservabilityStore | None = None,
    ) -> None:
        self._claim = claim
        self._cart = cart
        self._grants = grants
        self._gateway = gateway
        self._is_active = is_active
        self._store = store or get_approval_store()
        self._lock = asyncio.Lock()
        self._revision = 0
        self._phase: PreviewPhase = NoPreview()
        self._log = approval_logger(claim_id=claim.id, session_id=session_id)

    @property
    def phase(self) -> PreviewPhase:
        return self._phase

    @property
    def state(self) -> PreviewState:
        return self._phase.state

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def is_stale(self) -> bool:
        return isinstance(self._phase, PreviewStale)

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def last_result(self) -> PreviewResult | None:
        """Result shown to the operator, fresh or not."""

        phase = self._phase
        if isinstance(phase, (PreviewReady, PreviewStale)):
            return phase.result
        if isinstance(phase, Previewing):
            return phase.previous
        return None

    @property
    def fresh_result(self) -> PreviewResult | None:
        """Result that may gate an approval: only a ``PreviewReady`` one."""

        if isinstance(self._phase, PreviewReady):
            return self._phase.result
        return None

    def validation(self) -> ValidationReport:
        return validate_inputs(self._cart, self._grants)

    def mark_inputs_changed(self, reason: str) -> None:
        self._revision += 1
        if isinstance(self._phase, PreviewReady):
            self._phase = PreviewStale(self._phase.result)
            self._log.info("Claim preview marked stale", reason=reason, revision=self._revision)

    async def request(self) -> PreviewPhase:
        if not self._is_active():
            raise SessionClosedError("Approval session is closed")
        if self._lock.locked():
            raise ActionInProgressError("preview")

        report = self.validation()
        if not report.inputs_valid:
            self._store.record_preview_event("blocked_invalid")
            self._log.info(
                "Claim preview blocked by validation",
                issues=[issue.code for issue in report.issues],
            )
            raise PreviewInputsInvalidError(report)

        async with self._lock:
            self._store.record_preview_event("requested")
            revision = self._revision
            request = build_preview_request(self._claim, self._cart, self._grants)
            previous_phase = self._phase
            self._phase = Previewing(previous=self.last_result)
            self._log.info("Claim preview requested", revision=revision)

            with get_approval_tracer().start_as_current_span("claims.preview") as span:
                span.set_attribute("claim.id", self._claim.id)
                try:
                    result = await self._gateway.preview(self._claim.id, request)
                except (ClaimsApiError, NotAuthenticatedError) as exc:
                    span.record_exception(exc)
                    if not self._is_active():
                        self._store.record_preview_event("discarded")
                        self._log.info("Discarding preview failure for closed session")
                        return self._phase
                    self._phase = PreviewFailed(str(exc))
                    self._store.record_preview_event("failed")
                    self._log.warning("Claim preview failed", error=str(exc))
                    return self._phase
                except Exception:
                    if isinstance(previous_phase, PreviewReady) and revision != self._revision:
                        previous_phase = PreviewStale(previous_phase.result)
                    self._phase = previous_phase
                    raise

            if not self._is_active():
                self._store.record_preview_event("discarded")
                self._log.info("Discarding preview reply for closed session")
                return self._phase

            if revision != self._revision:
                self._phase = PreviewStale(result)
                self._store.record_preview_event("stale_on_arrival")
                self._log.info(
                    "Claim preview arrived stale",
                    requested_revision=revision,
                    current_revision=self._revision,
                )
            else:
                self._phase = PreviewReady(result)
                self._store.record_preview_event("ready")
                self._log.info("Claim preview ready", can_approve=result.can_approve)
            return self._phase


__all__ = [
    "NoPreview",
    "PreviewCoordinator",
    "PreviewFailed",
    "PreviewGateway",
    "PreviewPhase",
    "PreviewReady",
    "PreviewStale",
    "PreviewState",
    "Previewing",
    "build_preview_request",
]
