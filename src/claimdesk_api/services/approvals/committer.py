"""Approval committer: approve and reject a claim against the claims API."""

from __future__ import annotations

import asyncio
import inspect
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Iterable, Protocol

from claimdesk_api.core.logging import approval_logger
from claimdesk_api.domain.claims import Claim, RedemptionType, item_kind_of
from claimdesk_api.observability.approvals import ApprovalObservabilityStore, get_approval_store
from claimdesk_api.observability.tracing import get_approval_tracer
from claimdesk_api.schemas.claims import ApprovalGrant, ApprovalPayload, PreviewResult, RejectPayload

from .errors import ActionInProgressError, ApprovalNotAllowedError, SessionClosedError
from .grants import GrantLine, GrantSelectionModel
from .preview import PreviewCoordinator, PreviewState

CompletionCallback = Callable[[str], Awaitable[None] | None]

_CENTS = Decimal("0.01")


class CommitGateway(Protocol):
    async def approve(self, claim_id: str, payload: ApprovalPayload) -> None:
        """Record the approval upstream."""

    async def reject(self, claim_id: str, payload: RejectPayload) -> None:
        """Record the rejection upstream."""


def compute_redemption_value(redemption_type: RedemptionType, result: PreviewResult | None) -> str:
    """Value sent with an approval.

    GRANT claims carry no monetary value. Discount claims send the previewed
    applied value to two decimals, or ``"0"`` when the preview has none, even
    if it reported an applied percent.
    """

    if redemption_type is RedemptionType.GRANT:
        return ""
    value = result.applied.value if result is not None else None
    if value is None:
        return "0"
    return str(value.quantize(_CENTS, rounding=ROUND_HALF_UP))


def normalize_grant_lines(lines: Iterable[GrantLine]) -> list[ApprovalGrant]:
    return [
        ApprovalGrant(item_type=item_kind_of(line.ref), id=line.ref.id, quantity=line.qty)
        for line in lines
    ]


class ApprovalCommitter:
    """Commits approve and reject actions for one session.

    Approve and reject hold separate locks. A failed commit propagates to the
    caller and leaves every model untouched; a successful one fires
    ``on_complete`` with the claim id. Replies that arrive after the session
    closed are dropped.
    """

    def __init__(
        self,
        claim: Claim,
        grants: GrantSelectionModel,
        preview: PreviewCoordinator,
        gateway: CommitGateway,
        *,
        on_complete: CompletionCallback | None = None,
        is_active: Callable[[], bool] = lambda: True,
        session_id: str | None = None,
        store: ApprovalObservabilityStore | None = None,
    ) -> None:
        self._claim = claim
        self._grants = grants
        self._preview = preview
        self._gateway = gateway
        self._on_complete = on_complete
        self._is_active = is_active
        self._store = store or get_approval_store()
        self._approve_lock = asyncio.Lock()
        self._reject_lock = asyncio.Lock()
        self.completed: str | None = None
        self._log = approval_logger(claim_id=claim.id, session_id=session_id)

    @property
    def approving(self) -> bool:
        return self._approve_lock.locked()

    @property
    def rejecting(self) -> bool:
        return self._reject_lock.locked()

    @property
    def busy(self) -> bool:
        return self.approving or self.rejecting

    def approval_blocker(self) -> str | None:
        """Reason approval is disabled, or ``None`` when it may proceed."""

        if self.approving:
            return "An approval is already in progress"
        state = self._preview.state
        if state is PreviewState.STALE:
            return "Inputs changed since the last preview; preview again before approving"
        result = self._preview.fresh_result
        if result is None:
            return "Request a preview before approving"
        if not result.can_approve:
            return "The preview does not allow this claim to be approved"
        return None

    @property
    def can_approve(self) -> bool:
        return self.approval_blocker() is None

    def redemption_value(self) -> str:
        return compute_redemption_value(self._claim.redemption_type, self._preview.last_result)

    def build_approval_payload(self, note: str | None = None) -> ApprovalPayload:
        grants = normalize_grant_lines(self._grants.lines)
        cleaned_note = note.strip() if note else ""
        return ApprovalPayload(
            redemption_value=self.redemption_value(),
            note=cleaned_note or None,
            grants=grants or None,
        )

    async def approve(self, note: str | None = None) -> bool:
        """Approve the claim; returns ``False`` when the reply was discarded."""

        if not self._is_active():
            raise SessionClosedError("Approval session is closed")
        if self.approving:
            raise ActionInProgressError("approve")
        blocker = self.approval_blocker()
        if blocker is not None:
            raise ApprovalNotAllowedError(blocker)

        async with self._approve_lock:
            payload = self.build_approval_payload(note)
            self._log.info(
                "Submitting claim approval",
                redemption_value=payload.redemption_value,
                grant_count=len(payload.grants or []),
            )
            with get_approval_tracer().start_as_current_span("claims.approve") as span:
                span.set_attribute("claim.id", self._claim.id)
                try:
                    await self._gateway.approve(self._claim.id, payload)
                except Exception as exc:
                    span.record_exception(exc)
                    self._store.record_approval_event("failed")
                    self._log.warning("Claim approval failed", error=str(exc))
                    raise

            if not self._is_active():
                self._store.record_approval_event("discarded")
                self._log.info("Discarding approval reply for closed session")
                return False
            self._store.record_approval_event("succeeded")
            self.completed = "approved"
            self._log.info("Claim approved")
        await self._complete()
        return True

    async def reject(self, reason: str | None = None) -> bool:
        """Reject the claim; returns ``False`` when the reply was discarded."""

        if not self._is_active():
            raise SessionClosedError("Approval session is closed")
        if self.rejecting:
            raise ActionInProgressError("reject")

        async with self._reject_lock:
            cleaned_reason = reason.strip() if reason else ""
            payload = RejectPayload(reason=cleaned_reason or None)
            with get_approval_tracer().start_as_current_span("claims.reject") as span:
                span.set_attribute("claim.id", self._claim.id)
                try:
                    await self._gateway.reject(self._claim.id, payload)
                except Exception as exc:
                    span.record_exception(exc)
                    self._store.record_rejection_event("failed")
                    self._log.warning("Claim rejection failed", error=str(exc))
                    raise

            if not self._is_active():
                self._store.record_rejection_event("discarded")
                self._log.info("Discarding rejection reply for closed session")
                return False
            self._store.record_rejection_event("succeeded")
            self.completed = "rejected"
            self._log.info("Claim rejected", has_reason=payload.reason is not None)
        await self._complete()
        return True

    async def _complete(self) -> None:
        if self._on_complete is None:
            return
        outcome = self._on_complete(self._claim.id)
        if inspect.isawaitable(outcome):
            await outcome


__all__ = [
    "ApprovalCommitter",
    "CommitGateway",
    "CompletionCallback",
    "compute_redemption_value",
    "normalize_grant_lines",
]
