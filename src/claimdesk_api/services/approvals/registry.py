"""In-memory lookup of open approval sessions for the console API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from loguru import logger

from claimdesk_api.domain.claims import Claim, ClaimPolicy
from claimdesk_api.observability.approvals import ApprovalObservabilityStore, get_approval_store
from claimdesk_api.services.credentials import StaticTokenProvider

from .committer import CompletionCallback
from .errors import PolicyGateClosedError, SessionNotFoundError
from .item_search import PickerFetchers
from .policy_gate import PolicyGateDecision, evaluate_policy_gate
from .session import ApprovalGateway, ApprovalSession


class ApprovalSessionRegistry:
    """Tracks at most one open session per claim.

    The registry only maps ids to sessions; each session still owns its
    models. Opening a claim that already has a session closes the old one,
    so a reopened flow always starts from fresh state.
    """

    def __init__(
        self,
        *,
        max_sessions: int = 500,
        idle_seconds: int = 30 * 60,
        store: ApprovalObservabilityStore | None = None,
    ) -> None:
        if max_sessions < 1:
            raise ValueError("max_sessions must be positive")
        self._max_sessions = max_sessions
        self._idle = timedelta(seconds=idle_seconds)
        self._store = store or get_approval_store()
        self._sessions: dict[str, ApprovalSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def is_claim_busy(self, claim_id: str) -> bool:
        return any(
            session.claim.id == claim_id and session.committer.busy
            for session in self._sessions.values()
        )

    def gate_for(
        self,
        claim: Claim,
        *,
        claim_policy: ClaimPolicy,
        can_approve: bool,
        disabled_reason: str | None = None,
        now: datetime | None = None,
    ) -> PolicyGateDecision:
        return evaluate_policy_gate(
            can_approve=can_approve,
            claim_policy=claim_policy,
            expires_at=claim.expires_at,
            busy=self.is_claim_busy(claim.id),
            now=now,
            disabled_reason=disabled_reason,
        )

    def open(
        self,
        claim: Claim,
        gateway: ApprovalGateway,
        *,
        decision: PolicyGateDecision,
        fetchers: PickerFetchers | None = None,
        on_complete: CompletionCallback | None = None,
        debounce_seconds: float = 0.2,
        credentials: StaticTokenProvider | None = None,
    ) -> ApprovalSession:
        if not decision.enabled:
            self._store.record_session_event("gate_denied")
            logger.info("Approval gate closed", claim_id=claim.id, reason=decision.reason)
            raise PolicyGateClosedError(decision.reason)

        self.prune_idle()
        for existing in [s for s in self._sessions.values() if s.claim.id == claim.id]:
            self._discard(existing)
        while len(self._sessions) >= self._max_sessions:
            oldest = min(self._sessions.values(), key=lambda s: s.last_activity_at)
            logger.warning("Evicting approval session at capacity", session_id=oldest.id, claim_id=oldest.claim.id)
            self._discard(oldest)

        session = ApprovalSession(
            claim,
            gateway,
            fetchers=fetchers,
            on_complete=on_complete,
            debounce_seconds=debounce_seconds,
            credentials=credentials,
            store=self._store,
        )
        self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> ApprovalSession:
        session = self._sessions.get(session_id)
        if session is None or not session.is_active():
            self._sessions.pop(session_id, None)
            raise SessionNotFoundError(f"Approval session {session_id} not found")
        return session

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        return session.close()

    def close_all(self) -> int:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        return sum(1 for session in sessions if session.close())

    def prune_idle(self, now: datetime | None = None) -> int:
        current = now or datetime.now(timezone.utc)
        expired = [
            session
            for session in self._sessions.values()
            if not session.is_active() or (current - session.last_activity_at > self._idle and not session.busy)
        ]
        for session in expired:
            self._discard(session)
        if expired:
            logger.info("Pruned approval sessions", count=len(expired))
        return len(expired)

    def _discard(self, session: ApprovalSession) -> None:
        self._sessions.pop(session.id, None)
        session.close()


__all__ = ["ApprovalSessionRegistry"]
