"""Outer gate deciding whether an approval flow may be opened at all."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from claimdesk_api.domain.claims import ClaimPolicy

IN_PERSON_POLICIES = frozenset({ClaimPolicy.MANUAL, ClaimPolicy.BOTH})

REASON_POLICY = "Only manual/BOTH claims can be approved in person"
REASON_EXPIRED = "This claim has expired"
REASON_NOT_PERMITTED = "You're not permitted to approve this claim"
REASON_BUSY = "Approving..."
REASON_ENABLED = "Approve this claim"


@dataclass(frozen=True, slots=True)
class PolicyGateDecision:
    enabled: bool
    reason: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def evaluate_policy_gate(
    *,
    can_approve: bool,
    claim_policy: ClaimPolicy,
    expires_at: datetime | None,
    busy: bool = False,
    now: datetime | None = None,
    disabled_reason: str | None = None,
) -> PolicyGateDecision:
    """Decide whether the approve entry point is enabled.

    This runs before a flow opens and never again inside it. Naive datetimes
    are read as UTC. ``disabled_reason`` replaces the computed reason
    whenever the caller supplies one.
    """

    current = _as_utc(now or datetime.now(timezone.utc))
    policy_ok = claim_policy in IN_PERSON_POLICIES
    not_expired = expires_at is None or current < _as_utc(expires_at)

    if not policy_ok:
        reason = REASON_POLICY
    elif not not_expired:
        reason = REASON_EXPIRED
    elif not can_approve:
        reason = REASON_NOT_PERMITTED
    elif busy:
        reason = REASON_BUSY
    else:
        return PolicyGateDecision(enabled=True, reason=disabled_reason or REASON_ENABLED)

    return PolicyGateDecision(enabled=False, reason=disabled_reason or reason)


__all__ = [
    "IN_PERSON_POLICIES",
    "PolicyGateDecision",
    "evaluate_policy_gate",
]
