"""Exceptions raised by the claim approval engine."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .validation import ValidationReport


class ApprovalFlowError(RuntimeError):
    """Base exception for approval flow failures."""


class CartRowNotFoundError(ApprovalFlowError):
    """Raised when mutating a cart row that does not exist."""

    def __init__(self, row_id: str) -> None:
        super().__init__(f"Cart row {row_id} not found")
        self.row_id = row_id


class InvalidQuantityError(ApprovalFlowError):
    """Raised for negative quantities, prices or bill totals."""


class GrantSelectionLockedError(ApprovalFlowError):
    """Raised when editing grants on a claim whose grants are read-only."""


class GrantLineNotFoundError(ApprovalFlowError):
    """Raised when changing a grant line that is not selected."""


class PreviewInputsInvalidError(ApprovalFlowError):
    """Raised instead of calling the pricing service when inputs fail validation."""

    def __init__(self, report: "ValidationReport") -> None:
        messages = "; ".join(issue.message for issue in report.issues) or "Inputs are not valid"
        super().__init__(messages)
        self.report = report


class ActionInProgressError(ApprovalFlowError):
    """Raised when an action is triggered while the same action is outstanding."""

    def __init__(self, action: str) -> None:
        super().__init__(f"A {action} request is already in progress")
        self.action = action


class ApprovalNotAllowedError(ApprovalFlowError):
    """Raised when approving without a fresh, approvable preview."""


class SessionClosedError(ApprovalFlowError):
    """Raised when acting on an approval session after it was closed."""


class SessionNotFoundError(ApprovalFlowError):
    """Raised when an approval session id is unknown to the registry."""


class PolicyGateClosedError(ApprovalFlowError):
    """Raised when the policy gate refuses to open an approval flow."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "ActionInProgressError",
    "ApprovalFlowError",
    "ApprovalNotAllowedError",
    "CartRowNotFoundError",
    "GrantLineNotFoundError",
    "GrantSelectionLockedError",
    "InvalidQuantityError",
    "PolicyGateClosedError",
    "PreviewInputsInvalidError",
    "SessionClosedError",
    "SessionNotFoundError",
]
