"""Claim approval engine exports."""

from .cart import CartModel, CartRow  # noqa: F401
from .committer import ApprovalCommitter, compute_redemption_value, normalize_grant_lines  # noqa: F401
from .errors import (  # noqa: F401
    ActionInProgressError,
    ApprovalFlowError,
    ApprovalNotAllowedError,
    CartRowNotFoundError,
    GrantLineNotFoundError,
    GrantSelectionLockedError,
    InvalidQuantityError,
    PolicyGateClosedError,
    PreviewInputsInvalidError,
    SessionClosedError,
    SessionNotFoundError,
)
from .grants import EligibilityList, GrantLine, GrantMode, GrantSelectionModel  # noqa: F401
from .item_search import (  # noqa: F401
    DebouncedItemSearch,
    PickerFetchers,
    PickerKind,
    make_local_fetcher,
    picker_fetchers_from_offer,
)
from .policy_gate import PolicyGateDecision, evaluate_policy_gate  # noqa: F401
from .preview import (  # noqa: F401
    NoPreview,
    PreviewCoordinator,
    PreviewFailed,
    PreviewReady,
    PreviewStale,
    PreviewState,
    Previewing,
    build_preview_request,
)
from .registry import ApprovalSessionRegistry  # noqa: F401
from .session import ApprovalSession  # noqa: F401
from .validation import ValidationIssue, ValidationReport, validate_inputs  # noqa: F401
