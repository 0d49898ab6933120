from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from claimdesk_api.domain.claims import ClaimPolicy, ItemKind, PickerItem, item_kind_of
from claimdesk_api.schemas.claims import ClaimSnapshot, PreviewResult
from claimdesk_api.services.approvals import (
    ApprovalSession,
    GrantMode,
    PickerKind,
    PolicyGateDecision,
    PreviewFailed,
    PreviewState,
    ValidationReport,
)

# meta: schema: console-approvals


class ApprovalGateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    claim_id: str | None = Field(None, alias="claimId")
    claim_policy: ClaimPolicy = Field(..., alias="claimPolicy")
    can_approve: bool = Field(True, alias="canApprove")
    expires_at: datetime | None = Field(None, alias="expiresAt")
    disabled_reason: str | None = Field(None, alias="disabledReason")


class ApprovalGateResponse(BaseModel):
    enabled: bool
    reason: str

    @classmethod
    def from_decision(cls, decision: PolicyGateDecision) -> "ApprovalGateResponse":
        return cls(enabled=decision.enabled, reason=decision.reason)


class OpenApprovalSessionRequest(BaseModel):
    """Open an approval flow.

    ``claim`` may be supplied inline; otherwise it is fetched from the claims
    API with the operator's token. ``scopeItems`` and ``grantItems`` are offer
    snapshot entries (``{itemType, product|bundle, quantity?}``) used to back
    the item pickers.
    """

    model_config = ConfigDict(populate_by_name=True)

    claim_id: str = Field(..., alias="claimId", min_length=1)
    claim_policy: ClaimPolicy = Field(..., alias="claimPolicy")
    can_approve: bool = Field(True, alias="canApprove")
    disabled_reason: str | None = Field(None, alias="disabledReason")
    claim: ClaimSnapshot | None = None
    scope_items: list[dict[str, Any]] | None = Field(None, alias="scopeItems")
    grant_items: list[dict[str, Any]] | None = Field(None, alias="grantItems")


class AddCartItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_type: ItemKind = Field(..., alias="itemType")
    id: str = Field(..., min_length=1)
    title: str = ""
    subtitle: str | None = None
    image_url: str | None = Field(None, alias="imageUrl")


class UpdateCartRowRequest(BaseModel):
    """Partial row update; send ``unitPrice: null`` to clear a price."""

    model_config = ConfigDict(populate_by_name=True)

    qty: int | None = None
    unit_price: Decimal | None = Field(None, alias="unitPrice")


class BillTotalRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bill_total: Decimal | None = Field(None, alias="billTotal")


class NoteRequest(BaseModel):
    note: str | None = None


class AddGrantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_type: ItemKind = Field(..., alias="itemType")
    id: str = Field(..., min_length=1)
    default_qty: int | None = Field(None, alias="defaultQty", ge=1)


class GrantQuantityRequest(BaseModel):
    qty: int


class RejectClaimRequest(BaseModel):
    reason: str | None = None


class CartRowView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    item_type: ItemKind = Field(..., alias="itemType")
    item_id: str = Field(..., alias="itemId")
    title: str
    subtitle: str | None = None
    image_url: str | None = Field(None, alias="imageUrl")
    qty: int
    unit_price: Decimal | None = Field(None, alias="unitPrice")
    line_total: Decimal = Field(..., alias="lineTotal")


class GrantLineView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_type: ItemKind = Field(..., alias="itemType")
    id: str
    qty: int
    default_qty_hint: int | None = Field(None, alias="defaultQtyHint")
    eligible: bool


class GrantSelectionView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    mode: GrantMode
    required_count: int = Field(..., alias="requiredCount")
    lines: list[GrantLineView] = Field(default_factory=list)


class ValidationIssueView(BaseModel):
    field: str
    code: str
    message: str


class ValidationView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_valid_any: bool = Field(..., alias="hasValidAny")
    has_valid_list: bool = Field(..., alias="hasValidList")
    grant_count_ok: bool = Field(..., alias="grantCountOk")
    all_eligible: bool = Field(..., alias="allEligible")
    inputs_valid: bool = Field(..., alias="inputsValid")
    issues: list[ValidationIssueView] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ValidationReport) -> "ValidationView":
        return cls(
            has_valid_any=report.has_valid_any,
            has_valid_list=report.has_valid_list,
            grant_count_ok=report.grant_count_ok,
            all_eligible=report.all_eligible,
            inputs_valid=report.inputs_valid,
            issues=[
                ValidationIssueView(field=issue.field, code=issue.code, message=issue.message)
                for issue in report.issues
            ],
        )


class PreviewView(BaseModel):
    state: PreviewState
    result: PreviewResult | None = None
    message: str | None = None


class ApprovalStatusView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    can_approve: bool = Field(..., alias="canApprove")
    blocker: str | None = None
    redemption_value: str = Field(..., alias="redemptionValue")
    approving: bool
    rejecting: bool


class ApprovalSessionSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    claim_id: str = Field(..., alias="claimId")
    active: bool
    completed_action: Literal["approved", "rejected"] | None = Field(None, alias="completedAction")
    redemption_type: str = Field(..., alias="redemptionType")
    scope_kind: str = Field(..., alias="scopeKind")
    bill_total: Decimal | None = Field(None, alias="billTotal")
    subtotal: Decimal
    purchase_total: Decimal | None = Field(None, alias="purchaseTotal")
    note: str = ""
    cart: list[CartRowView] = Field(default_factory=list)
    grants: GrantSelectionView
    validation: ValidationView
    preview: PreviewView
    approval: ApprovalStatusView

    @classmethod
    def from_session(cls, session: ApprovalSession) -> "ApprovalSessionSnapshot":
        cart = session.cart
        grants = session.grants
        phase = session.preview.phase
        blocker = session.committer.approval_blocker()
        return cls(
            id=session.id,
            claim_id=session.claim.id,
            active=session.is_active(),
            completed_action=session.committer.completed,
            redemption_type=session.claim.redemption_type.value,
            scope_kind=session.claim.scope_kind.value,
            bill_total=cart.bill_total,
            subtotal=cart.compute_subtotal(),
            purchase_total=cart.purchase_total(),
            note=session.note,
            cart=[
                CartRowView(
                    id=row.id,
                    item_type=item_kind_of(row.ref),
                    item_id=row.ref.id,
                    title=row.item.title,
                    subtitle=row.item.subtitle,
                    image_url=row.item.image_url,
                    qty=row.qty,
                    unit_price=row.unit_price,
                    line_total=row.line_total,
                )
                for row in cart.rows
            ],
            grants=GrantSelectionView(
                mode=grants.mode,
                required_count=grants.required_count,
                lines=[
                    GrantLineView(
                        item_type=line.item_kind,
                        id=line.ref.id,
                        qty=line.qty,
                        default_qty_hint=line.default_qty_hint,
                        eligible=grants.eligibility.allows(line.ref),
                    )
                    for line in grants.lines
                ],
            ),
            validation=ValidationView.from_report(session.validation()),
            preview=PreviewView(
                state=session.preview.state,
                result=session.preview.last_result,
                message=phase.message if isinstance(phase, PreviewFailed) else None,
            ),
            approval=ApprovalStatusView(
                can_approve=blocker is None,
                blocker=blocker,
                redemption_value=session.committer.redemption_value(),
                approving=session.committer.approving,
                rejecting=session.committer.rejecting,
            ),
        )


class PickerItemView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    subtitle: str | None = None
    image_url: str | None = Field(None, alias="imageUrl")
    default_qty: int | None = Field(None, alias="defaultQty")

    @classmethod
    def from_item(cls, item: PickerItem) -> "PickerItemView":
        return cls(
            id=item.id,
            title=item.title,
            subtitle=item.subtitle,
            image_url=item.image_url,
            default_qty=item.default_qty,
        )


class ItemSearchResponse(BaseModel):
    picker: PickerKind
    query: str
    superseded: bool = False
    items: list[PickerItemView] = Field(default_factory=list)


class GrantAddResponse(BaseModel):
    added: bool
    session: ApprovalSessionSnapshot


__all__ = [
    "AddCartItemRequest",
    "AddGrantRequest",
    "ApprovalGateRequest",
    "ApprovalGateResponse",
    "ApprovalSessionSnapshot",
    "BillTotalRequest",
    "GrantAddResponse",
    "GrantQuantityRequest",
    "ItemSearchResponse",
    "NoteRequest",
    "OpenApprovalSessionRequest",
    "PickerItemView",
    "RejectClaimRequest",
    "UpdateCartRowRequest",
]
