from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from claimdesk_api.domain.claims import (
    Claim,
    ClaimStatus,
    EligibleGrantItem,
    ExistingGrant,
    ItemKind,
    PickerItem,
    RedemptionType,
    ScopeKind,
    make_item_ref,
)

# meta: schema: upstream-claims


class PreviewCartEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str | None = Field(None, alias="productId")
    bundle_id: str | None = Field(None, alias="bundleId")
    qty: int
    unit_price: float | None = Field(None, alias="unitPrice")


class PreviewGrantEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId")
    qty: int


class PreviewRequest(BaseModel):
    """Body for ``POST /claims/{claimId}/preview``."""

    model_config = ConfigDict(populate_by_name=True)

    redemption_type: RedemptionType = Field(..., alias="redemptionType")
    bill_total: float | None = Field(None, alias="billTotal")
    cart: list[PreviewCartEntry] | None = None
    selected_grants: list[PreviewGrantEntry] | None = Field(None, alias="selectedGrants")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AppliedRedemption(BaseModel):
    model_config = ConfigDict(frozen=True)

    percent: Decimal | None = None
    value: Decimal | None = None
    grants: list[dict[str, Any]] | None = None


class NextTierHint(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    spend_more: Decimal = Field(..., alias="spendMore")
    next_percent: Decimal = Field(..., alias="nextPercent")


class PreviewResult(BaseModel):
    """Server-computed redemption preview."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    eligible_subtotal: Decimal = Field(Decimal("0"), alias="eligibleSubtotal")
    applied: AppliedRedemption = Field(default_factory=AppliedRedemption)
    next_tier_hint: NextTierHint | None = Field(None, alias="nextTierHint")
    final_total: Decimal | None = Field(None, alias="finalTotal")
    can_approve: bool = Field(False, alias="canApprove")

    @field_validator("applied", mode="before")
    @classmethod
    def _default_applied(cls, value: Any) -> Any:
        return {} if value is None else value


class ApprovalGrant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    item_type: ItemKind = Field(..., alias="itemType")
    id: str
    quantity: int


class ApprovalPayload(BaseModel):
    """Body for ``POST /claims/{claimId}/approve``."""

    model_config = ConfigDict(populate_by_name=True)

    redemption_value: str = Field(..., alias="redemptionValue")
    note: str | None = None
    grants: list[ApprovalGrant] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RejectPayload(BaseModel):
    reason: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class GrantOption(BaseModel):
    """Entry returned by ``GET /offers/{assignedOfferId}/grant-options``."""

    model_config = ConfigDict(populate_by_name=True)

    item_type: ItemKind = Field(..., alias="itemType")
    id: str
    title: str = ""
    subtitle: str | None = None
    image_url: str | None = Field(None, alias="imageUrl")
    default_qty: int | None = Field(
        None,
        alias="defaultQty",
        validation_alias=AliasChoices("defaultQty", "defaultQuantity", "quantity"),
    )

    @field_validator("item_type", mode="before")
    @classmethod
    def _normalize_item_type(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    def to_picker_item(self) -> PickerItem:
        return PickerItem(
            id=self.id,
            title=self.title,
            subtitle=self.subtitle,
            image_url=self.image_url,
            default_qty=self.default_qty,
        )

    def to_eligible_item(self) -> EligibleGrantItem:
        return EligibleGrantItem(ref=make_item_ref(self.item_type, self.id), default_qty=self.default_qty)


class ClaimGrantLine(BaseModel):
    """A grant already attached to a claim.

    The claims API returns either id-based lines (``productId``/``bundleId``)
    or nested snapshots (``product.id``/``bundle.id``); both normalize here.
    """

    model_config = ConfigDict(populate_by_name=True)

    item_type: ItemKind = Field(..., alias="itemType")
    id: str
    quantity: int = 1

    @model_validator(mode="before")
    @classmethod
    def _flatten_snapshot(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        raw_type = payload.get("itemType") or payload.get("item_type") or ""
        item_type = (raw_type.value if isinstance(raw_type, ItemKind) else str(raw_type)).upper()
        if not item_type:
            item_type = "BUNDLE" if payload.get("bundleId") or payload.get("bundle") else "PRODUCT"
        payload["itemType"] = item_type
        if not payload.get("id"):
            nested_key, id_key = ("bundle", "bundleId") if item_type == "BUNDLE" else ("product", "productId")
            nested = payload.get(nested_key)
            nested_id = nested.get("id") if isinstance(nested, dict) else None
            payload["id"] = payload.get(id_key) or nested_id
        if payload.get("quantity") is None:
            payload["quantity"] = 1
        return payload

    def to_existing_grant(self) -> ExistingGrant:
        return ExistingGrant(ref=make_item_ref(self.item_type, self.id), quantity=self.quantity)


class ClaimSnapshot(BaseModel):
    """Claim as returned by ``GET /claims/{claimId}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., validation_alias=AliasChoices("id", "claimId"))
    assigned_offer_id: str = Field(..., alias="assignedOfferId")
    status: ClaimStatus = ClaimStatus.PENDING
    expires_at: datetime | None = Field(None, alias="expiresAt")
    redemption_type: RedemptionType = Field(
        ...,
        alias="redemptionType",
        validation_alias=AliasChoices("redemptionType", "type"),
    )
    scope_kind: ScopeKind = Field(
        ScopeKind.ANY,
        alias="scopeKind",
        validation_alias=AliasChoices("scopeKind", "scopeType"),
    )
    approval_pick_limit: int = Field(
        0,
        alias="grantPickLimit",
        validation_alias=AliasChoices("grantPickLimit", "approvalPickLimit"),
        ge=0,
    )
    default_bill_total: Decimal | None = Field(None, alias="defaultBillTotal")
    grants: list[ClaimGrantLine] = Field(default_factory=list)
    eligible_grant_items: list[GrantOption] = Field(
        default_factory=list,
        alias="eligibleGrantItems",
        validation_alias=AliasChoices("eligibleGrantItems", "grantOptions"),
    )

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() in ClaimStatus.__members__:
            return value.upper()
        return ClaimStatus.PENDING if value is None else value

    @field_validator("approval_pick_limit", mode="before")
    @classmethod
    def _null_pick_limit(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("grants", "eligible_grant_items", mode="before")
    @classmethod
    def _null_lists(cls, value: Any) -> Any:
        return [] if value is None else value

    def to_claim(self) -> Claim:
        return Claim(
            id=self.id,
            assigned_offer_id=self.assigned_offer_id,
            redemption_type=self.redemption_type,
            scope_kind=self.scope_kind,
            approval_pick_limit=self.approval_pick_limit,
            default_bill_total=self.default_bill_total,
            existing_grants=tuple(line.to_existing_grant() for line in self.grants),
            eligible_grant_items=tuple(option.to_eligible_item() for option in self.eligible_grant_items),
            status=self.status,
            expires_at=self.expires_at,
        )


__all__ = [
    "AppliedRedemption",
    "ApprovalGrant",
    "ApprovalPayload",
    "ClaimGrantLine",
    "ClaimSnapshot",
    "GrantOption",
    "NextTierHint",
    "PreviewCartEntry",
    "PreviewGrantEntry",
    "PreviewRequest",
    "PreviewResult",
    "RejectPayload",
]
