"""Claim approval domain types shared by the engine, wire schemas and API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar


class RedemptionType(str, Enum):
    GRANT = "GRANT"
    PERCENTAGE_DISCOUNT = "PERCENTAGE_DISCOUNT"
    FIXED_DISCOUNT = "FIXED_DISCOUNT"

    @property
    def is_discount(self) -> bool:
        return self is not RedemptionType.GRANT


class ScopeKind(str, Enum):
    ANY = "ANY"
    LIST = "LIST"


class ItemKind(str, Enum):
    PRODUCT = "PRODUCT"
    BUNDLE = "BUNDLE"


class ClaimPolicy(str, Enum):
    ONLINE = "ONLINE"
    MANUAL = "MANUAL"
    BOTH = "BOTH"


class ClaimStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True, slots=True)
class ProductRef:
    """Reference to a catalog product."""

    kind: ClassVar[ItemKind] = ItemKind.PRODUCT
    id: str


@dataclass(frozen=True, slots=True)
class BundleRef:
    """Reference to a catalog bundle."""

    kind: ClassVar[ItemKind] = ItemKind.BUNDLE
    id: str


ItemRef = ProductRef | BundleRef


def make_item_ref(kind: ItemKind | str, item_id: str) -> ItemRef:
    """Build the tagged reference for ``kind``; unknown kinds raise ``ValueError``."""

    resolved = kind if isinstance(kind, ItemKind) else ItemKind(str(kind).upper())
    if not item_id:
        raise ValueError("Item id must be a non-empty string")
    if resolved is ItemKind.PRODUCT:
        return ProductRef(item_id)
    if resolved is ItemKind.BUNDLE:
        return BundleRef(item_id)
    raise ValueError(f"Unsupported item kind {kind!r}")


def item_kind_of(ref: ItemRef) -> ItemKind:
    if isinstance(ref, ProductRef):
        return ItemKind.PRODUCT
    if isinstance(ref, BundleRef):
        return ItemKind.BUNDLE
    raise TypeError(f"Unsupported item reference {ref!r}")


@dataclass(frozen=True, slots=True)
class PickerItem:
    """Search result surfaced by the cart and grant pickers."""

    id: str
    title: str
    subtitle: str | None = None
    image_url: str | None = None
    default_qty: int | None = None


@dataclass(frozen=True, slots=True)
class CartItem:
    ref: ItemRef
    title: str = ""
    subtitle: str | None = None
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class EligibleGrantItem:
    """Allow-list entry from the offer snapshot; also the default quantity source."""

    ref: ItemRef
    default_qty: int | None = None


@dataclass(frozen=True, slots=True)
class ExistingGrant:
    ref: ItemRef
    quantity: int = 1


@dataclass(frozen=True, slots=True)
class Claim:
    """Static context for one approval session."""

    id: str
    assigned_offer_id: str
    redemption_type: RedemptionType
    scope_kind: ScopeKind = ScopeKind.ANY
    approval_pick_limit: int = 0
    default_bill_total: Decimal | None = None
    existing_grants: tuple[ExistingGrant, ...] = field(default_factory=tuple)
    eligible_grant_items: tuple[EligibleGrantItem, ...] = field(default_factory=tuple)
    status: ClaimStatus = ClaimStatus.PENDING
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.approval_pick_limit < 0:
            raise ValueError("approval_pick_limit must be non-negative")


__all__ = [
    "BundleRef",
    "CartItem",
    "Claim",
    "ClaimPolicy",
    "ClaimStatus",
    "EligibleGrantItem",
    "ExistingGrant",
    "ItemKind",
    "ItemRef",
    "PickerItem",
    "ProductRef",
    "RedemptionType",
    "ScopeKind",
    "item_kind_of",
    "make_item_ref",
]
