"""Grant selection model for GRANT-type claims."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Sequence

from claimdesk_api.domain.claims import (
    BundleRef,
    EligibleGrantItem,
    ExistingGrant,
    ItemKind,
    ItemRef,
    ProductRef,
    item_kind_of,
)

from .errors import GrantLineNotFoundError, GrantSelectionLockedError, InvalidQuantityError

ChangeListener = Callable[[str], None]


class GrantMode(str, Enum):
    NONE = "NONE"
    PICK = "PICK"
    READ_ONLY = "READ_ONLY"


@dataclass(slots=True)
class GrantLine:
    ref: ItemRef
    qty: int
    default_qty_hint: int | None = None

    @property
    def item_kind(self) -> ItemKind:
        return item_kind_of(self.ref)


class EligibilityList:
    """Allow-list of grantable items, checked independently per item type."""

    def __init__(self, items: Iterable[EligibleGrantItem] = ()) -> None:
        self._items: dict[ItemRef, EligibleGrantItem] = {}
        for item in items:
            self._items.setdefault(item.ref, item)
        self._product_ids = {ref.id for ref in self._items if isinstance(ref, ProductRef)}
        self._bundle_ids = {ref.id for ref in self._items if isinstance(ref, BundleRef)}

    @property
    def is_restricted(self) -> bool:
        # An empty list places no restriction on which items may be granted.
        return bool(self._items)

    def allows(self, ref: ItemRef) -> bool:
        if not self.is_restricted:
            return True
        if isinstance(ref, ProductRef):
            return ref.id in self._product_ids
        if isinstance(ref, BundleRef):
            return ref.id in self._bundle_ids
        raise TypeError(f"Unsupported item reference {ref!r}")

    def default_qty_for(self, ref: ItemRef) -> int | None:
        item = self._items.get(ref)
        return item.default_qty if item else None

    def ids_for(self, kind: ItemKind) -> frozenset[str]:
        if kind is ItemKind.PRODUCT:
            return frozenset(self._product_ids)
        return frozenset(self._bundle_ids)

    def __len__(self) -> int:
        return len(self._items)


class GrantSelectionModel:
    """The exact set of free items a GRANT claim will award.

    ``required_count`` is the claim's approval pick limit. A limit of zero
    with grants already attached to the claim puts the model in read-only
    mode: the existing grants are shown but cannot be edited or extended.
    """

    def __init__(
        self,
        required_count: int,
        *,
        eligible_items: Sequence[EligibleGrantItem] = (),
        existing_grants: Sequence[ExistingGrant] = (),
        on_change: ChangeListener | None = None,
    ) -> None:
        if required_count < 0:
            raise ValueError("required_count must be non-negative")
        self.required_count = required_count
        self.eligibility = EligibilityList(eligible_items)
        self._on_change = on_change
        self._lines: list[GrantLine] = []

        if required_count > 0:
            self.mode = GrantMode.PICK
        elif existing_grants:
            self.mode = GrantMode.READ_ONLY
        else:
            self.mode = GrantMode.NONE
        self._seed(existing_grants)

    def _seed(self, existing_grants: Sequence[ExistingGrant]) -> None:
        for grant in existing_grants:
            if self.mode is GrantMode.PICK and len(self._lines) >= self.required_count:
                break
            if self._index_of(grant.ref) is not None:
                continue
            self._lines.append(
                GrantLine(
                    ref=grant.ref,
                    qty=max(1, grant.quantity),
                    default_qty_hint=self.eligibility.default_qty_for(grant.ref),
                )
            )

    @property
    def lines(self) -> tuple[GrantLine, ...]:
        return tuple(self._lines)

    @property
    def needs_picker(self) -> bool:
        return self.mode is GrantMode.PICK

    @property
    def is_read_only(self) -> bool:
        return self.mode is GrantMode.READ_ONLY

    @property
    def is_full(self) -> bool:
        return self.needs_picker and len(self._lines) >= self.required_count

    def is_selected(self, ref: ItemRef) -> bool:
        return self._index_of(ref) is not None

    def add(self, ref: ItemRef, *, default_qty: int | None = None) -> bool:
        """Select ``ref``; returns ``False`` when the picker is full or already holds it."""

        self._ensure_editable()
        if self.is_full or self.is_selected(ref):
            return False
        hint = default_qty if default_qty is not None else self.eligibility.default_qty_for(ref)
        qty = hint if hint is not None and hint > 0 else 1
        self._lines.append(GrantLine(ref=ref, qty=qty, default_qty_hint=hint))
        self._changed()
        return True

    def remove(self, ref: ItemRef) -> bool:
        self._ensure_editable()
        index = self._index_of(ref)
        if index is None:
            return False
        del self._lines[index]
        self._changed()
        return True

    def set_qty(self, ref: ItemRef, qty: int) -> GrantLine:
        self._ensure_editable()
        if qty < 1:
            raise InvalidQuantityError("Grant quantity must be at least 1")
        index = self._index_of(ref)
        if index is None:
            raise GrantLineNotFoundError(f"{item_kind_of(ref).value.title()} {ref.id} is not selected")
        line = self._lines[index]
        line.qty = int(qty)
        self._changed()
        return line

    def count_ok(self) -> bool:
        return not self.needs_picker or len(self._lines) == self.required_count

    def ineligible_lines(self) -> list[GrantLine]:
        return [line for line in self._lines if not self.eligibility.allows(line.ref)]

    def _ensure_editable(self) -> None:
        if self.mode is GrantMode.READ_ONLY:
            raise GrantSelectionLockedError("Grants on this claim are read-only")
        if self.mode is GrantMode.NONE:
            raise GrantSelectionLockedError("This claim does not take grant selections")

    def _index_of(self, ref: ItemRef) -> int | None:
        for index, line in enumerate(self._lines):
            if line.ref == ref:
                return index
        return None

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change("grants")


__all__ = ["EligibilityList", "GrantLine", "GrantMode", "GrantSelectionModel"]
