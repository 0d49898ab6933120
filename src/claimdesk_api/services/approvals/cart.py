"""Cart & scope model: a single bill total (ANY) or itemized purchase lines (LIST)."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable
from uuid import uuid4

from claimdesk_api.domain.claims import CartItem, ItemRef, ScopeKind

from .errors import CartRowNotFoundError, InvalidQuantityError

ChangeListener = Callable[[str], None]

_ZERO = Decimal("0")
_UNCHANGED: Any = object()


@dataclass(slots=True)
class CartRow:
    id: str
    item: CartItem
    qty: int
    unit_price: Decimal | None = None

    @property
    def ref(self) -> ItemRef:
        return self.item.ref

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price or _ZERO) * self.qty


def _coerce_amount(value: Decimal | int | float | str | None, *, label: str) -> Decimal | None:
    if value is None:
        return None
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if not amount.is_finite():
        raise InvalidQuantityError(f"{label} must be a finite number")
    if amount < 0:
        raise InvalidQuantityError(f"{label} must be non-negative")
    return amount


class CartModel:
    """Purchase facts for one approval session.

    Every mutation calls ``on_change`` with a short reason so the owning
    session can invalidate the last preview.
    """

    def __init__(
        self,
        scope_kind: ScopeKind,
        *,
        bill_total: Decimal | None = None,
        on_change: ChangeListener | None = None,
    ) -> None:
        self.scope_kind = scope_kind
        self._rows: list[CartRow] = []
        self._bill_total = _coerce_amount(bill_total, label="Bill total")
        self._on_change = on_change

    @property
    def rows(self) -> tuple[CartRow, ...]:
        return tuple(self._rows)

    @property
    def bill_total(self) -> Decimal | None:
        return self._bill_total

    def set_bill_total(self, value: Decimal | int | float | str | None) -> None:
        self._bill_total = _coerce_amount(value, label="Bill total")
        self._changed("bill_total")

    def add_or_increment_item(self, item: CartItem) -> CartRow:
        for row in self._rows:
            if row.item.ref == item.ref:
                row.qty += 1
                self._changed("cart")
                return row
        row = CartRow(id=uuid4().hex, item=item, qty=1)
        self._rows.append(row)
        self._changed("cart")
        return row

    def set_row_qty(self, row_id: str, qty: int) -> CartRow:
        if qty < 0:
            raise InvalidQuantityError("Quantity must be non-negative")
        row = self._find(row_id)
        row.qty = int(qty)
        self._changed("cart")
        return row

    def set_row_unit_price(self, row_id: str, price: Decimal | int | float | str | None) -> CartRow:
        row = self._find(row_id)
        row.unit_price = _coerce_amount(price, label="Unit price")
        self._changed("cart")
        return row

    def update_row(
        self,
        row_id: str,
        *,
        qty: int | None = None,
        unit_price: Decimal | int | float | str | None = _UNCHANGED,
    ) -> CartRow:
        """Apply a qty and/or price change as one edit; nothing changes unless both are valid."""

        row = self._find(row_id)
        if qty is not None and qty < 0:
            raise InvalidQuantityError("Quantity must be non-negative")
        price = row.unit_price if unit_price is _UNCHANGED else _coerce_amount(unit_price, label="Unit price")
        if qty is not None:
            row.qty = int(qty)
        row.unit_price = price
        self._changed("cart")
        return row

    def remove_row(self, row_id: str) -> None:
        row = self._find(row_id)
        self._rows.remove(row)
        self._changed("cart")

    def compute_subtotal(self) -> Decimal:
        return sum((row.line_total for row in self._rows), _ZERO)

    def purchase_total(self) -> Decimal | None:
        """Total purchase figure shown to the operator.

        Under LIST scope the itemized subtotal stands in when no explicit
        bill total was entered.
        """

        if self.scope_kind is ScopeKind.LIST:
            if self._bill_total is not None and self._bill_total > 0:
                return self._bill_total
            return self.compute_subtotal()
        return self._bill_total

    def has_positive_line(self) -> bool:
        return any(row.qty > 0 for row in self._rows)

    def _find(self, row_id: str) -> CartRow:
        for row in self._rows:
            if row.id == row_id:
                return row
        raise CartRowNotFoundError(row_id)

    def _changed(self, reason: str) -> None:
        if self._on_change is not None:
            self._on_change(reason)


__all__ = ["CartModel", "CartRow"]
