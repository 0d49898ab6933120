from decimal import Decimal

import pytest

from claimdesk_api.domain.claims import BundleRef, CartItem, ProductRef, ScopeKind
from claimdesk_api.services.approvals import CartModel, CartRowNotFoundError, InvalidQuantityError


def _recording_cart(scope: ScopeKind = ScopeKind.LIST, **kwargs):
    reasons: list[str] = []
    cart = CartModel(scope, on_change=reasons.append, **kwargs)
    return cart, reasons


def test_adding_same_item_increments_existing_row() -> None:
    cart, reasons = _recording_cart()
    first = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1"), title="Shirt"))
    second = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1"), title="Shirt"))

    assert first.id == second.id
    assert len(cart.rows) == 1
    assert cart.rows[0].qty == 2
    assert reasons == ["cart", "cart"]


def test_product_and_bundle_with_same_id_are_distinct_rows() -> None:
    cart, _ = _recording_cart()
    cart.add_or_increment_item(CartItem(ref=ProductRef("x")))
    cart.add_or_increment_item(CartItem(ref=BundleRef("x")))

    assert [row.ref for row in cart.rows] == [ProductRef("x"), BundleRef("x")]


def test_subtotal_treats_missing_prices_as_zero() -> None:
    cart, _ = _recording_cart()
    priced = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    cart.add_or_increment_item(CartItem(ref=ProductRef("p-2")))
    cart.set_row_qty(priced.id, 3)
    cart.set_row_unit_price(priced.id, Decimal("12.50"))

    assert priced.line_total == Decimal("37.50")
    assert cart.compute_subtotal() == Decimal("37.50")


def test_zero_quantity_row_is_kept() -> None:
    cart, _ = _recording_cart()
    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    cart.set_row_qty(row.id, 0)

    assert cart.rows[0].qty == 0
    assert cart.has_positive_line() is False


def test_negative_values_are_rejected() -> None:
    cart, reasons = _recording_cart()
    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    reasons.clear()

    with pytest.raises(InvalidQuantityError):
        cart.set_row_qty(row.id, -1)
    with pytest.raises(InvalidQuantityError):
        cart.set_row_unit_price(row.id, "-0.01")
    with pytest.raises(InvalidQuantityError):
        cart.set_bill_total(Decimal("-5"))
    assert reasons == []


def test_unknown_row_raises() -> None:
    cart, _ = _recording_cart()

    with pytest.raises(CartRowNotFoundError):
        cart.remove_row("missing")


def test_clearing_price_and_removing_row_notify() -> None:
    cart, reasons = _recording_cart()
    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    cart.set_row_unit_price(row.id, 10)
    cart.set_row_unit_price(row.id, None)
    cart.remove_row(row.id)

    assert row.unit_price is None
    assert cart.rows == ()
    assert reasons == ["cart", "cart", "cart", "cart"]


def test_purchase_total_under_list_scope_falls_back_to_subtotal() -> None:
    cart, _ = _recording_cart(ScopeKind.LIST)
    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    cart.set_row_unit_price(row.id, "20")

    assert cart.purchase_total() == Decimal("20")
    cart.set_bill_total("55.00")
    assert cart.purchase_total() == Decimal("55.00")


def test_purchase_total_under_any_scope_is_the_bill_total() -> None:
    cart, reasons = _recording_cart(ScopeKind.ANY, bill_total=Decimal("40"))

    assert cart.purchase_total() == Decimal("40")
    cart.set_bill_total(None)
    assert cart.purchase_total() is None
    assert reasons == ["bill_total"]


def test_update_row_applies_qty_and_price_together() -> None:
    cart, reasons = _recording_cart()
    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    reasons.clear()

    cart.update_row(row.id, qty=3, unit_price="2.50")

    assert (row.qty, row.unit_price) == (3, Decimal("2.50"))
    assert reasons == ["cart"]


def test_update_row_with_invalid_price_changes_nothing() -> None:
    cart, reasons = _recording_cart()
    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    cart.set_row_unit_price(row.id, "4")
    reasons.clear()

    with pytest.raises(InvalidQuantityError):
        cart.update_row(row.id, qty=5, unit_price="-1")
    with pytest.raises(InvalidQuantityError):
        cart.update_row(row.id, qty=-2, unit_price="9")

    assert (row.qty, row.unit_price) == (1, Decimal("4"))
    assert reasons == []


def test_update_row_without_price_keeps_existing_price() -> None:
    cart, _ = _recording_cart()
    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    cart.set_row_unit_price(row.id, "4")

    cart.update_row(row.id, qty=2)
    assert row.unit_price == Decimal("4")

    cart.update_row(row.id, unit_price=None)
    assert (row.qty, row.unit_price) == (2, None)
