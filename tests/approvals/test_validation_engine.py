from decimal import Decimal

from claimdesk_api.domain.claims import CartItem, EligibleGrantItem, ExistingGrant, ProductRef, ScopeKind
from claimdesk_api.services.approvals import CartModel, GrantSelectionModel, validate_inputs


def test_any_scope_requires_positive_bill_total() -> None:
    cart = CartModel(ScopeKind.ANY)
    grants = GrantSelectionModel(0)

    report = validate_inputs(cart, grants)
    assert not report.has_valid_any
    assert [issue.code for issue in report.issues] == ["bill_total_required"]

    cart.set_bill_total(Decimal("0"))
    assert not validate_inputs(cart, grants).inputs_valid

    cart.set_bill_total(Decimal("0.01"))
    assert validate_inputs(cart, grants).inputs_valid


def test_list_scope_requires_a_positive_line() -> None:
    cart = CartModel(ScopeKind.LIST)
    grants = GrantSelectionModel(0)

    report = validate_inputs(cart, grants)
    assert not report.has_valid_list
    assert report.has_valid_any
    assert report.issues_for("cart")[0].code == "cart_empty"

    row = cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))
    assert validate_inputs(cart, grants).inputs_valid

    cart.set_row_qty(row.id, 0)
    assert not validate_inputs(cart, grants).inputs_valid


def test_list_scope_ignores_bill_total() -> None:
    cart = CartModel(ScopeKind.LIST)
    cart.add_or_increment_item(CartItem(ref=ProductRef("p-1")))

    report = validate_inputs(cart, GrantSelectionModel(0))

    assert report.inputs_valid
    assert report.issues_for("bill_total") == []


def test_grant_count_and_eligibility_are_both_reported() -> None:
    cart = CartModel(ScopeKind.ANY, bill_total=Decimal("10"))
    grants = GrantSelectionModel(
        2,
        eligible_items=[EligibleGrantItem(ref=ProductRef("a")), EligibleGrantItem(ref=ProductRef("b"))],
        existing_grants=[ExistingGrant(ref=ProductRef("d"))],
    )

    report = validate_inputs(cart, grants)

    assert not report.grant_count_ok
    assert not report.all_eligible
    assert not report.inputs_valid
    assert {issue.code for issue in report.issues_for("grants")} == {
        "grant_count_mismatch",
        "grant_not_eligible",
    }


def test_report_follows_model_changes() -> None:
    cart = CartModel(ScopeKind.ANY, bill_total=Decimal("10"))
    grants = GrantSelectionModel(1)

    assert not validate_inputs(cart, grants).grant_count_ok
    grants.add(ProductRef("a"))
    assert validate_inputs(cart, grants).inputs_valid
