"""Pure validation of approval inputs.

The report is recomputed from the models on every read; nothing here is
cached, so it can never disagree with the cart or grant selection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from claimdesk_api.domain.claims import ScopeKind, item_kind_of

from .cart import CartModel
from .grants import GrantSelectionModel


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    field: str
    code: str
    message: str


@dataclass(frozen=True, slots=True)
class ValidationReport:
    has_valid_any: bool
    has_valid_list: bool
    grant_count_ok: bool
    all_eligible: bool
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def inputs_valid(self) -> bool:
        return self.has_valid_any and self.has_valid_list and self.grant_count_ok and self.all_eligible

    def issues_for(self, field_name: str) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.field == field_name]


def validate_inputs(cart: CartModel, grants: GrantSelectionModel) -> ValidationReport:
    """Evaluate the preview preconditions for the current cart and grant selection."""

    issues: list[ValidationIssue] = []

    bill_total = cart.bill_total
    has_valid_any = cart.scope_kind is not ScopeKind.ANY or (
        bill_total is not None and bill_total > Decimal("0")
    )
    if not has_valid_any:
        issues.append(
            ValidationIssue(
                field="bill_total",
                code="bill_total_required",
                message="Enter a bill total greater than 0",
            )
        )

    has_valid_list = cart.scope_kind is not ScopeKind.LIST or cart.has_positive_line()
    if not has_valid_list:
        issues.append(
            ValidationIssue(
                field="cart",
                code="cart_empty",
                message="Add at least one item with a quantity above 0",
            )
        )

    grant_count_ok = grants.count_ok()
    if not grant_count_ok:
        issues.append(
            ValidationIssue(
                field="grants",
                code="grant_count_mismatch",
                message=f"Select exactly {grants.required_count} grant item(s)",
            )
        )

    ineligible = grants.ineligible_lines()
    all_eligible = not ineligible
    for line in ineligible:
        issues.append(
            ValidationIssue(
                field="grants",
                code="grant_not_eligible",
                message=f"{item_kind_of(line.ref).value.title()} {line.ref.id} is not eligible for this offer",
            )
        )

    return ValidationReport(
        has_valid_any=has_valid_any,
        has_valid_list=has_valid_list,
        grant_count_ok=grant_count_ok,
        all_eligible=all_eligible,
        issues=tuple(issues),
    )


__all__ = ["ValidationIssue", "ValidationReport", "validate_inputs"]
