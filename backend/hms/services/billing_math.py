# backend/hms/services/billing_math.py
# Overview: Pure Decimal arithmetic for bill totals, discounts, tax and insurance.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

DISCOUNT_FIXED = "fixed"
DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_TYPES = (DISCOUNT_FIXED, DISCOUNT_PERCENTAGE)

STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"
STATUS_VOIDED = "voided"


def D(x) -> Decimal:
    """Decimal from int/str/Decimal/float (via str). None is zero; junk raises ValueError."""
    if x is None:
        return ZERO
    if isinstance(x, bool):
        raise ValueError(f"Not a number: {x!r}")
    try:
        value = Decimal(str(x))
    except (InvalidOperation, TypeError):
        raise ValueError(f"Not a number: {x!r}")
    if not value.is_finite():
        raise ValueError(f"Not a number: {x!r}")
    return value


def money2(x) -> Decimal:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def item_discount(unit_price, quantity, discount_amount, discount_percentage) -> Decimal:
    """discount_amount + unit_price x quantity x discount_percentage / 100 (unrounded)."""
    gross = D(unit_price) * D(quantity)
    return D(discount_amount) + gross * D(discount_percentage) / HUNDRED


def tax_amount(taxable, rate) -> Decimal:
    return money2(D(taxable) * D(rate) / HUNDRED)


def discount_amount_for(sub_total, value, discount_type: str) -> Decimal:
    if discount_type == DISCOUNT_PERCENTAGE:
        return money2(D(sub_total) * D(value) / HUNDRED)
    return money2(value)


def derive_balance(total_amount, amount_paid) -> Decimal:
    return max(ZERO, money2(D(total_amount) - D(amount_paid)))


def derive_payment_status(balance_due, amount_paid) -> str:
    if D(balance_due) <= 0:
        return STATUS_PAID
    if D(amount_paid) > 0:
        return STATUS_PARTIAL
    return STATUS_PENDING


@dataclass(frozen=True)
class BillTotals:
    sub_total: Decimal
    line_discount: Decimal
    bill_discount: Decimal
    total_discount: Decimal
    taxable_amount: Decimal
    tax: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    payment_status: str

    def to_dict(self) -> dict:
        return {
            "subtotal": self.sub_total,
            "discount": self.total_discount,
            "tax": self.tax,
            "total_amount": self.total_amount,
            "amount_paid": self.amount_paid,
            "balance_due": self.balance_due,
        }


def compute_totals(
    items,
    completed_payments,
    *,
    tax_rate,
    discount_type: str | None = None,
    discount_value=None,
) -> BillTotals:
    """
    Totals for a bill from its lines and completed payment amounts.

    items: objects with unit_price, quantity, discount_amount,
    discount_percentage and total_price.

    The bill-level discount (discount_type/discount_value) is re-derived
    from the current sub_total and added to the line discounts, capped so
    the taxable amount never drops below zero.
    """
    sub_total = money2(sum((D(item.total_price) for item in items), ZERO))
    line_discount = money2(sum(
        (
            item_discount(item.unit_price, item.quantity, item.discount_amount, item.discount_percentage)
            for item in items
        ),
        ZERO,
    ))

    bill_discount = ZERO
    if discount_type in DISCOUNT_TYPES and discount_value is not None:
        bill_discount = discount_amount_for(sub_total, discount_value, discount_type)
        bill_discount = min(bill_discount, max(ZERO, sub_total - line_discount))

    total_discount = money2(line_discount + bill_discount)
    taxable = sub_total - total_discount
    tax = tax_amount(taxable, tax_rate)
    total_amount = money2(taxable + tax)
    amount_paid = money2(sum((D(amount) for amount in completed_payments), ZERO))
    balance_due = derive_balance(total_amount, amount_paid)
    return BillTotals(
        sub_total=sub_total,
        line_discount=line_discount,
        bill_discount=bill_discount,
        total_discount=total_discount,
        taxable_amount=taxable,
        tax=tax,
        total_amount=total_amount,
        amount_paid=amount_paid,
        balance_due=balance_due,
        payment_status=derive_payment_status(balance_due, amount_paid),
    )


@dataclass(frozen=True)
class Coverage:
    total_amount: Decimal
    deductible_applied: Decimal
    co_pay_amount: Decimal
    insurance_coverage: Decimal
    patient_responsibility: Decimal
    annual_remaining: Decimal

    def to_dict(self) -> dict:
        return {
            "total_amount": self.total_amount,
            "deductible_applied": self.deductible_applied,
            "co_pay_amount": self.co_pay_amount,
            "insurance_coverage": self.insurance_coverage,
            "patient_responsibility": self.patient_responsibility,
            "annual_remaining": self.annual_remaining,
        }


def compute_coverage(
    total_amount,
    *,
    deductible_amount,
    deductible_met,
    co_pay_amount,
    co_pay_percentage,
    annual_max_coverage,
    annual_used_amount,
) -> Coverage:
    """
    Split a bill total between insurer and patient.

    Deductible first, then co-pay (flat amount wins over percentage), then
    the annual maximum. Coverage lies in [0, total] so the patient share is
    never negative. annual_remaining is what is left after this claim.
    """
    total = money2(total_amount)

    deductible_remaining = max(ZERO, D(deductible_amount) - D(deductible_met))
    after_deductible = max(ZERO, total - deductible_remaining)
    deductible_applied = total - after_deductible

    if D(co_pay_amount) > 0:
        co_pay = money2(co_pay_amount)
    elif D(co_pay_percentage) > 0:
        co_pay = money2(after_deductible * D(co_pay_percentage) / HUNDRED)
    else:
        co_pay = ZERO

    coverage = max(ZERO, after_deductible - co_pay)

    annual_remaining = max(ZERO, D(annual_max_coverage) - D(annual_used_amount))
    if coverage > annual_remaining:
        coverage = annual_remaining
    coverage = money2(coverage)

    return Coverage(
        total_amount=total,
        deductible_applied=money2(deductible_applied),
        co_pay_amount=co_pay,
        insurance_coverage=coverage,
        patient_responsibility=money2(total - coverage),
        annual_remaining=money2(annual_remaining - coverage),
    )
