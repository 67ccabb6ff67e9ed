"""
Billing arithmetic tests (pure functions, no database).

Verifies:
- Totals: line discounts, bill-level discount, tax on the taxable amount
- Half-up rounding to cents
- Coverage split stays within [0, total] for any policy values
"""

import random
from dataclasses import dataclass
from decimal import Decimal

import pytest

from hms.services.billing_math import (
    D,
    money2,
    compute_totals,
    compute_coverage,
    derive_payment_status,
)


@dataclass
class Line:
    unit_price: Decimal
    quantity: int
    discount_amount: Decimal = Decimal("0")
    discount_percentage: Decimal = Decimal("0")

    @property
    def total_price(self):
        return money2(self.unit_price * self.quantity)


def _line(price, qty=1, amount="0", pct="0"):
    return Line(Decimal(price), qty, Decimal(amount), Decimal(pct))


class TestNumbers:

    def test_half_up_rounding(self):
        assert money2("2.345") == Decimal("2.35")
        assert money2("2.344") == Decimal("2.34")
        assert money2(0.1 + 0.2) == Decimal("0.30")

    def test_none_is_zero(self):
        assert D(None) == Decimal("0")

    @pytest.mark.parametrize("junk", ["abc", "", True, "NaN", "Infinity", object()])
    def test_junk_raises(self, junk):
        with pytest.raises(ValueError):
            D(junk)


class TestTotals:

    def test_item_discounts_and_tax(self):
        items = [_line("100.00"), _line("75.00", 2, amount="15.00")]

        totals = compute_totals(items, [], tax_rate=10)

        assert totals.sub_total == Decimal("250.00")
        assert totals.total_discount == Decimal("15.00")
        assert totals.tax == Decimal("23.50")
        assert totals.total_amount == Decimal("258.50")
        assert totals.balance_due == Decimal("258.50")
        assert totals.payment_status == "pending"

    def test_percentage_item_discount(self):
        totals = compute_totals([_line("80.00", 2, pct="25")], [], tax_rate=0)
        assert totals.line_discount == Decimal("40.00")
        assert totals.total_amount == Decimal("120.00")

    def test_bill_discount_adds_to_item_discounts(self):
        items = [_line("100.00", amount="10.00")]

        totals = compute_totals(items, [], tax_rate=0, discount_type="percentage", discount_value=10)

        assert totals.line_discount == Decimal("10.00")
        assert totals.bill_discount == Decimal("10.00")
        assert totals.total_discount == Decimal("20.00")
        assert totals.total_amount == Decimal("80.00")

    def test_bill_discount_follows_sub_total(self):
        small = compute_totals([_line("100.00")], [], tax_rate=0, discount_type="percentage", discount_value=10)
        large = compute_totals(
            [_line("100.00"), _line("100.00")], [], tax_rate=0, discount_type="percentage", discount_value=10
        )
        assert small.bill_discount == Decimal("10.00")
        assert large.bill_discount == Decimal("20.00")

    def test_bill_discount_capped_at_taxable(self):
        # A fixed discount left over after an item was removed
        totals = compute_totals([_line("30.00")], [], tax_rate=10, discount_type="fixed", discount_value=50)
        assert totals.bill_discount == Decimal("30.00")
        assert totals.taxable_amount == Decimal("0.00")
        assert totals.total_amount == Decimal("0.00")
        assert totals.payment_status == "paid"

    def test_payments(self):
        totals = compute_totals([_line("100.00")], [Decimal("40.00")], tax_rate=0)
        assert totals.amount_paid == Decimal("40.00")
        assert totals.balance_due == Decimal("60.00")
        assert totals.payment_status == "partial"

    def test_overpayment_clamps_balance(self):
        totals = compute_totals([_line("100.00")], [Decimal("150.00")], tax_rate=0)
        assert totals.balance_due == Decimal("0.00")
        assert totals.payment_status == "paid"

    def test_empty_bill(self):
        totals = compute_totals([], [], tax_rate=10)
        assert totals.total_amount == Decimal("0.00")
        assert totals.payment_status == "paid"

    def test_invariant_holds(self):
        rng = random.Random(20240611)
        for _ in range(200):
            items = [
                _line(f"{rng.randint(0, 50000) / 100:.2f}", rng.randint(1, 5), pct=str(rng.randint(0, 100)))
                for _ in range(rng.randint(0, 6))
            ]
            totals = compute_totals(
                items,
                [Decimal(rng.randint(0, 100000)) / 100],
                tax_rate=rng.choice([0, 5, 7.5, 18]),
                discount_type=rng.choice([None, "fixed", "percentage"]),
                discount_value=rng.randint(0, 100),
            )
            assert totals.taxable_amount >= 0
            assert totals.total_amount == money2(totals.sub_total - totals.total_discount + totals.tax)
            assert totals.balance_due == max(Decimal("0"), totals.total_amount - totals.amount_paid)


class TestPaymentStatus:

    @pytest.mark.parametrize("balance, paid, expected", [
        ("0", "0", "paid"),
        ("0", "100", "paid"),
        ("50", "50", "partial"),
        ("50", "0", "pending"),
    ])
    def test_derivation(self, balance, paid, expected):
        assert derive_payment_status(Decimal(balance), Decimal(paid)) == expected


def _coverage(total, **policy):
    values = {
        "deductible_amount": 0,
        "deductible_met": 0,
        "co_pay_amount": 0,
        "co_pay_percentage": 0,
        "annual_max_coverage": 100000,
        "annual_used_amount": 0,
    }
    values.update(policy)
    return compute_coverage(total, **values)


class TestCoverage:

    def test_deductible_then_percentage_co_pay_then_cap(self):
        result = _coverage(
            "1000.00",
            deductible_amount=200,
            deductible_met=50,
            co_pay_percentage=20,
            annual_max_coverage=1000,
            annual_used_amount=500,
        )
        assert result.deductible_applied == Decimal("150.00")
        assert result.co_pay_amount == Decimal("170.00")
        assert result.insurance_coverage == Decimal("500.00")
        assert result.patient_responsibility == Decimal("500.00")
        assert result.annual_remaining == Decimal("0.00")

    def test_flat_co_pay_wins_over_percentage(self):
        result = _coverage("200.00", co_pay_amount=25, co_pay_percentage=50)
        assert result.co_pay_amount == Decimal("25.00")
        assert result.insurance_coverage == Decimal("175.00")

    def test_deductible_already_met(self):
        result = _coverage("200.00", deductible_amount=100, deductible_met=150)
        assert result.deductible_applied == Decimal("0.00")
        assert result.insurance_coverage == Decimal("200.00")

    def test_exhausted_annual_max(self):
        result = _coverage("200.00", annual_max_coverage=1000, annual_used_amount=1200)
        assert result.insurance_coverage == Decimal("0.00")
        assert result.patient_responsibility == Decimal("200.00")
        assert result.annual_remaining == Decimal("0.00")

    def test_co_pay_larger_than_bill(self):
        result = _coverage("20.00", co_pay_amount=50)
        assert result.insurance_coverage == Decimal("0.00")
        assert result.patient_responsibility == Decimal("20.00")

    def test_bounds_for_arbitrary_policies(self):
        rng = random.Random(7)
        for _ in range(500):
            total = Decimal(rng.randint(0, 500000)) / 100
            annual_max = Decimal(rng.randint(0, 300000)) / 100
            used = Decimal(rng.randint(0, 400000)) / 100
            result = _coverage(
                total,
                deductible_amount=Decimal(rng.randint(0, 100000)) / 100,
                deductible_met=Decimal(rng.randint(0, 100000)) / 100,
                co_pay_amount=rng.choice([0, Decimal(rng.randint(0, 20000)) / 100]),
                co_pay_percentage=rng.randint(0, 100),
                annual_max_coverage=annual_max,
                annual_used_amount=used,
            )
            assert Decimal("0") <= result.insurance_coverage <= result.total_amount
            assert result.patient_responsibility >= 0
            assert result.insurance_coverage + result.patient_responsibility == result.total_amount
            assert result.insurance_coverage <= max(Decimal("0"), annual_max - used)
