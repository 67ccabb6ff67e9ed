"""
Bill calculation service tests.

Verifies:
- total_amount = (sub_total - total_discount) + total_tax after every mutation
- balance_due and payment_status follow completed payments
- Rule violations fail without writing and leave a failed audit event
- Voided bills reject mutations; conflicts surface as ConcurrentModification
"""

from decimal import Decimal

import pytest
from sqlalchemy.orm.exc import StaleDataError

from hms.models import AuditEvent, Bill, BillItem, BillingSetting, Payment
from hms.services import billing_service
from hms.services.billing_service import (
    BillNotFound,
    BillVoided,
    ConcurrentModification,
    ExceedsSubtotal,
    InvalidArgument,
    load_bill_with_items_and_payments,
)


@pytest.fixture
def new_bill(billing):
    def _make(*lines):
        bill_id = billing.create_bill(patient_id=1).unwrap()["id"]
        for description, price, qty in lines:
            billing.add_item(bill_id, description, price, qty).unwrap()
        return bill_id
    return _make


def _bill(db_session, bill_id):
    db_session.expire_all()
    return db_session.get(Bill, bill_id)


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestLifecycle:

    def test_new_bill_is_draft(self, billing, db_session):
        data = billing.create_bill(patient_id=7, created_by_user_id=None).unwrap()

        assert data["payment_status"] == "draft"
        assert data["bill_number"] == f"BILL-{data['id']:06d}"
        assert db_session.query(AuditEvent).filter_by(action="BILL_CREATED").count() == 1

    def test_explicit_bill_number(self, billing):
        assert billing.create_bill(bill_number="INV-77").unwrap()["bill_number"] == "INV-77"

    def test_first_item_moves_to_pending(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "120.00", 1))

        bill = _bill(db_session, bill_id)
        assert bill.payment_status == "pending"
        assert bill.total_amount == Decimal("120.00")

    def test_remove_item_recalculates(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "120.00", 1))
        item_id = billing.add_item(bill_id, "X-ray", "80.00").unwrap()["item"]["id"]
        assert _bill(db_session, bill_id).sub_total == Decimal("200.00")

        data = billing.remove_item(bill_id, item_id).unwrap()

        assert data["totals"]["subtotal"] == Decimal("120.00")
        assert _bill(db_session, bill_id).total_amount == Decimal("120.00")

    def test_remove_unknown_item(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "120.00", 1))
        result = billing.remove_item(bill_id, 999999)
        assert not result.success
        assert result.error.field == "item_id"

    @pytest.mark.parametrize("kwargs, field", [
        ({"description": "", "unit_price": "10"}, "description"),
        ({"description": "Gauze", "unit_price": "-1"}, "unit_price"),
        ({"description": "Gauze", "unit_price": "10", "quantity": 0}, "quantity"),
        ({"description": "Gauze", "unit_price": "10", "discount_percentage": "120"}, "discount_percentage"),
    ])
    def test_invalid_items(self, billing, db_session, new_bill, kwargs, field):
        bill_id = new_bill()
        result = billing.add_item(bill_id, **kwargs)

        assert not result.success
        assert isinstance(result.error, InvalidArgument)
        assert result.error.field == field
        assert load_bill_with_items_and_payments(bill_id).items == ()

    def test_item_discount_above_line_total(self, billing, new_bill):
        bill_id = new_bill()
        result = billing.add_item(bill_id, "Gauze", "10.00", 2, discount_amount="25.00")
        assert isinstance(result.error, ExceedsSubtotal)

    @pytest.mark.parametrize("quantity", ["two", 1.5])
    def test_malformed_quantity_raises(self, billing, new_bill, quantity):
        bill_id = new_bill()
        with pytest.raises(InvalidArgument) as exc_info:
            billing.add_item(bill_id, "Gauze", "10.00", quantity)
        assert exc_info.value.field == "quantity"


# =============================================================================
# TOTALS
# =============================================================================


class TestTotals:

    def test_item_discount_and_tax(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "200.00", 1))
        billing.add_item(bill_id, "Blood panel", "75.00", discount_amount="15.00").unwrap()

        data = billing.calculate_tax(bill_id, 10).unwrap()

        assert data["tax_amount"] == Decimal("26.00")
        assert data["totals"] == {
            "subtotal": Decimal("275.00"),
            "discount": Decimal("15.00"),
            "tax": Decimal("26.00"),
            "total_amount": Decimal("286.00"),
            "amount_paid": Decimal("0.00"),
            "balance_due": Decimal("286.00"),
        }
        bill = _bill(db_session, bill_id)
        assert bill.tax_rate == Decimal("10")
        assert bill.total_tax == Decimal("26.00")

    def test_recalculation_is_idempotent(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "200.00", 1), ("Dressing", "12.35", 3))
        billing.apply_discount(bill_id, 5, "percentage").unwrap()
        billing.calculate_tax(bill_id, "7.5").unwrap()

        first = billing.calculate_totals(bill_id).unwrap()
        second = billing.calculate_totals(bill_id).unwrap()

        assert first == second
        # 237.05 - 11.85 discount = 225.20, + 16.89 tax
        assert first["total_amount"] == Decimal("242.09")

    def test_default_tax_rate_from_settings(self, billing, db_session, new_bill):
        db_session.add(BillingSetting(key="default_tax_rate", value="5"))
        db_session.commit()

        bill_id = new_bill(("Consultation", "100.00", 1))

        assert _bill(db_session, bill_id).total_amount == Decimal("105.00")
        assert billing.get_default_tax_rate() == Decimal("5")

    def test_malformed_setting_falls_back_to_config(self, billing, db_session):
        db_session.add(BillingSetting(key="default_tax_rate", value="ten"))
        db_session.commit()
        assert billing.get_default_tax_rate() == Decimal("0")

    def test_negative_tax_rate(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        result = billing.calculate_tax(bill_id, -1)
        assert isinstance(result.error, InvalidArgument)
        assert result.error.field == "rate"

    def test_end_to_end(self, billing, db_session):
        db_session.add(BillingSetting(key="default_tax_rate", value="10"))
        db_session.commit()
        bill_id = billing.create_bill(patient_id=3).unwrap()["id"]
        billing.add_item(bill_id, "Syringe pack", "50.00", 2).unwrap()
        billing.add_item(bill_id, "Saline", "25.00", 3).unwrap()

        discount = billing.apply_discount(bill_id, 10, "percentage").unwrap()
        assert discount["discount_amount"] == Decimal("17.50")

        totals = billing.calculate_totals(bill_id).unwrap()
        assert totals["subtotal"] == Decimal("175.00")
        assert totals["tax"] == Decimal("15.75")
        assert totals["total_amount"] == Decimal("173.25")

        payment = billing.record_payment(bill_id, "173.25", "card").unwrap()
        assert payment["payment_status"] == "paid"
        assert payment["totals"]["balance_due"] == Decimal("0.00")


# =============================================================================
# DISCOUNTS
# =============================================================================


class TestDiscounts:

    def test_fixed_discount_above_sub_total(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))

        result = billing.apply_discount(bill_id, 150, "fixed")

        assert not result.success
        assert isinstance(result.error, ExceedsSubtotal)
        assert _bill(db_session, bill_id).total_discount == Decimal("0.00")
        failed = db_session.query(AuditEvent).filter_by(action="BILL_DISCOUNT_APPLIED").one()
        assert failed.outcome == "failed"
        assert failed.details["error"] == "ExceedsSubtotal"

    def test_percentage_above_100(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        result = billing.apply_discount(bill_id, 101, "percentage")
        assert isinstance(result.error, InvalidArgument)
        assert result.error.field == "amount"

    def test_validation_order(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        assert billing.apply_discount(bill_id, -5, "bogus").error.field == "type"
        assert billing.apply_discount(bill_id, -5, "fixed").error.field == "amount"

    def test_discount_plus_item_discounts(self, billing, new_bill):
        bill_id = new_bill()
        billing.add_item(bill_id, "Consultation", "100.00", discount_amount="30.00").unwrap()

        result = billing.apply_discount(bill_id, 80, "fixed")

        assert isinstance(result.error, ExceedsSubtotal)
        assert billing.apply_discount(bill_id, 70, "fixed").success

    def test_discount_adds_to_item_discounts(self, billing, new_bill):
        bill_id = new_bill()
        billing.add_item(bill_id, "Consultation", "100.00", discount_amount="10.00").unwrap()

        data = billing.apply_discount(bill_id, 10, "fixed").unwrap()

        assert data["totals"]["discount"] == Decimal("20.00")
        assert data["totals"]["total_amount"] == Decimal("80.00")

    def test_percentage_discount_tracks_new_items(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        billing.apply_discount(bill_id, 10, "percentage").unwrap()

        billing.add_item(bill_id, "X-ray", "100.00").unwrap()

        bill = _bill(db_session, bill_id)
        assert bill.bill_discount_amount == Decimal("20.00")
        assert bill.total_amount == Decimal("180.00")

    def test_replacing_discount(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        billing.apply_discount(bill_id, 10, "fixed").unwrap()
        data = billing.apply_discount(bill_id, 25, "fixed").unwrap()
        assert data["totals"]["discount"] == Decimal("25.00")

    def test_malformed_amount_raises(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        with pytest.raises(InvalidArgument) as exc_info:
            billing.apply_discount(bill_id, "ten", "fixed")
        assert exc_info.value.field == "amount"


# =============================================================================
# PAYMENTS AND BALANCE
# =============================================================================


class TestPayments:

    def test_partial_then_paid(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))

        assert billing.record_payment(bill_id, 40).unwrap()["payment_status"] == "partial"
        assert billing.record_payment(bill_id, 60).unwrap()["payment_status"] == "paid"

    def test_non_positive_payment(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        result = billing.record_payment(bill_id, 0)
        assert isinstance(result.error, InvalidArgument)

    def test_void_payment_reopens_balance(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        payment_id = billing.record_payment(bill_id, 100).unwrap()["payment"]["id"]

        data = billing.void_payment(payment_id, "card chargeback").unwrap()

        assert data["payment_status"] == "pending"
        assert data["totals"]["balance_due"] == Decimal("100.00")
        assert not billing.void_payment(payment_id).success

    def test_void_unknown_payment(self, billing, db_session):
        result = billing.void_payment(999999)
        assert result.error.field == "payment_id"

    def test_update_balance_due_counts_completed_payments_only(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        db_session.add_all([
            Payment(bill_id=bill_id, amount=Decimal("30.00"), status="completed"),
            Payment(bill_id=bill_id, amount=Decimal("50.00"), status="voided"),
        ])
        db_session.commit()

        data = billing.update_balance_due(bill_id).unwrap()

        assert data == {
            "amount_paid": Decimal("30.00"),
            "balance_due": Decimal("70.00"),
            "payment_status": "partial",
        }


# =============================================================================
# VOIDING
# =============================================================================


class TestVoiding:

    def test_void_bill(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))

        data = billing.void_bill(bill_id, "duplicate").unwrap()

        assert data["payment_status"] == "voided"
        assert data["void_reason"] == "duplicate"

    def test_void_requires_reason(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        assert billing.void_bill(bill_id, "  ").error.field == "reason"

    def test_cannot_void_paid_bill(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        billing.record_payment(bill_id, 20).unwrap()

        result = billing.void_bill(bill_id, "duplicate")

        assert isinstance(result.error, InvalidArgument)
        assert result.error.field == "payments"
        assert _bill(db_session, bill_id).payment_status == "partial"

    def test_voided_bill_rejects_mutations(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        billing.void_bill(bill_id, "duplicate").unwrap()

        assert isinstance(billing.add_item(bill_id, "Gauze", "5.00").error, BillVoided)
        assert isinstance(billing.apply_discount(bill_id, 5, "fixed").error, BillVoided)
        assert isinstance(billing.record_payment(bill_id, 5).error, BillVoided)

    def test_voided_bill_keeps_status_on_recalc(self, billing, db_session, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 1))
        billing.void_bill(bill_id, "duplicate").unwrap()

        billing.calculate_totals(bill_id).unwrap()
        billing.update_balance_due(bill_id).unwrap()

        assert _bill(db_session, bill_id).payment_status == "voided"


# =============================================================================
# ERRORS AND CONCURRENCY
# =============================================================================


class TestErrors:

    def test_unknown_bill(self, billing, db_session):
        result = billing.calculate_totals(999999)

        assert isinstance(result.error, BillNotFound)
        with pytest.raises(BillNotFound):
            result.unwrap()
        with pytest.raises(BillNotFound):
            load_bill_with_items_and_payments(999999)

    def test_snapshot(self, billing, new_bill):
        bill_id = new_bill(("Consultation", "100.00", 2))
        billing.record_payment(bill_id, 50, "cash", reference_number="R-1").unwrap()

        snapshot = load_bill_with_items_and_payments(bill_id)

        assert snapshot.sub_total == Decimal("200.00")
        assert [item.quantity for item in snapshot.items] == [2]
        assert snapshot.completed_payment_amounts == [Decimal("50.00")]

    def test_conflict_raises_concurrent_modification(self, billing, db_session, new_bill, monkeypatch):
        bill_id = new_bill(("Consultation", "100.00", 1))

        def _conflict(query):
            raise StaleDataError("bills row changed underneath us")

        monkeypatch.setattr(billing_service, "lock_for_update", _conflict)

        with pytest.raises(ConcurrentModification):
            billing.calculate_totals(bill_id)

        failed = db_session.query(AuditEvent).filter_by(action="BILL_TOTALS_CALCULATED", outcome="failed").one()
        assert failed.details["error"] == "ConcurrentModification"

    def test_unexpected_error_rolls_back_flushed_rows(self, billing, db_session, new_bill, monkeypatch):
        bill_id = new_bill(("Consultation", "100.00", 1))

        def _broken(*args, **kwargs):
            raise RuntimeError("totals unavailable")

        monkeypatch.setattr(billing_service, "compute_totals", _broken)

        with pytest.raises(RuntimeError):
            billing.add_item(bill_id, "X-Ray", "60.00")

        assert not db_session.new
        assert db_session.query(BillItem).filter_by(bill_id=bill_id).count() == 1
