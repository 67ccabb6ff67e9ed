# Overview: Service-layer operations for bills; keeps monetary invariants under concurrent mutation.

"""
Bill Calculation Service

WHY: A bill's totals are derived data. Every mutation (item, discount,
tax, payment, insurance) recalculates them inside the same transaction
so readers never see a half-updated bill.

INVARIANTS (after every successful mutation):
- total_amount = (sub_total - total_discount) + total_tax
- balance_due = max(0, total_amount - amount_paid)
- payment_status: paid if balance_due <= 0, partial if amount_paid > 0,
  else pending (voided bills keep "voided")

DESIGN PRINCIPLES:
- Business-rule failures come back as BillingResult(success=False) with
  the error attached; nothing is written and a failed audit event is
  recorded after the rollback
- Malformed input types raise InvalidArgument before any transaction
- The bill row is locked (SELECT ... FOR UPDATE) and versioned; lock and
  version conflicts are retried with backoff, then ConcurrentModification
- All currency is Decimal, rounded half-up to cents (billing_math)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Bill, BillItem, Payment, PatientInsurance, BillingSetting
from hms.time_utils import utcnow, utc_today
from .audit_service import AuditLogger, AuditRecord, OUTCOME_FAILED
from .billing_math import (
    D,
    ZERO,
    DISCOUNT_TYPES,
    DISCOUNT_PERCENTAGE,
    STATUS_DRAFT,
    STATUS_VOIDED,
    BillTotals,
    compute_coverage,
    compute_totals,
    derive_balance,
    derive_payment_status,
    discount_amount_for,
    item_discount,
    money2,
)
from .concurrency import RetriesExhausted, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


# =============================================================================
# ERRORS
# =============================================================================

class BillingError(Exception):
    """Base for billing failures. `field` names the offending input."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidArgument(BillingError):
    pass


class ExceedsSubtotal(BillingError):
    pass


class InsuranceInactive(BillingError):
    pass


class InsuranceExpired(BillingError):
    pass


class ProviderInactive(BillingError):
    pass


class BillNotFound(BillingError):
    pass


class BillVoided(BillingError):
    pass


class ConcurrentModification(BillingError):
    pass


# =============================================================================
# CONSTANTS
# =============================================================================

PAYMENT_COMPLETED = "completed"
PAYMENT_VOIDED = "voided"

DEFAULT_TAX_RATE_SETTING = "default_tax_rate"

ACTION_BILL_CREATED = "BILL_CREATED"
ACTION_ITEM_ADDED = "BILL_ITEM_ADDED"
ACTION_ITEM_REMOVED = "BILL_ITEM_REMOVED"
ACTION_TOTALS_CALCULATED = "BILL_TOTALS_CALCULATED"
ACTION_DISCOUNT_APPLIED = "BILL_DISCOUNT_APPLIED"
ACTION_TAX_CALCULATED = "BILL_TAX_CALCULATED"
ACTION_BALANCE_UPDATED = "BILL_BALANCE_UPDATED"
ACTION_INSURANCE_APPLIED = "BILL_INSURANCE_APPLIED"
ACTION_PAYMENT_RECORDED = "PAYMENT_RECORDED"
ACTION_PAYMENT_VOIDED = "PAYMENT_VOIDED"
ACTION_BILL_VOIDED = "BILL_VOIDED"


# =============================================================================
# RESULTS AND SNAPSHOTS
# =============================================================================

@dataclass
class BillingResult:
    success: bool
    data: dict = field(default_factory=dict)
    message: str = ""
    error: BillingError | None = None

    @classmethod
    def ok(cls, data: dict, message: str) -> "BillingResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: BillingError) -> "BillingResult":
        return cls(success=False, message=str(error), error=error)

    def unwrap(self) -> dict:
        """Return data, or raise the attached error."""
        if not self.success:
            raise self.error
        return self.data


@dataclass(frozen=True)
class ItemSnapshot:
    id: int
    description: str
    item_type: str | None
    unit_price: Decimal
    quantity: int
    discount_amount: Decimal
    discount_percentage: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class PaymentSnapshot:
    id: int
    amount: Decimal
    status: str
    payment_method: str


@dataclass(frozen=True)
class BillSnapshot:
    """A bill with its lines and payments, read in one go."""
    id: int
    bill_number: str
    patient_id: int | None
    payment_status: str
    tax_rate: Decimal | None
    discount_type: str | None
    discount_value: Decimal | None
    total_amount: Decimal
    amount_paid: Decimal
    balance_due: Decimal
    items: tuple[ItemSnapshot, ...]
    payments: tuple[PaymentSnapshot, ...]

    @property
    def sub_total(self) -> Decimal:
        return money2(sum((item.total_price for item in self.items), ZERO))

    @property
    def line_discount(self) -> Decimal:
        return money2(sum(
            (
                item_discount(item.unit_price, item.quantity, item.discount_amount, item.discount_percentage)
                for item in self.items
            ),
            ZERO,
        ))

    @property
    def completed_payment_amounts(self) -> list[Decimal]:
        return [payment.amount for payment in self.payments if payment.status == PAYMENT_COMPLETED]


def _snapshot(bill: Bill) -> BillSnapshot:
    items = db.session.query(BillItem).filter_by(bill_id=bill.id).order_by(BillItem.id).all()
    payments = db.session.query(Payment).filter_by(bill_id=bill.id).order_by(Payment.id).all()
    return BillSnapshot(
        id=bill.id,
        bill_number=bill.bill_number,
        patient_id=bill.patient_id,
        payment_status=bill.payment_status,
        tax_rate=D(bill.tax_rate) if bill.tax_rate is not None else None,
        discount_type=bill.bill_discount_type,
        discount_value=D(bill.bill_discount_value) if bill.bill_discount_value is not None else None,
        total_amount=money2(bill.total_amount),
        amount_paid=money2(bill.amount_paid),
        balance_due=money2(bill.balance_due),
        items=tuple(
            ItemSnapshot(
                id=item.id,
                description=item.description,
                item_type=item.item_type,
                unit_price=money2(item.unit_price),
                quantity=item.quantity,
                discount_amount=money2(item.discount_amount),
                discount_percentage=D(item.discount_percentage),
                total_price=money2(item.total_price),
            )
            for item in items
        ),
        payments=tuple(
            PaymentSnapshot(
                id=payment.id,
                amount=money2(payment.amount),
                status=payment.status,
                payment_method=payment.payment_method,
            )
            for payment in payments
        ),
    )


def load_bill_with_items_and_payments(bill_id: int, lock: bool = False) -> BillSnapshot:
    """
    Read a bill, its items and its payments.

    lock=True takes the row lock; only meaningful inside a transaction
    that goes on to mutate the bill.
    """
    query = db.session.query(Bill).filter_by(id=bill_id)
    if lock:
        query = lock_for_update(query)
    bill = query.first()
    if bill is None:
        raise BillNotFound(f"Bill {bill_id} not found", field="bill_id")
    return _snapshot(bill)


# =============================================================================
# INPUT PARSING
# =============================================================================

def _parse_decimal(value, field_name: str) -> Decimal:
    try:
        return D(value)
    except ValueError:
        raise InvalidArgument(f"{field_name} must be a number", field=field_name)


def _parse_quantity(value) -> int:
    quantity = _parse_decimal(value, "quantity")
    if quantity != quantity.to_integral_value():
        raise InvalidArgument("quantity must be a whole number", field="quantity")
    return int(quantity)


# =============================================================================
# ENGINE
# =============================================================================

class BillingEngine:
    """Bill mutations and calculations. One public call = one transaction."""

    def __init__(self, audit_logger: AuditLogger | None = None, *, retry_attempts: int | None = None):
        self.audit = audit_logger or AuditLogger()
        self.retry_attempts = retry_attempts

    # -------------------------------------------------------------------------
    # configuration
    # -------------------------------------------------------------------------

    def get_default_tax_rate(self) -> Decimal:
        """billing_settings.default_tax_rate, else DEFAULT_TAX_RATE config, else 0."""
        setting = db.session.query(BillingSetting).filter_by(key=DEFAULT_TAX_RATE_SETTING).first()
        if setting is not None and setting.value not in (None, ""):
            try:
                return D(setting.value)
            except ValueError:
                logger.warning("Ignoring malformed %s setting: %r", DEFAULT_TAX_RATE_SETTING, setting.value)
        return D(current_app.config.get("DEFAULT_TAX_RATE", 0))

    def _attempts(self) -> int:
        if self.retry_attempts is not None:
            return self.retry_attempts
        return int(current_app.config.get("BILLING_RETRY_ATTEMPTS", 3))

    # -------------------------------------------------------------------------
    # transaction plumbing
    # -------------------------------------------------------------------------

    def _run(self, action: str, bill_id: int, actor_user_id, body, *, allow_voided: bool = False, details=None):
        """
        Lock the bill, run body(bill, snapshot) and commit if it succeeded.

        body returns a BillingResult. A failed result rolls everything back,
        as does any exception escaping body.
        """
        def _op():
            bill = lock_for_update(db.session.query(Bill).filter_by(id=bill_id)).first()
            if bill is None:
                return BillingResult.fail(BillNotFound(f"Bill {bill_id} not found", field="bill_id"))
            if bill.payment_status == STATUS_VOIDED and not allow_voided:
                return BillingResult.fail(BillVoided(f"Bill {bill.bill_number} is voided", field="bill_id"))

            result = body(bill, _snapshot(bill))
            if result.success:
                self.audit.record(AuditRecord(
                    action=action,
                    actor_user_id=actor_user_id,
                    target_type="Bill",
                    target_id=bill.id,
                    details=_jsonable(details or {}),
                ))
                db.session.commit()
            return result

        try:
            result = run_with_retry(_op, attempts=self._attempts())
        except RetriesExhausted as exc:
            db.session.rollback()
            error = ConcurrentModification(
                f"Bill {bill_id} was modified concurrently; gave up after {exc.attempts} attempts",
                field="bill_id",
            )
            self._record_failure(action, bill_id, actor_user_id, error, details)
            raise error from exc
        except Exception:
            db.session.rollback()
            raise

        if not result.success:
            db.session.rollback()
            self._record_failure(action, bill_id, actor_user_id, result.error, details)
        return result

    def _record_failure(self, action, bill_id, actor_user_id, error: BillingError, details=None) -> None:
        payload = dict(details or {})
        payload["error"] = type(error).__name__
        if error.field:
            payload["field"] = error.field
        self.audit.record(
            AuditRecord(
                action=action,
                actor_user_id=actor_user_id,
                target_type="Bill",
                target_id=bill_id,
                outcome=OUTCOME_FAILED,
                reason=str(error),
                details=_jsonable(payload),
            ),
            commit=True,
        )

    def _recalculate(self, bill: Bill) -> BillTotals:
        """Recompute and persist every derived field on a locked bill."""
        snapshot = _snapshot(bill)
        tax_rate = snapshot.tax_rate if snapshot.tax_rate is not None else self.get_default_tax_rate()
        totals = compute_totals(
            snapshot.items,
            snapshot.completed_payment_amounts,
            tax_rate=tax_rate,
            discount_type=snapshot.discount_type,
            discount_value=snapshot.discount_value,
        )

        bill.sub_total = totals.sub_total
        bill.bill_discount_amount = totals.bill_discount
        bill.discount = totals.total_discount
        bill.total_discount = totals.total_discount
        bill.tax = totals.tax
        bill.total_tax = totals.tax
        bill.total_amount = totals.total_amount
        self._apply_balance(bill, totals.amount_paid, totals.total_amount)
        return totals

    @staticmethod
    def _apply_balance(bill: Bill, amount_paid: Decimal, total_amount: Decimal) -> Decimal:
        # Shared by calculate_totals and update_balance_due
        balance_due = derive_balance(total_amount, amount_paid)
        bill.amount_paid = amount_paid
        bill.amount_due = balance_due
        bill.balance_due = balance_due
        if bill.payment_status != STATUS_VOIDED:
            bill.payment_status = derive_payment_status(balance_due, amount_paid)
        return balance_due

    # =========================================================================
    # BILL LIFECYCLE
    # =========================================================================

    def create_bill(
        self,
        patient_id: int | None = None,
        created_by_user_id: int | None = None,
        bill_number: str | None = None,
    ) -> BillingResult:
        """Create an empty draft bill."""
        bill = Bill(
            bill_number=bill_number or f"TMP-{uuid.uuid4().hex}",
            patient_id=patient_id,
            payment_status=STATUS_DRAFT,
            created_by_user_id=created_by_user_id,
            created_at=utcnow(),
        )
        db.session.add(bill)
        db.session.flush()
        if bill_number is None:
            bill.bill_number = f"BILL-{bill.id:06d}"

        self.audit.record(AuditRecord(
            action=ACTION_BILL_CREATED,
            actor_user_id=created_by_user_id,
            target_type="Bill",
            target_id=bill.id,
            details={"patient_id": patient_id},
        ))
        db.session.commit()
        return BillingResult.ok(bill.to_dict(), f"Bill {bill.bill_number} created")

    def add_item(
        self,
        bill_id: int,
        description: str,
        unit_price,
        quantity=1,
        *,
        discount_amount=0,
        discount_percentage=0,
        item_type: str | None = None,
        actor_user_id: int | None = None,
    ) -> BillingResult:
        unit_price = _parse_decimal(unit_price, "unit_price")
        quantity = _parse_quantity(quantity)
        discount_amount = _parse_decimal(discount_amount, "discount_amount")
        discount_percentage = _parse_decimal(discount_percentage, "discount_percentage")

        def _body(bill, snapshot):
            if not description or not str(description).strip():
                return BillingResult.fail(InvalidArgument("Description is required", field="description"))
            if unit_price < 0:
                return BillingResult.fail(InvalidArgument("Unit price cannot be negative", field="unit_price"))
            if quantity <= 0:
                return BillingResult.fail(InvalidArgument("Quantity must be positive", field="quantity"))
            if discount_amount < 0:
                return BillingResult.fail(InvalidArgument("Discount cannot be negative", field="discount_amount"))
            if discount_percentage < 0 or discount_percentage > 100:
                return BillingResult.fail(InvalidArgument(
                    "Discount percentage must be between 0 and 100",
                    field="discount_percentage",
                ))

            line_total = money2(unit_price * quantity)
            if item_discount(unit_price, quantity, discount_amount, discount_percentage) > line_total:
                return BillingResult.fail(ExceedsSubtotal(
                    "Item discount cannot exceed the item total",
                    field="discount_amount",
                ))

            item = BillItem(
                bill_id=bill.id,
                description=str(description).strip(),
                item_type=item_type,
                unit_price=money2(unit_price),
                quantity=quantity,
                discount_amount=money2(discount_amount),
                discount_percentage=discount_percentage,
                total_price=line_total,
                created_at=utcnow(),
            )
            db.session.add(item)
            db.session.flush()
            totals = self._recalculate(bill)
            return BillingResult.ok(
                {"item": item.to_dict(), "totals": totals.to_dict()},
                "Item added successfully",
            )

        return self._run(ACTION_ITEM_ADDED, bill_id, actor_user_id, _body, details={
            "description": description,
            "unit_price": unit_price,
            "quantity": quantity,
        })

    def remove_item(self, bill_id: int, item_id: int, *, actor_user_id: int | None = None) -> BillingResult:
        def _body(bill, snapshot):
            item = db.session.query(BillItem).filter_by(id=item_id, bill_id=bill.id).first()
            if item is None:
                return BillingResult.fail(InvalidArgument(f"Item {item_id} not found on bill", field="item_id"))
            db.session.delete(item)
            db.session.flush()
            totals = self._recalculate(bill)
            return BillingResult.ok({"totals": totals.to_dict()}, "Item removed successfully")

        return self._run(ACTION_ITEM_REMOVED, bill_id, actor_user_id, _body, details={"item_id": item_id})

    def void_bill(self, bill_id: int, reason: str, *, actor_user_id: int | None = None) -> BillingResult:
        """Void a bill. Refused while any completed payment exists."""
        def _body(bill, snapshot):
            if not reason or not reason.strip():
                return BillingResult.fail(InvalidArgument("A void reason is required", field="reason"))
            if snapshot.completed_payment_amounts:
                return BillingResult.fail(InvalidArgument(
                    "Cannot void a bill with completed payments",
                    field="payments",
                ))
            bill.payment_status = STATUS_VOIDED
            bill.voided_at = utcnow()
            bill.voided_by_user_id = actor_user_id
            bill.void_reason = reason.strip()
            return BillingResult.ok(bill.to_dict(), f"Bill {bill.bill_number} voided")

        return self._run(ACTION_BILL_VOIDED, bill_id, actor_user_id, _body, details={"reason": reason})

    # =========================================================================
    # CALCULATIONS
    # =========================================================================

    def calculate_totals(self, bill_id: int, *, actor_user_id: int | None = None) -> BillingResult:
        """Recompute sub_total, discount, tax, total, paid, balance and status."""
        def _body(bill, snapshot):
            totals = self._recalculate(bill)
            return BillingResult.ok(totals.to_dict(), "Bill totals calculated successfully")

        return self._run(ACTION_TOTALS_CALCULATED, bill_id, actor_user_id, _body, allow_voided=True)

    def apply_discount(self, bill_id: int, amount, discount_type: str, *, actor_user_id: int | None = None) -> BillingResult:
        """
        Set the bill-level discount (fixed amount or percentage of sub_total).

        Validation order: type, negative amount, percentage above 100,
        discount above sub_total. The bill-level discount adds to item
        discounts; calling again replaces the previous bill-level discount.
        """
        amount = _parse_decimal(amount, "amount")

        def _body(bill, snapshot):
            if discount_type not in DISCOUNT_TYPES:
                return BillingResult.fail(InvalidArgument(
                    'Invalid discount type. Must be "fixed" or "percentage".',
                    field="type",
                ))
            if amount < 0:
                return BillingResult.fail(InvalidArgument("Discount amount cannot be negative.", field="amount"))
            if discount_type == DISCOUNT_PERCENTAGE and amount > 100:
                return BillingResult.fail(InvalidArgument("Percentage discount cannot exceed 100%.", field="amount"))

            sub_total = snapshot.sub_total
            discount = discount_amount_for(sub_total, amount, discount_type)
            if discount > sub_total:
                return BillingResult.fail(ExceedsSubtotal(
                    "Discount amount cannot exceed the bill subtotal.",
                    field="amount",
                ))
            if discount > sub_total - snapshot.line_discount:
                return BillingResult.fail(ExceedsSubtotal(
                    "Discount plus item discounts cannot exceed the bill subtotal.",
                    field="amount",
                ))

            bill.bill_discount_type = discount_type
            bill.bill_discount_value = amount
            totals = self._recalculate(bill)
            return BillingResult.ok(
                {
                    "discount_type": discount_type,
                    "discount_value": amount,
                    "discount_amount": totals.bill_discount,
                    "totals": totals.to_dict(),
                },
                "Discount applied successfully",
            )

        return self._run(ACTION_DISCOUNT_APPLIED, bill_id, actor_user_id, _body, details={
            "amount": amount,
            "type": discount_type,
        })

    def calculate_tax(self, bill_id: int, rate, *, actor_user_id: int | None = None) -> BillingResult:
        """Set the bill's tax rate (percent) and recompute. data["tax_amount"] is the new tax."""
        rate = _parse_decimal(rate, "rate")

        def _body(bill, snapshot):
            if rate < 0:
                return BillingResult.fail(InvalidArgument("Tax rate cannot be negative.", field="rate"))
            bill.tax_rate = rate
            totals = self._recalculate(bill)
            return BillingResult.ok(
                {"tax_rate": rate, "tax_amount": totals.tax, "totals": totals.to_dict()},
                "Tax calculated successfully",
            )

        return self._run(ACTION_TAX_CALCULATED, bill_id, actor_user_id, _body, details={"rate": rate})

    def update_balance_due(self, bill_id: int, *, actor_user_id: int | None = None) -> BillingResult:
        """Recompute amount_paid from completed payments against the stored total."""
        def _body(bill, snapshot):
            amount_paid = money2(sum(snapshot.completed_payment_amounts, ZERO))
            balance_due = self._apply_balance(bill, amount_paid, snapshot.total_amount)
            return BillingResult.ok(
                {
                    "amount_paid": amount_paid,
                    "balance_due": balance_due,
                    "payment_status": bill.payment_status,
                },
                "Balance updated successfully",
            )

        return self._run(ACTION_BALANCE_UPDATED, bill_id, actor_user_id, _body, allow_voided=True)

    def calculate_insurance_coverage(
        self,
        bill_id: int,
        insurance_id: int,
        *,
        actor_user_id: int | None = None,
    ) -> BillingResult:
        """
        Split the bill total between the patient's policy and the patient.

        Totals are recalculated first so coverage is based on the current
        total. Persists primary_insurance_id, insurance_claim_amount and
        patient_responsibility.
        """
        def _body(bill, snapshot):
            insurance = db.session.get(PatientInsurance, insurance_id)
            if insurance is None:
                return BillingResult.fail(InvalidArgument(
                    f"Insurance policy {insurance_id} not found",
                    field="insurance_id",
                ))
            if not insurance.is_active:
                return BillingResult.fail(InsuranceInactive("Insurance policy is not active.", field="insurance_id"))
            if insurance.coverage_end_date and insurance.coverage_end_date < utc_today():
                return BillingResult.fail(InsuranceExpired("Insurance coverage has expired.", field="insurance_id"))
            provider = insurance.insurance_provider
            if provider is None or not provider.is_active:
                return BillingResult.fail(ProviderInactive("Insurance provider is not active.", field="insurance_id"))

            totals = self._recalculate(bill)
            coverage = compute_coverage(
                totals.total_amount,
                deductible_amount=insurance.deductible_amount,
                deductible_met=insurance.deductible_met,
                co_pay_amount=insurance.co_pay_amount,
                co_pay_percentage=insurance.co_pay_percentage,
                annual_max_coverage=insurance.annual_max_coverage,
                annual_used_amount=insurance.annual_used_amount,
            )

            bill.primary_insurance_id = insurance.id
            bill.insurance_claim_amount = coverage.insurance_coverage
            bill.patient_responsibility = coverage.patient_responsibility
            return BillingResult.ok(coverage.to_dict(), "Insurance coverage calculated successfully")

        return self._run(ACTION_INSURANCE_APPLIED, bill_id, actor_user_id, _body, details={
            "insurance_id": insurance_id,
        })

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    def record_payment(
        self,
        bill_id: int,
        amount,
        payment_method: str = "cash",
        *,
        reference_number: str | None = None,
        actor_user_id: int | None = None,
    ) -> BillingResult:
        """Record a completed payment and recompute the balance."""
        amount = _parse_decimal(amount, "amount")

        def _body(bill, snapshot):
            if amount <= 0:
                return BillingResult.fail(InvalidArgument("Payment amount must be positive", field="amount"))
            if not payment_method:
                return BillingResult.fail(InvalidArgument("Payment method is required", field="payment_method"))

            payment = Payment(
                bill_id=bill.id,
                amount=money2(amount),
                payment_method=payment_method,
                status=PAYMENT_COMPLETED,
                reference_number=reference_number,
                received_by_user_id=actor_user_id,
                created_at=utcnow(),
            )
            db.session.add(payment)
            db.session.flush()
            totals = self._recalculate(bill)
            return BillingResult.ok(
                {"payment": payment.to_dict(), "totals": totals.to_dict(), "payment_status": bill.payment_status},
                "Payment recorded successfully",
            )

        return self._run(ACTION_PAYMENT_RECORDED, bill_id, actor_user_id, _body, details={
            "amount": amount,
            "payment_method": payment_method,
        })

    def void_payment(
        self,
        payment_id: int,
        reason: str | None = None,
        *,
        actor_user_id: int | None = None,
    ) -> BillingResult:
        """Mark a completed payment voided and recompute its bill."""
        payment = db.session.get(Payment, payment_id)
        if payment is None:
            error = InvalidArgument(f"Payment {payment_id} not found", field="payment_id")
            self._record_failure(ACTION_PAYMENT_VOIDED, None, actor_user_id, error, {"payment_id": payment_id})
            return BillingResult.fail(error)
        bill_id = payment.bill_id

        def _body(bill, snapshot):
            current = db.session.query(Payment).filter_by(id=payment_id).first()
            if current.status != PAYMENT_COMPLETED:
                return BillingResult.fail(InvalidArgument(
                    f"Payment {payment_id} is already {current.status}",
                    field="payment_id",
                ))
            current.status = PAYMENT_VOIDED
            db.session.flush()
            totals = self._recalculate(bill)
            return BillingResult.ok(
                {"payment": current.to_dict(), "totals": totals.to_dict(), "payment_status": bill.payment_status},
                "Payment voided successfully",
            )

        return self._run(ACTION_PAYMENT_VOIDED, bill_id, actor_user_id, _body, details={
            "payment_id": payment_id,
            "reason": reason,
        })


def _jsonable(details: dict) -> dict:
    return {key: (str(value) if isinstance(value, Decimal) else value) for key, value in details.items()}


def get_billing_engine() -> BillingEngine:
    """Engine configured for the current Flask app."""
    return current_app.extensions["hms.billing"]
