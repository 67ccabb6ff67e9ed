from __future__ import annotations

from ..extensions import db
from hms.time_utils import to_utc_z


def _money(value):
    return str(value) if value is not None else None


class Bill(db.Model):
    """
    Bill aggregate root.

    INVARIANTS (maintained by billing_service on every mutation):
    - total_amount = (sub_total - total_discount) + total_tax
    - balance_due = max(0, total_amount - amount_paid)
    - payment_status derived from amount_paid vs total_amount

    `discount`/`tax`/`amount_due` mirror total_discount/total_tax/balance_due
    for older readers of the table.
    """
    __tablename__ = "bills"
    __table_args__ = (
        db.Index("ix_bills_patient_status", "patient_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bill_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    patient_id = db.Column(db.Integer, nullable=True, index=True)

    sub_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_due = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance_due = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Bill-level discount set by apply_discount (added to item discounts)
    bill_discount_type = db.Column(db.String(16), nullable=True)
    bill_discount_value = db.Column(db.Numeric(12, 2), nullable=True)
    bill_discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Bill-level tax rate set by calculate_tax; None means the default rate
    tax_rate = db.Column(db.Numeric(6, 2), nullable=True)

    # draft, pending, partial, paid, voided
    payment_status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    primary_insurance_id = db.Column(db.Integer, db.ForeignKey("patient_insurances.id"), nullable=True)
    insurance_claim_amount = db.Column(db.Numeric(12, 2), nullable=True)
    patient_responsibility = db.Column(db.Numeric(12, 2), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("BillItem", backref="bill", lazy=True, cascade="all, delete-orphan", order_by="BillItem.id")
    payments = db.relationship("Payment", backref="bill", lazy=True, order_by="Payment.id")
    primary_insurance = db.relationship("PatientInsurance")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_number": self.bill_number,
            "patient_id": self.patient_id,
            "sub_total": _money(self.sub_total),
            "total_discount": _money(self.total_discount),
            "total_tax": _money(self.total_tax),
            "total_amount": _money(self.total_amount),
            "amount_paid": _money(self.amount_paid),
            "balance_due": _money(self.balance_due),
            "payment_status": self.payment_status,
            "tax_rate": _money(self.tax_rate),
            "primary_insurance_id": self.primary_insurance_id,
            "insurance_claim_amount": _money(self.insurance_claim_amount),
            "patient_responsibility": _money(self.patient_responsibility),
            "created_at": to_utc_z(self.created_at),
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
        }


class BillItem(db.Model):
    """Line on a bill. total_price is unit_price x quantity before discounts."""
    __tablename__ = "bill_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    item_type = db.Column(db.String(32), nullable=True)  # consultation, lab, pharmacy, ...

    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "description": self.description,
            "item_type": self.item_type,
            "unit_price": _money(self.unit_price),
            "quantity": self.quantity,
            "discount_amount": _money(self.discount_amount),
            "discount_percentage": _money(self.discount_percentage),
            "total_price": _money(self.total_price),
        }


class Payment(db.Model):
    """
    Payment against a bill.

    Only status="completed" counts toward amount_paid.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    bill_id = db.Column(db.Integer, db.ForeignKey("bills.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    reference_number = db.Column(db.String(64), nullable=True)

    received_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "amount": _money(self.amount),
            "payment_method": self.payment_method,
            "status": self.status,
            "reference_number": self.reference_number,
            "created_at": to_utc_z(self.created_at),
        }


class InsuranceProvider(db.Model):
    __tablename__ = "insurance_providers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class PatientInsurance(db.Model):
    """
    A patient's policy with one provider.

    Coverage math lives in billing_service.calculate_insurance_coverage.
    """
    __tablename__ = "patient_insurances"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    patient_id = db.Column(db.Integer, nullable=True, index=True)
    insurance_provider_id = db.Column(db.Integer, db.ForeignKey("insurance_providers.id"), nullable=False)
    policy_number = db.Column(db.String(64), nullable=True)

    deductible_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    deductible_met = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    co_pay_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    co_pay_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    annual_max_coverage = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    annual_used_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    coverage_start_date = db.Column(db.Date, nullable=True)
    coverage_end_date = db.Column(db.Date, nullable=True)

    insurance_provider = db.relationship("InsuranceProvider", backref=db.backref("policies", lazy=True))


class BillingSetting(db.Model):
    """Key/value billing configuration (e.g. default_tax_rate)."""
    __tablename__ = "billing_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(64), nullable=False, unique=True)
    value = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
