from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

PAYMENT_CASH = "CASH"
PAYMENT_MPESA = "MPESA"
PAYMENT_MIXED = "MIXED"

VALID_PAYMENT_METHODS = [PAYMENT_CASH, PAYMENT_MPESA, PAYMENT_MIXED]


class Receipt(db.Model):
    """
    One completed sales transaction.

    OWNERSHIP: A receipt owns its sales. They are inserted in the same
    transaction as the receipt and deleted with it (cascade). Sales do not
    hold a reference back to the receipt object, only receipt_id.

    INVARIANT: total_amount_cents == sum(sale.total_amount_cents).
    """
    __tablename__ = "receipts"
    __table_args__ = (
        db.UniqueConstraint("receipt_number", name="uq_receipts_receipt_number"),
        db.Index("ix_receipts_transaction_date", "transaction_date"),
        db.Index("ix_receipts_cashier_date", "cashier_id", "transaction_date"),
        db.CheckConstraint("total_amount_cents >= 0", name="ck_receipts_total_non_negative"),
        db.CheckConstraint("cash_amount_cents >= 0", name="ck_receipts_cash_non_negative"),
        db.CheckConstraint("mpesa_amount_cents >= 0", name="ck_receipts_mpesa_non_negative"),
        db.CheckConstraint(
            "payment_method IN ('CASH', 'MPESA', 'MIXED')", name="ck_receipts_payment_method_valid"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable receipt number (e.g., "R1718031234567A1B2C")
    receipt_number = db.Column(db.String(64), nullable=False)

    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    total_amount_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, index=True)  # CASH, MPESA, MIXED
    cash_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    mpesa_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    mpesa_transaction_id = db.Column(db.String(64), nullable=True)

    # Tendered minus total, for cash over-tender
    change_due_cents = db.Column(db.Integer, nullable=False, default=0)

    cashier = db.relationship("User")
    sales = db.relationship(
        "Sale",
        order_by="Sale.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self, include_sales: bool = True) -> dict:
        data = {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "cashier": self.cashier.to_ref() if self.cashier else None,
            "transaction_date": to_utc_z(self.transaction_date),
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "cash_amount_cents": self.cash_amount_cents,
            "mpesa_amount_cents": self.mpesa_amount_cents,
            "mpesa_transaction_id": self.mpesa_transaction_id,
            "change_due_cents": self.change_due_cents,
        }
        if include_sales:
            data["sales"] = [sale.to_dict() for sale in self.sales]
        return data


class Sale(db.Model):
    """Line item on a receipt. Immutable once inserted."""
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sales_unit_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(
        db.Integer,
        db.ForeignKey("receipts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # Price captured at time of sale, never looked up again
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product", viewonly=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_amount_cents": self.total_amount_cents,
        }
