from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow

ADJUSTMENT_ADDITION = "ADDITION"
ADJUSTMENT_SUBTRACTION = "SUBTRACTION"
ADJUSTMENT_CORRECTION = "CORRECTION"

VALID_ADJUSTMENT_TYPES = [ADJUSTMENT_ADDITION, ADJUSTMENT_SUBTRACTION, ADJUSTMENT_CORRECTION]


class StockAdjustment(db.Model):
    """
    Manual change to a product's stock outside of a sale.

    IMMUTABLE: Append-only audit record. Never updated or deleted.
    quantity_change is stored exactly as requested (signed).
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adjustments_date", "adjustment_date"),
        db.Index("ix_stock_adjustments_product_date", "product_id", "adjustment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity_change = db.Column(db.Integer, nullable=False)
    adjustment_type = db.Column(db.String(16), nullable=False)  # ADDITION, SUBTRACTION, CORRECTION
    reason = db.Column(db.String(500), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    adjustment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", viewonly=True)
    user = db.relationship("User", viewonly=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity_change": self.quantity_change,
            "adjustment_type": self.adjustment_type,
            "reason": self.reason,
            "user": self.user.to_ref() if self.user else None,
            "adjustment_date": to_utc_z(self.adjustment_date),
        }
