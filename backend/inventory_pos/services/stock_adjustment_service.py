# Overview: Service-layer operations for manual stock adjustments.

"""
Stock Adjustment Service

Sign policy per adjustment type (quantity_change is stored exactly as sent):

    ADDITION     change > 0                 new = current + change
    SUBTRACTION  change <= 0 (pass -3 to    new = current + change,
                 remove 3)                  new < 0 -> InsufficientStock
    CORRECTION   any non-zero change        new = current + change,
                                            new < 0 -> ValidationError

Every successful adjustment writes exactly one StockAdjustment row in the
same transaction as the product update.
"""

from __future__ import annotations

from ..extensions import db
from ..models import StockAdjustment
from ..models.stock import ADJUSTMENT_ADDITION, ADJUSTMENT_SUBTRACTION, ADJUSTMENT_CORRECTION
from ..validation import ValidationError, enforce_rules_stock_adjustment
from .concurrency import begin_write_transaction, run_with_retry
from .errors import InsufficientStock
from .inventory_service import apply_stock_delta, get_product
from .user_service import resolve_actor


def _check_sign(adjustment_type: str, quantity_change: int) -> None:
    if adjustment_type == ADJUSTMENT_ADDITION and quantity_change < 0:
        raise ValidationError("Addition quantity must be positive.")
    if adjustment_type == ADJUSTMENT_SUBTRACTION and quantity_change > 0:
        raise ValidationError(
            "Subtraction quantity must be negative (pass -N to remove N units)."
        )


def adjust_stock(
    *,
    product_id: int,
    quantity_change: int,
    adjustment_type: str,
    reason: str,
    actor_username: str,
) -> StockAdjustment:
    """
    Apply a manual stock change and record its audit row.

    Raises:
        ValidationError: blank reason, zero change, unknown type, wrong sign,
            or a CORRECTION that would leave negative stock
        ProductNotFound / ActorNotFound
        InsufficientStock: SUBTRACTION larger than the stock on hand
    """
    enforce_rules_stock_adjustment({
        "reason": reason,
        "quantity_change": quantity_change,
        "adjustment_type": adjustment_type,
    })
    _check_sign(adjustment_type, quantity_change)
    reason = reason.strip()

    def _op():
        begin_write_transaction()
        product = get_product(product_id, lock=True)
        actor = resolve_actor(actor_username)

        current = product.quantity
        new_quantity = apply_stock_delta(product, quantity_change)
        if new_quantity is None:
            if adjustment_type == ADJUSTMENT_SUBTRACTION:
                raise InsufficientStock(product.id, product.name, current, -quantity_change)
            if adjustment_type == ADJUSTMENT_CORRECTION:
                raise ValidationError(
                    f"Correction leads to negative stock. Resulting quantity: {current + quantity_change}",
                    details={"product_id": product.id, "current": current, "quantity_change": quantity_change},
                )
            raise ValidationError("Adjustment would make stock negative")

        adjustment = StockAdjustment(
            product_id=product.id,
            quantity_change=quantity_change,
            adjustment_type=adjustment_type,
            reason=reason,
            user_id=actor.id,
        )
        db.session.add(adjustment)
        db.session.commit()
        return adjustment

    return run_with_retry(_op)


def list_stock_adjustments(*, product_id: int | None = None, limit: int | None = None) -> list[StockAdjustment]:
    """Adjustment history, newest first."""
    q = db.session.query(StockAdjustment)
    if product_id is not None:
        q = q.filter(StockAdjustment.product_id == product_id)
    q = q.order_by(StockAdjustment.adjustment_date.desc(), StockAdjustment.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()
