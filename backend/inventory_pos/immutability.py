# Overview: ORM listeners that keep audit and line-item rows immutable.

"""
Immutability guards.

PROTECTED ENTITIES:
- Sale: never updated after insert. Deleted only through its receipt.
- StockAdjustment: never updated, never deleted.

The listeners fire on ORM flushes. Bulk Core statements bypass them, which is
why services only issue Core UPDATEs against products.
"""

from sqlalchemy import event

from .models import Sale, StockAdjustment
from .services.errors import ImmutableRecordError


def _block_sale_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"Sale {target.id} is immutable; reverse the receipt instead",
        details={"sale_id": target.id, "operation": "UPDATE"},
    )


def _block_adjustment_update(mapper, connection, target):
    raise ImmutableRecordError(
        f"Stock adjustment {target.id} is append-only",
        details={"stock_adjustment_id": target.id, "operation": "UPDATE"},
    )


def _block_adjustment_delete(mapper, connection, target):
    raise ImmutableRecordError(
        f"Stock adjustment {target.id} is append-only",
        details={"stock_adjustment_id": target.id, "operation": "DELETE"},
    )


_LISTENERS = [
    (Sale, "before_update", _block_sale_update),
    (StockAdjustment, "before_update", _block_adjustment_update),
    (StockAdjustment, "before_delete", _block_adjustment_delete),
]


def register_immutability_listeners() -> None:
    """Safe to call repeatedly (create_app runs once per test app)."""
    for model, identifier, fn in _LISTENERS:
        if not event.contains(model, identifier, fn):
            event.listen(model, identifier, fn)
