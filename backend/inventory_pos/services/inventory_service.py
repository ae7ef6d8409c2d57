# Overview: Service-layer access to products and their stock counters.

# backend/inventory_pos/services/inventory_service.py

from sqlalchemy import select, update

from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update
from .errors import ProductNotFound, InsufficientStock
"""
Stock counter invariants (authoritative)

- Product.quantity is the on-hand count and may never go negative
  (also enforced by ck_products_quantity_non_negative).
- The counter is changed only by conditional UPDATE statements issued here:
    decrement:  SET quantity = quantity - n WHERE id = :id AND quantity >= n
    delta:      SET quantity = quantity + d WHERE id = :id AND quantity + d >= 0
  A zero rowcount means the guard failed, so a stale read elsewhere can never
  turn into a lost update or a negative balance.
- Callers own the transaction: nothing in this module commits.
"""


def get_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise ProductNotFound(product_id)
    return product


def get_products_for_update(product_ids) -> dict[int, Product]:
    """
    Load and lock every product in product_ids.

    Rows are locked in ascending id order so two baskets touching the same
    products cannot deadlock. Raises ProductNotFound for the first id that
    does not exist.
    """
    wanted = sorted(set(product_ids))
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(wanted)).order_by(Product.id)
    ).all()
    by_id = {p.id: p for p in rows}
    for product_id in wanted:
        if product_id not in by_id:
            raise ProductNotFound(product_id)
    return by_id


def get_quantity_on_hand(product_id: int) -> int:
    """Read the committed (or in-transaction) counter straight from the store."""
    qty = db.session.execute(
        select(Product.quantity).where(Product.id == product_id)
    ).scalar()
    if qty is None:
        raise ProductNotFound(product_id)
    return int(qty)


def decrement_stock(product: Product, quantity: int) -> int:
    """
    Remove quantity units from product's counter.

    Returns the new on-hand quantity. Raises InsufficientStock when the
    guarded UPDATE matches no row.
    """
    if quantity <= 0:
        raise ValueError("quantity must be > 0")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.quantity >= quantity)
        .values(quantity=Product.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = get_quantity_on_hand(product.id)
        raise InsufficientStock(product.id, product.name, available, quantity)

    db.session.expire(product, ["quantity"])
    return product.quantity


def increment_stock(product_id: int, quantity: int) -> bool:
    """Add quantity units back. Returns False when the product row is gone."""
    if quantity <= 0:
        raise ValueError("quantity must be > 0")

    result = db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def apply_stock_delta(product: Product, delta: int) -> int | None:
    """
    Apply a signed delta as long as the result stays >= 0.

    Returns the new quantity, or None when the guard rejected the change.
    """
    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.quantity + delta >= 0)
        .values(quantity=Product.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(product, ["quantity"])
    if result.rowcount != 1:
        return None
    return product.quantity


def create_product(
    *,
    name: str,
    price_cents: int,
    quantity: int = 0,
    min_stock_level: int = 0,
    description: str | None = None,
    category_id: int | None = None,
) -> Product:
    """Seed a product row (development and tests; catalog CRUD lives elsewhere)."""
    if price_cents < 0:
        raise ValueError("price_cents must be >= 0")
    if quantity < 0:
        raise ValueError("quantity must be >= 0")

    product = Product(
        name=name,
        description=description,
        price_cents=price_cents,
        quantity=quantity,
        min_stock_level=min_stock_level,
        category_id=category_id,
    )
    db.session.add(product)
    db.session.commit()
    return product


def list_products(limit: int = 200):
    return db.session.query(Product).order_by(Product.name, Product.id).limit(limit).all()
