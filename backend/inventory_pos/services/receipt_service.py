# Overview: Sale recording, receipt reversal, and receipt queries.

"""
Receipt Service - atomic basket recording and its compensating reversal.

WHY: A basket is one business event. Either every line is recorded and every
product's stock is reduced, or nothing changes at all.

Write path (record_sale):
    resolve cashier -> lock products -> validate ALL lines -> price lines
    -> check payment -> insert receipt + sales -> guarded stock decrements
    -> single commit

Reversal path (reverse_receipt):
    lock receipt -> add each sale's quantity back -> delete receipt (cascade)
    -> single commit

Reads (list_receipts / get_receipt) eager-load sales, products and cashier
so callers never trigger lazy loads after the session is gone.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Receipt, Sale, Product
from ..validation import ValidationError, enforce_payment_covers_total, enforce_rules_payment
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .errors import InsufficientStock, IntegrityViolation, ReceiptNotFound
from .inventory_service import decrement_stock, get_products_for_update, increment_stock
from .user_service import resolve_actor


@dataclass(frozen=True)
class SaleItem:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PaymentDetails:
    payment_method: str
    cash_amount_cents: int = 0
    mpesa_amount_cents: int = 0
    mpesa_transaction_id: str | None = None


def generate_receipt_number() -> str:
    """Prefix + epoch milliseconds + 5 random hex chars, e.g. R1718031234567A1B2C."""
    prefix = current_app.config.get("RECEIPT_NUMBER_PREFIX", "R")
    millis = int(time.time() * 1000)
    suffix = secrets.token_hex(3)[:5].upper()
    return f"{prefix}{millis}{suffix}"


def _requested_by_product(items: list[SaleItem]) -> dict[int, int]:
    # Two lines for the same product must be checked against one counter
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _validate_on_hand(products: dict[int, Product], requested: dict[int, int]) -> None:
    for product_id, qty in requested.items():
        product = products[product_id]
        if product.quantity < qty:
            raise InsufficientStock(product.id, product.name, product.quantity, qty)


def _record_sale_locked(
    cashier_username: str,
    payment: PaymentDetails,
    items: list[SaleItem],
) -> Receipt:
    cashier = resolve_actor(cashier_username)

    products = get_products_for_update(item.product_id for item in items)
    _validate_on_hand(products, _requested_by_product(items))

    # Price every line from the rows validated above
    priced = []
    total_cents = 0
    for item in items:
        unit_price = products[item.product_id].price_cents
        line_total = unit_price * item.quantity
        priced.append((item, unit_price, line_total))
        total_cents += line_total

    change_due = enforce_payment_covers_total(
        payment_method=payment.payment_method,
        cash_amount_cents=payment.cash_amount_cents,
        mpesa_amount_cents=payment.mpesa_amount_cents,
        total_cents=total_cents,
    )

    receipt = Receipt(
        receipt_number=generate_receipt_number(),
        cashier_id=cashier.id,
        total_amount_cents=total_cents,
        payment_method=payment.payment_method,
        cash_amount_cents=payment.cash_amount_cents,
        mpesa_amount_cents=payment.mpesa_amount_cents,
        mpesa_transaction_id=payment.mpesa_transaction_id,
        change_due_cents=change_due,
    )

    for item, unit_price, line_total in priced:
        receipt.sales.append(Sale(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price_cents=unit_price,
            total_amount_cents=line_total,
        ))
        decrement_stock(products[item.product_id], item.quantity)

    db.session.add(receipt)
    db.session.flush()
    return receipt


def record_sale(
    *,
    cashier_username: str,
    payment: PaymentDetails,
    items: list[SaleItem],
) -> Receipt:
    """
    Record a basket as one receipt with one sale per line.

    Raises:
        ValidationError: empty basket or non-positive quantity
        PaymentError: unknown method or tender inconsistent with it or short of the total
        ActorNotFound / ProductNotFound: unknown cashier or product
        InsufficientStock: any product short (nothing is deducted)
    """
    if not items:
        raise ValidationError("At least one sale item is required")
    for item in items:
        if item.quantity <= 0:
            raise ValidationError(
                "quantity must be > 0",
                details={"product_id": item.product_id, "quantity": item.quantity},
            )

    payment_fields = {
        "payment_method": payment.payment_method,
        "cash_amount_cents": payment.cash_amount_cents,
        "mpesa_amount_cents": payment.mpesa_amount_cents,
        "mpesa_transaction_id": payment.mpesa_transaction_id,
    }
    enforce_rules_payment(payment_fields)
    payment = PaymentDetails(**payment_fields)

    def _op():
        begin_write_transaction()
        receipt = _record_sale_locked(cashier_username, payment, items)
        db.session.commit()
        return receipt

    receipt = run_with_retry(_op)
    return get_receipt(receipt.id)


def reverse_receipt(receipt_id: int) -> dict:
    """
    Delete a receipt and put every sold unit back on the shelf.

    Restoration is additive: adjustments made since the sale are kept.

    Raises:
        ReceiptNotFound: no such receipt
        IntegrityViolation: a sale points at a product that no longer exists
    """
    def _op():
        begin_write_transaction()
        receipt = lock_for_update(
            db.session.query(Receipt)
            .options(selectinload(Receipt.sales))
            .filter_by(id=receipt_id)
        ).first()
        if receipt is None:
            raise ReceiptNotFound(receipt_id)

        restored = []
        for sale in receipt.sales:
            if not increment_stock(sale.product_id, sale.quantity):
                raise IntegrityViolation(
                    f"Product not found for sale item with ID: {sale.product_id}",
                    details={"sale_id": sale.id, "product_id": sale.product_id},
                )
            restored.append({"product_id": sale.product_id, "quantity": sale.quantity})

        summary = {
            "receipt_id": receipt.id,
            "receipt_number": receipt.receipt_number,
            "restored": restored,
        }

        db.session.delete(receipt)
        db.session.commit()
        return summary

    return run_with_retry(_op)


def _eager_receipts():
    return db.session.query(Receipt).options(
        selectinload(Receipt.sales).joinedload(Sale.product),
        joinedload(Receipt.cashier),
    )


def get_receipt(receipt_id: int) -> Receipt | None:
    return _eager_receipts().filter(Receipt.id == receipt_id).first()


def list_receipts(
    *,
    start_date=None,
    end_date=None,
    cashier_id: int | None = None,
    payment_method: str | None = None,
    product_name: str | None = None,
) -> list[Receipt]:
    """
    Filtered receipt listing, newest first.

    All filters are optional and combined with AND. Date bounds are inclusive.
    product_name matches receipts containing at least one sale whose product
    name contains the text (case-insensitive); such receipts are returned
    with all of their sales.
    """
    q = _eager_receipts()

    if start_date is not None:
        q = q.filter(Receipt.transaction_date >= start_date)
    if end_date is not None:
        q = q.filter(Receipt.transaction_date <= end_date)
    if cashier_id is not None:
        q = q.filter(Receipt.cashier_id == cashier_id)
    if payment_method is not None:
        q = q.filter(Receipt.payment_method == payment_method)
    if product_name:
        q = q.filter(
            Receipt.sales.any(
                Sale.product.has(
                    func.lower(Product.name).contains(product_name.lower(), autoescape=True)
                )
            )
        )

    return q.order_by(Receipt.transaction_date.desc(), Receipt.id.desc()).all()


def list_sales(*, product_id: int | None = None, limit: int | None = None) -> list[Sale]:
    """Individual sale lines across all receipts, newest first."""
    q = db.session.query(Sale).options(joinedload(Sale.product))
    if product_id is not None:
        q = q.filter(Sale.product_id == product_id)
    q = q.order_by(Sale.id.desc())
    if limit is not None:
        q = q.limit(limit)
    return q.all()
