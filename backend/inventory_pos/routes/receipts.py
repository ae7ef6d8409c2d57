# Overview: Flask API routes for receipts; parses input and returns JSON responses.

# backend/inventory_pos/routes/receipts.py
"""Receipt API routes: batch sale recording, queries, reversal, and sale-line listing."""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import receipt_service
from ..services.receipt_service import PaymentDetails, SaleItem
from ..services.errors import NotFoundError, InsufficientStock, IntegrityViolation
from ..validation import (
    ValidationError,
    validate_batch_sale_payload,
    parse_receipt_filters,
    parse_history_filters,
)
from ..decorators import require_actor


receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/sales/receipts")


@receipts_bp.post("/batch")
@require_actor
def record_batch_sale_route():
    """
    Record a basket of items as one receipt.

    Body: {"sale_items": [{"product_id", "quantity"}], "payment_method",
           "cash_amount_cents", "mpesa_amount_cents", "mpesa_transaction_id"}
    """
    try:
        payment_patch, items = validate_batch_sale_payload(request.get_json(silent=True))

        receipt = receipt_service.record_sale(
            cashier_username=g.actor_username,
            payment=PaymentDetails(**payment_patch),
            items=[SaleItem(**item) for item in items],
        )

        current_app.logger.info(
            "Recorded receipt %s (%d lines, total_cents=%d) by %s",
            receipt.receipt_number, len(receipt.sales), receipt.total_amount_cents, g.actor_username,
        )
        return jsonify({"receipt": receipt.to_dict()}), 201

    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except InsufficientStock as e:
        current_app.logger.warning("Sale rejected: %s", e)
        return jsonify({"error": str(e), "details": e.details}), 400
    except ValidationError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to record batch sale")
        return jsonify({"error": "Internal server error"}), 500


@receipts_bp.get("")
@require_actor
def list_receipts_route():
    """
    List receipts, newest first.

    Query: start_date, end_date (ISO-8601), cashier_id, payment_method, product_name
    """
    try:
        filters = parse_receipt_filters(request.args)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        receipts = receipt_service.list_receipts(**filters)
    except Exception:
        current_app.logger.exception("Failed to list receipts")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"receipts": [r.to_dict() for r in receipts]}), 200


@receipts_bp.get("/<int:receipt_id>")
@require_actor
def get_receipt_route(receipt_id: int):
    receipt = receipt_service.get_receipt(receipt_id)
    if not receipt:
        return jsonify({"error": "Receipt not found"}), 404

    return jsonify({"receipt": receipt.to_dict()}), 200


@receipts_bp.delete("/<int:receipt_id>")
@require_actor
def delete_receipt_route(receipt_id: int):
    """
    Delete a receipt and return its sold quantities to stock.
    """
    try:
        summary = receipt_service.reverse_receipt(receipt_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except IntegrityViolation as e:
        current_app.logger.error("Receipt %s reversal blocked: %s", receipt_id, e)
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to delete receipt")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Reversed receipt %s by %s, restored %s",
        summary["receipt_number"], g.actor_username, summary["restored"],
    )
    return "", 204


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_actor
def list_sales_route():
    """
    List sale lines, newest first. Read-only: lines change only through
    their receipt.

    Query: product_id, limit
    """
    try:
        filters = parse_history_filters(request.args)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    sales = receipt_service.list_sales(**filters)
    return jsonify({"sales": [s.to_dict() for s in sales]}), 200
