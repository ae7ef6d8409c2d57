# backend/inventory_pos/routes/stock.py
"""
Stock adjustment routes.

- POST /api/stock/adjustments records a manual adjustment
- GET /api/stock/adjustments/history lists adjustments, newest first
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..models import StockAdjustment
from ..validation import (
    STOCK_ADJUSTMENT_POLICY,
    validate_payload,
    ValidationError,
    enforce_rules_stock_adjustment,
    parse_history_filters,
)
from ..services import stock_adjustment_service
from ..services.errors import NotFoundError, InsufficientStock
from ..decorators import require_actor


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/adjustments")
@require_actor
def adjust_stock_route():
    payload = request.get_json(silent=True)

    try:
        patch = validate_payload(
            model=StockAdjustment,
            payload=payload,
            policy=STOCK_ADJUSTMENT_POLICY,
            partial=False,
        )
        if isinstance(patch.get("adjustment_type"), str):
            patch["adjustment_type"] = patch["adjustment_type"].upper()
        enforce_rules_stock_adjustment(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        adjustment = stock_adjustment_service.adjust_stock(
            product_id=patch["product_id"],
            quantity_change=patch["quantity_change"],
            adjustment_type=patch["adjustment_type"],
            reason=patch["reason"],
            actor_username=g.actor_username,
        )
    except NotFoundError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except (InsufficientStock, ValidationError) as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info(
        "Stock adjustment %s on product %s: %+d (%s) by %s",
        adjustment.id, adjustment.product_id, adjustment.quantity_change,
        adjustment.adjustment_type, g.actor_username,
    )
    return jsonify({"adjustment": adjustment.to_dict()}), 201


@stock_bp.get("/adjustments/history")
@require_actor
def adjustment_history_route():
    try:
        filters = parse_history_filters(request.args)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    rows = stock_adjustment_service.list_stock_adjustments(**filters)
    return jsonify({"adjustments": [r.to_dict() for r in rows]}), 200
