# backend/saripos/routes/sales.py
"""
Sale routes.

POST /api/sales records a completed cash sale in one transaction: the sale,
its items, every batch decrement and every 'sale' history row.
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import PosError, ValidationError
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Body: {"items": [{"batch_id", "quantity", "price_at_sale"}, ...],
           "cash_received", "total", "change"}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    missing = [k for k in ("items", "cash_received", "total", "change") if k not in payload]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        sale_id = sales_service.create_sale(
            payload["items"],
            payload["cash_received"],
            payload["total"],
            payload["change"],
        )
    except PosError:
        raise
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Failed to create sale"}), 500

    sale = sales_service.get_sale(sale_id)
    return jsonify({"id": sale_id, "sale": sale.to_dict(include_items=True)}), 201


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    return jsonify({"sale": sales_service.get_sale(sale_id).to_dict(include_items=True)})
