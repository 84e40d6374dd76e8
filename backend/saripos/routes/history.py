# backend/saripos/routes/history.py
"""
Read-only inventory history routes.

Filters arrive as query-string params and are validated by HistoryQuery;
order_by and reason values are whitelisted, never interpolated.
Time semantics: ISO-8601 datetimes with Z/offsets, normalized to UTC.
"""
from flask import Blueprint, jsonify, request

from ..services import history_service, ledger_audit_service
from ..services.history_service import HistoryQuery


history_bp = Blueprint("history", __name__, url_prefix="/api/history")


@history_bp.get("")
def get_history_route():
    query = HistoryQuery.from_params(request.args.to_dict())
    return jsonify(history_service.get_inventory_history(query))


@history_bp.get("/stats")
def get_history_stats_route():
    query = HistoryQuery.from_params(request.args.to_dict())
    return jsonify(history_service.get_history_statistics(query))


@history_bp.get("/reasons")
def get_reasons_route():
    return jsonify({"reasons": history_service.get_change_reasons()})


@history_bp.get("/products/<int:product_id>")
def get_product_history_route(product_id: int):
    limit = request.args.get("limit", type=int)
    records = history_service.get_product_history(product_id, limit=limit)
    return jsonify({"items": records, "count": len(records)})


@history_bp.get("/reconcile")
def reconcile_route():
    """Batches whose quantity differs from SUM(history.change); empty means consistent."""
    mismatches = ledger_audit_service.find_unreconciled_batches()
    return jsonify({
        "consistent": not mismatches,
        "mismatches": [m.to_dict() for m in mismatches],
    })
