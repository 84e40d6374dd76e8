# backend/saripos/routes/batches.py
"""
Inventory batch routes.

Every quantity mutation goes through batch_service, which writes the
matching inventory_history row in the same transaction. Typed service
errors (ValidationError, NotFoundError, InsufficientStockError...) are
rendered by the PosError handler registered in create_app().
"""
from flask import Blueprint, current_app, jsonify, request

from ..errors import PosError, ValidationError
from ..services import batch_service
from ..services.settings_service import get_page_size


batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")

BATCH_LIST_VIEW = "inventory"


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _query_int(name: str, default=None):
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _internal_error(action: str):
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": f"Failed to {action}"}), 500


@batches_bp.post("")
def create_batch_route():
    payload = _json_body()
    try:
        batch_id = batch_service.add_batch(payload)
    except PosError:
        raise
    except Exception:
        return _internal_error("add batch")

    batch = batch_service.get_batch(batch_id)
    return jsonify({"id": batch_id, "batch": batch.to_dict()}), 201


@batches_bp.get("")
def list_batches_route():
    """
    List live batches, soonest-expiring first.

    Query params: product_id, include_deleted, page (1-indexed), per_page.
    per_page defaults to the remembered page size of the inventory view.
    """
    product_id = _query_int("product_id")
    include_deleted = request.args.get("include_deleted", "").lower() in {"1", "true", "yes"}
    page = _query_int("page", 1)
    per_page = _query_int("per_page") or get_page_size(BATCH_LIST_VIEW)
    if page < 1 or per_page < 1:
        raise ValidationError("page and per_page must be >= 1")

    total = batch_service.count_batches(product_id=product_id, include_deleted=include_deleted)
    items = batch_service.list_batches(
        product_id=product_id,
        include_deleted=include_deleted,
        limit=per_page,
        offset=(page - 1) * per_page,
    )
    return jsonify({
        "items": [b.to_dict() for b in items],
        "count": len(items),
        "total": total,
        "page": page,
        "per_page": per_page,
    })


@batches_bp.get("/<int:batch_id>")
def get_batch_route(batch_id: int):
    return jsonify({"batch": batch_service.get_batch(batch_id).to_dict()})


@batches_bp.put("/<int:batch_id>/quantity")
def set_quantity_route(batch_id: int):
    payload = _json_body()
    if "quantity" not in payload or "reason" not in payload:
        raise ValidationError("quantity and reason are required")

    try:
        delta = batch_service.set_batch_quantity(
            batch_id, payload["quantity"], payload["reason"], payload.get("note")
        )
    except PosError:
        raise
    except Exception:
        return _internal_error("set batch quantity")

    return jsonify({"batch_id": batch_id, "change": delta, "quantity": payload["quantity"]})


@batches_bp.post("/<int:batch_id>/adjust")
def adjust_quantity_route(batch_id: int):
    payload = _json_body()
    if "delta" not in payload or "reason" not in payload:
        raise ValidationError("delta and reason are required")

    try:
        quantity = batch_service.adjust_batch_quantity(
            batch_id, payload["delta"], payload["reason"], payload.get("note")
        )
    except PosError:
        raise
    except Exception:
        return _internal_error("adjust batch quantity")

    return jsonify({"batch_id": batch_id, "change": payload["delta"], "quantity": quantity})


@batches_bp.patch("/<int:batch_id>")
def edit_batch_route(batch_id: int):
    payload = dict(_json_body())
    note = payload.pop("note", None)

    try:
        changed = batch_service.edit_batch(batch_id, payload, note)
    except PosError:
        raise
    except Exception:
        return _internal_error("edit batch")

    return jsonify({"changed": changed, "batch": batch_service.get_batch(batch_id).to_dict()})


@batches_bp.delete("/<int:batch_id>")
def delete_batch_route(batch_id: int):
    payload = _json_body()
    try:
        batch_service.delete_batch(batch_id, payload.get("note"))
    except PosError:
        raise
    except Exception:
        return _internal_error("delete batch")

    return jsonify({"deleted": True, "batch_id": batch_id})


@batches_bp.post("/transfer")
def transfer_batch_route():
    payload = _json_body()
    missing = [k for k in ("from_batch_id", "to_batch_id", "quantity") if k not in payload]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        batch_service.transfer_batch(
            payload["from_batch_id"],
            payload["to_batch_id"],
            payload["quantity"],
            payload.get("note"),
        )
    except PosError:
        raise
    except Exception:
        return _internal_error("transfer stock")

    return jsonify({
        "from_batch": batch_service.get_batch(payload["from_batch_id"]).to_dict(),
        "to_batch": batch_service.get_batch(payload["to_batch_id"]).to_dict(),
    })
