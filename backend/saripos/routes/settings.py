from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..errors import ValidationError
from ..services import settings_service


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


def _json_object() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def _parse_updates(payload: dict) -> list[dict]:
    if isinstance(payload.get("updates"), list):
        return payload["updates"]
    raise ValidationError("updates must be a list of {key, value} objects")


@settings_bp.get("")
def get_all_settings_route():
    data = settings_service.get_all_settings()
    return jsonify({"items": data, "count": len(data)})


@settings_bp.put("")
def bulk_update_settings_route():
    updates = _parse_updates(_json_object())
    settings_service.set_multiple_settings(updates)
    keys = [u.get("key") for u in updates if isinstance(u, dict)]
    return jsonify({"updated": keys, "count": len(keys)})


# Pagination routes are registered before /<key> so they are never taken as keys.
@settings_bp.get("/pagination")
def get_pagination_route():
    return jsonify(settings_service.get_pagination_config())


@settings_bp.get("/page-size")
def get_page_size_route():
    view = request.args.get("view") or None
    return jsonify({"view": view, "page_size": settings_service.get_page_size(view)})


@settings_bp.put("/page-size")
def set_page_size_route():
    payload = _json_object()
    if "page_size" not in payload:
        raise ValidationError("page_size is required")
    view = payload.get("view") or None
    key = settings_service.set_page_size(payload["page_size"], view)
    return jsonify({"view": view, "key": key, "page_size": payload["page_size"]})


@settings_bp.get("/<string:key>")
def get_setting_route(key: str):
    return jsonify({"setting": settings_service.get_setting_record(key)})


@settings_bp.put("/<string:key>")
def set_setting_route(key: str):
    payload = _json_object()
    if "value" not in payload:
        raise ValidationError("value is required")
    settings_service.set_setting(
        key,
        payload["value"],
        value_type=payload.get("value_type"),
        description=payload.get("description"),
    )
    return jsonify({"setting": settings_service.get_setting_record(key)})


@settings_bp.post("/<string:key>/reset")
def reset_setting_route(key: str):
    settings_service.reset_setting(key)
    return jsonify({"setting": settings_service.get_setting_record(key)})
