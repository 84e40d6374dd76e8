# backend/saripos/routes/products.py
from flask import Blueprint, current_app, jsonify, request

from ..errors import NotFoundError, PosError, ValidationError
from ..services import product_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
def upsert_product_route():
    """
    Create a product, or update the one that already carries this barcode.

    201 on create, 200 on update.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    try:
        result = product_service.upsert_product(payload)
    except PosError:
        raise
    except Exception:
        current_app.logger.exception("Failed to save product")
        return jsonify({"error": "Failed to save product"}), 500

    product = product_service.get_product(result["id"])
    status = 201 if result["action"] == "created" else 200
    return jsonify({**result, "product": product.to_dict()}), status


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    return jsonify({"product": product_service.get_product(product_id).to_dict()})


@products_bp.get("/by-barcode/<string:barcode>")
def get_product_by_barcode_route(barcode: str):
    product = product_service.find_product_by_barcode(barcode)
    if product is None:
        raise NotFoundError(f"No product with barcode {barcode}", details={"barcode": barcode})
    return jsonify({"product": product.to_dict()})

