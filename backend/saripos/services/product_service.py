# Overview: Product registry; barcode-keyed upsert with per-field change history.

# backend/saripos/services/product_service.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import joinedload

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product, Unit
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from saripos.time_utils import utcnow
from .concurrency import run_in_transaction, run_read
from .history_service import record_product_change

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "barcode", "selling_price", "unit_id", "category_id"},
    required_on_create={"name", "selling_price"},
)

# Compared in this order; the order is also the order of history rows.
TRACKED_FIELDS = ("name", "selling_price", "unit_id", "category_id")

FIELD_LABELS = {
    "name": "Name",
    "selling_price": "Selling price",
    "unit_id": "Unit ID",
    "category_id": "Category ID",
}


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any

    def describe(self) -> str:
        label = FIELD_LABELS.get(self.field, self.field)
        if self.field == "name":
            return f'{label} changed from "{self.old_value}" to "{self.new_value}"'
        old = "null" if self.old_value is None else self.old_value
        new = "null" if self.new_value is None else self.new_value
        return f"{label} changed from {old} to {new}"


def diff_product(existing, incoming: dict) -> list[FieldChange]:
    """
    Compare a stored product against an incoming payload.

    `existing` may be a Product or a mapping. Fields missing from
    `incoming` are compared as None (an upsert replaces the tracked
    fields wholesale).
    """
    def _current(field):
        if isinstance(existing, dict):
            return existing.get(field)
        return getattr(existing, field)

    changes = []
    for field in TRACKED_FIELDS:
        old = _current(field)
        new = incoming.get(field)
        if old != new:
            changes.append(FieldChange(field=field, old_value=old, new_value=new))
    return changes


def normalize_barcode(barcode) -> str | None:
    if barcode is None:
        return None
    barcode = str(barcode).strip()
    return barcode or None


def _check_references(patch: dict) -> None:
    unit_id = patch.get("unit_id")
    if unit_id is not None and db.session.get(Unit, unit_id) is None:
        raise ValidationError(f"Unit {unit_id} does not exist", details={"unit_id": unit_id})
    category_id = patch.get("category_id")
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError(
            f"Category {category_id} does not exist", details={"category_id": category_id}
        )


def upsert_product(data: dict) -> dict:
    """
    Insert or update a product keyed by barcode.

    Returns {"id": ..., "action": "created" | "updated"}.
    A product without a barcode never matches an existing one, so it is
    always inserted.
    """
    patch = validate_payload(
        model=Product,
        payload=data,
        policy=PRODUCT_POLICY,
        partial=False,
    )
    enforce_rules_product(patch)
    patch["barcode"] = normalize_barcode(patch.get("barcode"))

    def _op():
        _check_references(patch)

        existing = None
        if patch["barcode"] is not None:
            existing = (
                db.session.query(Product)
                .filter_by(barcode=patch["barcode"])
                .populate_existing()
                .first()
            )

        if existing is None:
            now = utcnow()
            product = Product(
                name=patch["name"],
                barcode=patch["barcode"],
                selling_price=patch["selling_price"],
                unit_id=patch.get("unit_id"),
                category_id=patch.get("category_id"),
                created_at=now,
                updated_at=now,
            )
            db.session.add(product)
            db.session.flush()
            return {"id": product.id, "action": "created"}

        changes = diff_product(existing, patch)
        if not changes:
            return {"id": existing.id, "action": "updated"}

        for change in changes:
            record_product_change(
                existing.id,
                change.field,
                change.old_value,
                change.new_value,
                best_effort=True,
            )
            setattr(existing, change.field, change.new_value)
        existing.updated_at = utcnow()

        record_product_change(
            existing.id,
            "multiple",
            "",
            "",
            "; ".join(change.describe() for change in changes),
            best_effort=True,
        )
        return {"id": existing.id, "action": "updated"}

    return run_in_transaction(_op)


def _product_query():
    # to_dict() reads unit and category after the read transaction ends
    return db.session.query(Product).options(joinedload(Product.unit), joinedload(Product.category))


def get_product(product_id: int) -> Product:
    def _op():
        product = _product_query().filter_by(id=product_id).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
        return product

    return run_read(_op)


def find_product_by_barcode(barcode) -> Product | None:
    """Existing-product check for the add-item flow; None for blank barcodes."""
    barcode = normalize_barcode(barcode)
    if barcode is None:
        return None
    return run_read(lambda: _product_query().filter_by(barcode=barcode).first())
