from __future__ import annotations

from ..extensions import db
from saripos.time_utils import to_utc_z, utcnow


class Unit(db.Model):
    """Unit of sale (Piece, Pack, Bottle...). Read-only reference data."""
    __tablename__ = "inventory_unit"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Category(db.Model):
    """Product category. Read-only reference data."""
    __tablename__ = "inventory_category"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Product master data.

    BARCODE DESIGN DECISION:
    Product.barcode is the upsert identity when present.
    - Barcodes are globally unique (UniqueConstraint on the column)
    - NULL barcodes never collide, so barcode-less products always insert
    - Stock lives on InventoryBatch rows, never on the product itself
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    selling_price = db.Column(db.Float, nullable=False)

    unit_id = db.Column(db.Integer, db.ForeignKey("inventory_unit.id"), nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("inventory_category.id"), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())

    unit = db.relationship("Unit")
    category = db.relationship("Category")

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "selling_price": self.selling_price,
            "unit_id": self.unit_id,
            "unit_name": self.unit.name if self.unit else None,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductHistory(db.Model):
    """
    Append-only product metadata history.

    One row per changed field, plus one consolidated field="multiple" row
    per upsert that changed anything. Advisory: failures to write here do
    not abort the product update.
    """
    __tablename__ = "product_history"
    __table_args__ = (
        db.Index("ix_product_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    field = db.Column(db.String(64), nullable=False)
    old_value = db.Column(db.Text, nullable=True)
    new_value = db.Column(db.Text, nullable=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
