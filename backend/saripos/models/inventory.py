from __future__ import annotations

import enum

from ..extensions import db
from saripos.time_utils import to_utc_z, to_iso_date, expiration_status, utcnow


class InventoryChangeReason(str, enum.Enum):
    """
    Closed set of reasons an inventory quantity can change.

    History filters match on these exact string values; do not rename.
    """
    INITIAL_STOCK = "initial_stock"
    RESTOCK = "restock"
    SALE = "sale"
    ADJUSTMENT = "adjustment"
    DAMAGED = "damaged"
    EXPIRED = "expired"
    TRANSFER = "transfer"
    DELETE = "delete"
    EDIT = "edit"
    MERGE = "merge"
    SPLIT = "split"
    OTHER = "other"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


_REASON_SQL_LIST = ", ".join(f"'{value}'" for value in InventoryChangeReason.values())


class InventoryBatch(db.Model):
    """
    A discrete lot of a product with its own quantity and cost.

    Quantity is owned by the batch row, but every change to it is paired
    with an InventoryHistory row in the same DB transaction, so
    SUM(history.change) == quantity for every batch.

    Deletion is soft only (is_deleted + deleted_at): history rows keep a
    valid FK to the batch forever.
    """
    __tablename__ = "inventory_batches"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_batches_quantity_nonneg"),
        db.Index("idx_inventory_batches_expiration", "expiration_date"),
        db.Index("ix_inventory_batches_product_deleted", "product_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    batch_number = db.Column(db.String(64), nullable=True)
    cost_price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    expiration_date = db.Column(db.Date, nullable=True)

    date_added = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())
    is_deleted = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    deleted_at = db.Column(db.DateTime, nullable=True)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryBatch id={self.id} product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "barcode": product.barcode if product else None,
            "selling_price": product.selling_price if product else None,
            "batch_number": self.batch_number,
            "quantity": self.quantity,
            "cost_price": self.cost_price,
            "expiration_date": to_iso_date(self.expiration_date),
            "expiration_status": expiration_status(self.expiration_date),
            "date_added": to_utc_z(self.date_added),
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class InventoryHistory(db.Model):
    """
    Append-only inventory movement log.

    Written only as a side effect of batch/sale mutations, never updated
    or deleted. `change` is the signed delta applied to the batch.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.CheckConstraint(f"reason IN ({_REASON_SQL_LIST})", name="ck_inventory_history_reason"),
        db.Index("ix_inventory_history_batch_created", "batch_id", "created_at"),
        db.Index("ix_inventory_history_reason", "reason"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("inventory_batches.id"), nullable=False)

    change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())

    batch = db.relationship("InventoryBatch", backref=db.backref("history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "change": self.change,
            "reason": self.reason,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
