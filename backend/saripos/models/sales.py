from __future__ import annotations

from ..extensions import db
from saripos.time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Completed cash sale.

    Invariants (checked before insert, not by storage):
    - cash_received >= total
    - change == round(cash_received - total, 2)
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    total = db.Column(db.Float, nullable=False)
    cash_received = db.Column(db.Float, nullable=False)
    change = db.Column(db.Float, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())

    items = db.relationship("SaleItem", backref="sale", lazy=True, order_by="SaleItem.id")

    def to_dict(self, include_items: bool = False) -> dict:
        payload = {
            "id": self.id,
            "total": self.total,
            "cash_received": self.cash_received,
            "change": self.change,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            payload["items"] = [item.to_dict() for item in self.items]
        return payload


class SaleItem(db.Model):
    """One cart line: a quantity taken from a specific batch."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("inventory_batches.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_at_sale = db.Column(db.Float, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "batch_id": self.batch_id,
            "quantity": self.quantity,
            "price_at_sale": self.price_at_sale,
            "line_total": round(self.quantity * self.price_at_sale, 2),
        }
