"""
Sales Service - all-or-nothing cash sales against specific batches

A sale is one transaction: the sale row, its items, every batch decrement
and every 'sale' history row commit together or not at all. Inputs are
validated before the database is touched.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy.orm import selectinload

from ..errors import InsufficientStockError, NotFoundError, StorageError, ValidationError
from ..extensions import db
from ..models import InventoryBatch, InventoryChangeReason, Sale, SaleItem
from saripos.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction, run_read
from .history_service import record_inventory_change

# The caller's change is accepted within a cent of the computed value.
CHANGE_TOLERANCE = 0.01
# Float noise allowed when checking that cash covers the total.
MONEY_EPSILON = 1e-9


@dataclass(frozen=True)
class SaleItemInput:
    batch_id: int
    quantity: int
    price_at_sale: float

    @classmethod
    def from_raw(cls, raw, index: int) -> "SaleItemInput":
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} must be an object")
        missing = [k for k in ("batch_id", "quantity", "price_at_sale") if k not in raw]
        if missing:
            raise ValidationError(
                f"Item {index} is missing: {', '.join(missing)}",
                details={"index": index},
            )
        return cls(batch_id=raw["batch_id"], quantity=raw["quantity"], price_at_sale=raw["price_at_sale"])


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_sale_inputs(items, cash_received, total, change) -> list[SaleItemInput]:
    """
    Pure, fail-fast validation of a sale request.

    Returns the normalized item list; raises ValidationError on the first
    problem found.
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("Cannot create a sale with no items")

    normalized: list[SaleItemInput] = []
    seen: set[int] = set()
    for index, raw in enumerate(items):
        item = SaleItemInput.from_raw(raw, index)

        if not _is_int(item.batch_id) or item.batch_id <= 0:
            raise ValidationError(f"Invalid batch id: {item.batch_id!r}", details={"index": index})
        if item.batch_id in seen:
            raise ValidationError(
                f"Batch {item.batch_id} appears more than once in the sale",
                details={"batch_id": item.batch_id},
            )
        seen.add(item.batch_id)

        if not _is_int(item.quantity) or item.quantity <= 0:
            raise ValidationError(
                f"Invalid quantity for batch {item.batch_id}",
                details={"batch_id": item.batch_id, "quantity": item.quantity},
            )
        if not _is_number(item.price_at_sale) or item.price_at_sale < 0:
            raise ValidationError(
                f"Invalid price for batch {item.batch_id}",
                details={"batch_id": item.batch_id, "price_at_sale": item.price_at_sale},
            )
        normalized.append(item)

    for name, value in (("cash_received", cash_received), ("total", total), ("change", change)):
        if not _is_number(value) or value < 0:
            raise ValidationError(f"{name} must be a non-negative number")

    if cash_received - total < -MONEY_EPSILON:
        raise ValidationError(
            "Cash received is less than the total",
            details={"cash_received": cash_received, "total": total},
        )

    expected_change = round(cash_received - total, 2)
    if abs(expected_change - round(change, 2)) > CHANGE_TOLERANCE:
        raise ValidationError(
            "Change does not match cash received minus total",
            details={"expected_change": expected_change, "change": change},
        )

    return normalized


def create_sale(items, cash_received, total, change) -> int:
    """
    Record a completed sale and draw its quantities from the given batches.

    The stored change is always computed from the stored cash and total, so
    change == round(cash_received - total, 2) holds for every sale row; the
    caller's change is only checked against it.

    Returns the new sale id.
    """
    lines = validate_sale_inputs(items, cash_received, total, change)

    line_sum = round(sum(line.quantity * line.price_at_sale for line in lines), 2)
    if abs(line_sum - round(total, 2)) > CHANGE_TOLERANCE:
        # business-level check only; the cashier's total wins
        current_app.logger.warning(
            "Sale total %.2f does not match sum of lines %.2f", total, line_sum
        )

    stored_total = round(total, 2)
    stored_cash = round(cash_received, 2)
    stored_change = round(stored_cash - stored_total, 2)

    def _op():
        sale = Sale(
            total=stored_total,
            cash_received=stored_cash,
            change=stored_change,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()
        if sale.id is None:
            raise StorageError("Failed to retrieve sale ID after insertion")

        for line in lines:
            batch = (
                lock_for_update(db.session.query(InventoryBatch).filter_by(id=line.batch_id))
                .first()
            )
            if batch is None or batch.is_deleted:
                raise NotFoundError(
                    f"Batch {line.batch_id} not found",
                    details={"batch_id": line.batch_id},
                )

            if line.quantity > batch.quantity:
                raise InsufficientStockError(
                    f"Not enough stock for batch {line.batch_id}. "
                    f"Available: {batch.quantity}, requested: {line.quantity}",
                    details={
                        "batch_id": line.batch_id,
                        "requested": line.quantity,
                        "available": batch.quantity,
                    },
                )

            db.session.add(
                SaleItem(
                    sale_id=sale.id,
                    batch_id=line.batch_id,
                    quantity=line.quantity,
                    price_at_sale=round(float(line.price_at_sale), 2),
                )
            )
            record_inventory_change(
                line.batch_id,
                -line.quantity,
                InventoryChangeReason.SALE,
                f"Sold in sale #{sale.id}",
            )
            batch.quantity = batch.quantity - line.quantity

        return sale.id

    sale_id = run_in_transaction(_op)
    current_app.logger.info("Sale #%s recorded (%s items, total %.2f)", sale_id, len(lines), total)
    return sale_id


def get_sale(sale_id: int) -> Sale:
    def _op():
        sale = (
            db.session.query(Sale)
            .options(selectinload(Sale.items))
            .populate_existing()
            .filter_by(id=sale_id)
            .first()
        )
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        return sale

    return run_read(_op)
