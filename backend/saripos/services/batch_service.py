# Overview: Service-layer operations for inventory batches; every quantity change is logged.

# backend/saripos/services/batch_service.py

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy.orm import joinedload

from ..errors import InsufficientStockError, NotFoundError, StorageError, ValidationError
from ..extensions import db
from ..models import InventoryBatch, InventoryChangeReason, Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_batch,
    require_non_negative_int,
    require_positive_int,
)
from saripos.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction, run_read
from .history_service import normalize_reason, record_inventory_change
"""
Batch Ledger invariants (authoritative)

- quantity >= 0 after every committed operation.
- Every quantity change writes exactly one inventory_history row with the
  signed delta, in the same DB transaction (run_in_transaction), so
  SUM(history.change) == quantity for each batch.
- Quantity is always re-read inside the transaction (lock_for_update)
  immediately before it is written; values read earlier are never reused.
- Delete is soft only: the 'delete' history row (-quantity) is written
  before the row is marked is_deleted, and quantity drops to 0 with it.
- Edits of cost_price / expiration_date / batch_number never touch
  quantity; they log a single 'edit' row with change=0 only when something
  actually changed.
"""

BATCH_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "cost_price", "expiration_date", "batch_number"},
    required_on_create={"product_id", "quantity", "cost_price"},
)

BATCH_EDIT_POLICY = ModelValidationPolicy(
    writable_fields={"cost_price", "expiration_date", "batch_number"},
)

EDITABLE_FIELD_LABELS = {
    "cost_price": "Cost price",
    "expiration_date": "Expiration date",
    "batch_number": "Batch number",
}


def generate_default_batch_number(product_name: str, on: date | None = None) -> str:
    """
    BATCH-<initials>-<YYYYMMDD>.

    Initials are the first letters of up to three words of the product
    name, padded with X.
    """
    on = on or utcnow().date()
    initials = "".join(word[0].upper() for word in product_name.split() if word)[:3]
    return f"BATCH-{initials.ljust(3, 'X')}-{on.strftime('%Y%m%d')}"


def _load_live_batch(batch_id: int, *, lock: bool = False) -> InventoryBatch:
    query = db.session.query(InventoryBatch).filter_by(id=batch_id)
    if lock:
        query = lock_for_update(query)
    batch = query.first()
    if batch is None or batch.is_deleted:
        raise NotFoundError(f"Batch {batch_id} not found", details={"batch_id": batch_id})
    return batch


def get_batch(batch_id: int) -> InventoryBatch:
    def _op():
        batch = _load_live_batch(batch_id)
        batch.product  # to_dict() reads it after the read transaction ends
        return batch

    return run_read(_op)


def _batch_query(product_id: int | None, include_deleted: bool):
    q = db.session.query(InventoryBatch)
    if product_id is not None:
        q = q.filter(InventoryBatch.product_id == product_id)
    if not include_deleted:
        q = q.filter(InventoryBatch.is_deleted.is_(False))
    return q


def list_batches(
    product_id: int | None = None,
    include_deleted: bool = False,
    *,
    limit: int | None = None,
    offset: int = 0,
) -> list[InventoryBatch]:
    def _op():
        # FEFO: soonest expiry first, undated batches last
        q = (
            _batch_query(product_id, include_deleted)
            .options(joinedload(InventoryBatch.product))
            .order_by(
                InventoryBatch.expiration_date.is_(None),
                InventoryBatch.expiration_date.asc(),
                InventoryBatch.id.asc(),
            )
        )
        if limit is not None:
            q = q.limit(limit).offset(offset)
        return q.all()

    return run_read(_op)


def count_batches(product_id: int | None = None, include_deleted: bool = False) -> int:
    return run_read(lambda: _batch_query(product_id, include_deleted).count())


def add_batch(data: dict) -> int:
    """
    Insert a batch and log its opening quantity as 'initial_stock'.

    Returns the new batch id.
    """
    patch = validate_payload(
        model=InventoryBatch,
        payload=data,
        policy=BATCH_CREATE_POLICY,
        partial=False,
    )
    enforce_rules_batch(patch)

    def _op():
        product = db.session.query(Product).filter_by(id=patch["product_id"]).first()
        if product is None:
            raise NotFoundError(
                f"Product {patch['product_id']} not found",
                details={"product_id": patch["product_id"]},
            )

        batch_number = patch.get("batch_number")
        if batch_number is None and current_app.config.get("AUTO_BATCH_NUMBER", True):
            batch_number = generate_default_batch_number(product.name)

        batch = InventoryBatch(
            product_id=product.id,
            quantity=patch["quantity"],
            cost_price=patch["cost_price"],
            expiration_date=patch.get("expiration_date"),
            batch_number=batch_number,
            date_added=utcnow(),
        )
        db.session.add(batch)
        db.session.flush()  # ensure batch.id exists before the history append

        if batch.id is None:
            raise StorageError("Failed to retrieve batch ID after insertion")

        record_inventory_change(
            batch.id,
            batch.quantity,
            InventoryChangeReason.INITIAL_STOCK,
            "Initial stock entry",
        )
        return batch.id

    return run_in_transaction(_op)


def set_batch_quantity(batch_id: int, new_quantity: int, reason, note: str | None = None) -> int:
    """
    Set an absolute quantity; returns the signed delta that was applied.

    A zero delta updates nothing and logs nothing.
    """
    require_non_negative_int(new_quantity, "new_quantity")
    reason = normalize_reason(reason)

    def _op():
        batch = _load_live_batch(batch_id, lock=True)
        delta = new_quantity - batch.quantity
        if delta == 0:
            return 0

        batch.quantity = new_quantity
        record_inventory_change(batch.id, delta, reason, note)
        return delta

    return run_in_transaction(_op)


def adjust_batch_quantity(batch_id: int, delta: int, reason, note: str | None = None) -> int:
    """
    Apply a relative change (restock, damaged, expired...); returns the new quantity.

    Raises InsufficientStockError if the result would go below zero.
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")
    reason = normalize_reason(reason)

    def _op():
        batch = _load_live_batch(batch_id, lock=True)
        if batch.quantity + delta < 0:
            raise InsufficientStockError(
                f"Adjustment would make batch {batch_id} negative",
                details={"batch_id": batch_id, "available": batch.quantity, "requested": -delta},
            )
        batch.quantity = batch.quantity + delta
        record_inventory_change(batch.id, delta, reason, note)
        return batch.quantity

    return run_in_transaction(_op)


def delete_batch(batch_id: int, note: str | None = None) -> None:
    """Log the full drawdown, then soft-delete the batch."""
    def _op():
        batch = _load_live_batch(batch_id, lock=True)

        record_inventory_change(
            batch.id,
            -batch.quantity,
            InventoryChangeReason.DELETE,
            note or "Batch deleted",
        )

        batch.quantity = 0
        batch.is_deleted = True
        batch.deleted_at = utcnow()

    run_in_transaction(_op)


def _describe(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def edit_batch(batch_id: int, updates: dict, note: str | None = None) -> bool:
    """
    Field-by-field edit of cost_price, expiration_date and batch_number.

    Returns False (no UPDATE, no history row) when nothing differs.
    """
    patch = validate_payload(
        model=InventoryBatch,
        payload=updates,
        policy=BATCH_EDIT_POLICY,
        partial=True,
    )
    enforce_rules_batch(patch)

    def _op():
        batch = _load_live_batch(batch_id, lock=True)

        changes: list[str] = []
        for field, label in EDITABLE_FIELD_LABELS.items():
            if field not in patch:
                continue
            current = getattr(batch, field)
            incoming = patch[field]
            if incoming == current:
                continue
            setattr(batch, field, incoming)
            changes.append(f"{label} changed from {_describe(current)} to {_describe(incoming)}")

        if not changes:
            return False

        record_inventory_change(
            batch.id,
            0,
            InventoryChangeReason.EDIT,
            note or ", ".join(changes),
        )
        return True

    return run_in_transaction(_op)


def transfer_batch(from_batch_id: int, to_batch_id: int, quantity: int, note: str | None = None) -> None:
    """
    Move units between two batches of the same product, all-or-nothing.

    Both quantity updates and both 'transfer' history rows commit together
    or not at all.
    """
    require_positive_int(quantity, "quantity")
    if from_batch_id == to_batch_id:
        raise ValidationError("Cannot transfer a batch into itself")

    def _op():
        batches = {
            b.id: b
            for b in lock_for_update(
                db.session.query(InventoryBatch).filter(
                    InventoryBatch.id.in_([from_batch_id, to_batch_id]),
                    InventoryBatch.is_deleted.is_(False),
                )
            ).all()
        }
        if len(batches) != 2:
            missing = [bid for bid in (from_batch_id, to_batch_id) if bid not in batches]
            raise NotFoundError("One or both batches not found", details={"missing": missing})

        source = batches[from_batch_id]
        destination = batches[to_batch_id]

        if source.product_id != destination.product_id:
            raise ValidationError(
                "Cannot transfer between different products",
                details={"from_product_id": source.product_id, "to_product_id": destination.product_id},
            )

        if source.quantity < quantity:
            raise InsufficientStockError(
                "Insufficient quantity in source batch",
                details={"batch_id": from_batch_id, "available": source.quantity, "requested": quantity},
            )

        source.quantity = source.quantity - quantity
        destination.quantity = destination.quantity + quantity

        record_inventory_change(
            from_batch_id,
            -quantity,
            InventoryChangeReason.TRANSFER,
            note or f"Transferred to batch {to_batch_id}",
        )
        record_inventory_change(
            to_batch_id,
            quantity,
            InventoryChangeReason.TRANSFER,
            note or f"Transferred from batch {from_batch_id}",
        )

    run_in_transaction(_op)
