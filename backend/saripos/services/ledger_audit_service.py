# Overview: Checks that each batch's quantity equals the sum of its history deltas.

from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy import func

from ..errors import NotFoundError
from ..extensions import db
from ..models import InventoryBatch, InventoryHistory
from .concurrency import run_read


@dataclass(frozen=True)
class BatchReconciliation:
    batch_id: int
    quantity: int
    history_total: int

    @property
    def is_consistent(self) -> bool:
        return self.quantity == self.history_total

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["is_consistent"] = self.is_consistent
        return payload


def _history_totals():
    return (
        db.session.query(
            InventoryHistory.batch_id.label("batch_id"),
            func.coalesce(func.sum(InventoryHistory.change), 0).label("total"),
        )
        .group_by(InventoryHistory.batch_id)
        .subquery()
    )


def reconcile_batch(batch_id: int) -> BatchReconciliation:
    """Deleted batches are included: their quantity is 0 and so is their history sum."""
    def _op():
        batch = db.session.get(InventoryBatch, batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found", details={"batch_id": batch_id})
        total = (
            db.session.query(func.coalesce(func.sum(InventoryHistory.change), 0))
            .filter(InventoryHistory.batch_id == batch_id)
            .scalar()
        )
        return BatchReconciliation(batch_id=batch.id, quantity=batch.quantity, history_total=int(total))

    return run_read(_op)


def find_unreconciled_batches() -> list[BatchReconciliation]:
    def _op():
        totals = _history_totals()
        history_total = func.coalesce(totals.c.total, 0)
        rows = (
            db.session.query(InventoryBatch.id, InventoryBatch.quantity, history_total)
            .outerjoin(totals, totals.c.batch_id == InventoryBatch.id)
            .filter(InventoryBatch.quantity != history_total)
            .order_by(InventoryBatch.id.asc())
            .all()
        )
        return [
            BatchReconciliation(batch_id=bid, quantity=qty, history_total=int(total))
            for bid, qty, total in rows
        ]

    return run_read(_op)
