# Overview: Append-only change recording and the paginated history read model.

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from ..errors import ValidationError
from ..extensions import db
from ..models import (
    InventoryBatch,
    InventoryChangeReason,
    InventoryHistory,
    Product,
    ProductHistory,
)
from saripos.time_utils import parse_iso_datetime, to_utc_z
from .concurrency import run_read
"""
Audit log invariants (authoritative)

- inventory_history and product_history are append-only: this module only
  ever INSERTs into them.
- Rows are written inside the caller's transaction (add + flush, never
  commit) so they commit or roll back together with the mutation.
- Inventory history failures are fatal: an unlogged quantity change breaks
  SUM(change) == quantity. Product history may be best-effort: metadata
  history is advisory, so a failure is logged and the update continues.
"""

ORDER_BY_COLUMNS = {
    "created_at": InventoryHistory.created_at,
    "change": InventoryHistory.change,
}
ORDER_DIRECTIONS = {"ASC", "DESC"}
RECENT_ACTIVITY_LIMIT = 5


def normalize_reason(reason) -> str:
    """Return the canonical reason string or raise ValidationError."""
    if isinstance(reason, InventoryChangeReason):
        return reason.value
    if isinstance(reason, str) and reason in InventoryChangeReason.values():
        return reason
    raise ValidationError(
        f"Invalid inventory change reason: {reason!r}",
        details={"allowed": InventoryChangeReason.values()},
    )


def record_inventory_change(
    batch_id: int,
    change: int,
    reason,
    note: str | None = None,
) -> InventoryHistory:
    """
    Append one inventory_history row in the current transaction.

    Never swallows errors: the caller's transaction must roll back if this
    fails.
    """
    entry = InventoryHistory(
        batch_id=batch_id,
        change=int(change),
        reason=normalize_reason(reason),
        note=note,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def _history_text(value) -> str | None:
    if value is None:
        return None
    return str(value)


def record_product_change(
    product_id: int,
    field: str,
    old_value,
    new_value,
    note: str | None = None,
    *,
    best_effort: bool = False,
) -> ProductHistory | None:
    """
    Append one product_history row in the current transaction.

    best_effort=True wraps the insert in a SAVEPOINT; a failure rolls back
    only that savepoint, is logged as a warning, and returns None.
    """
    entry = ProductHistory(
        product_id=product_id,
        field=field,
        old_value=_history_text(old_value),
        new_value=_history_text(new_value),
        note=note,
    )
    if not best_effort:
        db.session.add(entry)
        db.session.flush()
        return entry

    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError as exc:
        current_app.logger.warning(
            "Failed to record product change (product_id=%s field=%s): %s",
            product_id,
            field,
            exc,
        )
        return None
    return entry


# ----------------------------------------------------------------------
# History Query Service (read-only)
# ----------------------------------------------------------------------


def _parse_bound(value, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


def _optional_non_negative(value, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field} must be a non-negative integer")
    return value


@dataclass(frozen=True)
class HistoryQuery:
    batch_id: int | None = None
    product_id: int | None = None
    reason: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int | None = None
    offset: int | None = None
    order_by: str = "created_at"
    order_direction: str = "DESC"

    @classmethod
    def from_params(cls, params: dict | None) -> "HistoryQuery":
        """Build a validated query from loosely-typed (e.g. query-string) params."""
        params = params or {}

        def _int(name):
            raw = params.get(name)
            if raw is None or raw == "":
                return None
            try:
                return int(raw)
            except (TypeError, ValueError):
                raise ValidationError(f"{name} must be an integer")

        query = cls(
            batch_id=_int("batch_id"),
            product_id=_int("product_id"),
            reason=params.get("reason") or None,
            date_from=params.get("date_from") or None,
            date_to=params.get("date_to") or None,
            limit=_int("limit"),
            offset=_int("offset"),
            order_by=params.get("order_by") or "created_at",
            order_direction=(params.get("order_direction") or "DESC"),
        )
        return query.validated()

    def validated(self) -> "HistoryQuery":
        if self.order_by not in ORDER_BY_COLUMNS:
            raise ValidationError(
                f"order_by must be one of: {', '.join(ORDER_BY_COLUMNS)}"
            )
        direction = str(self.order_direction).upper()
        if direction not in ORDER_DIRECTIONS:
            raise ValidationError("order_direction must be ASC or DESC")
        return replace(
            self,
            reason=normalize_reason(self.reason) if self.reason is not None else None,
            date_from=_parse_bound(self.date_from, "date_from"),
            date_to=_parse_bound(self.date_to, "date_to"),
            limit=_optional_non_negative(self.limit, "limit"),
            offset=_optional_non_negative(self.offset, "offset"),
            order_direction=direction,
        )


def _apply_filters(q, query: HistoryQuery):
    if query.batch_id is not None:
        q = q.filter(InventoryHistory.batch_id == query.batch_id)
    if query.product_id is not None:
        q = q.filter(InventoryBatch.product_id == query.product_id)
    if query.reason is not None:
        q = q.filter(InventoryHistory.reason == query.reason)
    if query.date_from is not None:
        q = q.filter(InventoryHistory.created_at >= query.date_from)
    if query.date_to is not None:
        q = q.filter(InventoryHistory.created_at <= query.date_to)
    return q


def _history_record(entry: InventoryHistory, product_name: str, batch_number: str | None) -> dict:
    record = entry.to_dict()
    record["product_name"] = product_name
    record["batch_number"] = batch_number
    return record


def get_inventory_history(query: HistoryQuery | None = None) -> dict:
    """
    Filtered, paginated inventory history joined with batch and product.

    total is counted before pagination; limit defaults to total.
    """
    query = (query or HistoryQuery()).validated()

    def _op():
        base = (
            db.session.query(InventoryHistory, Product.name, InventoryBatch.batch_number)
            .join(InventoryBatch, InventoryHistory.batch_id == InventoryBatch.id)
            .join(Product, InventoryBatch.product_id == Product.id)
        )
        base = _apply_filters(base, query)

        total = base.order_by(None).count()

        column = ORDER_BY_COLUMNS[query.order_by]
        if query.order_direction == "ASC":
            ordered = base.order_by(column.asc(), InventoryHistory.id.asc())
        else:
            ordered = base.order_by(column.desc(), InventoryHistory.id.desc())

        if query.limit is not None:
            ordered = ordered.limit(query.limit)
        if query.offset:
            ordered = ordered.offset(query.offset)

        records = [_history_record(*row) for row in ordered.all()]
        return {
            "records": records,
            "total": total,
            "limit": query.limit if query.limit is not None else total,
            "offset": query.offset or 0,
        }

    return run_read(_op)


def get_history_statistics(query: HistoryQuery | None = None) -> dict:
    """Totals added/removed, most common reason and the latest activity."""
    query = replace((query or HistoryQuery()), limit=None, offset=None).validated()

    def _op():
        totals = _apply_filters(
            db.session.query(
                func.coalesce(func.sum(case((InventoryHistory.change > 0, InventoryHistory.change), else_=0)), 0),
                func.coalesce(func.sum(case((InventoryHistory.change < 0, -InventoryHistory.change), else_=0)), 0),
            ).select_from(InventoryHistory).join(
                InventoryBatch, InventoryHistory.batch_id == InventoryBatch.id
            ),
            query,
        ).one()

        top_reason = _apply_filters(
            db.session.query(InventoryHistory.reason, func.count(InventoryHistory.id).label("n"))
            .join(InventoryBatch, InventoryHistory.batch_id == InventoryBatch.id),
            query,
        ).group_by(InventoryHistory.reason).order_by(func.count(InventoryHistory.id).desc()).first()

        return int(totals[0] or 0), int(totals[1] or 0), (top_reason[0] if top_reason else None)

    total_added, total_removed, most_common = run_read(_op)
    recent = get_inventory_history(
        replace(query, limit=RECENT_ACTIVITY_LIMIT, order_by="created_at", order_direction="DESC")
    )

    return {
        "total_added": total_added,
        "total_removed": total_removed,
        "most_common_reason": most_common or InventoryChangeReason.OTHER.value,
        "recent_activity": recent["records"],
    }


def get_product_history(product_id: int, limit: int | None = None) -> list[dict]:
    def _op():
        q = (
            db.session.query(ProductHistory)
            .filter(ProductHistory.product_id == product_id)
            .order_by(ProductHistory.created_at.desc(), ProductHistory.id.desc())
        )
        if limit is not None:
            q = q.limit(limit)
        return [row.to_dict() for row in q.all()]

    return run_read(_op)


def get_change_reasons() -> list[str]:
    return InventoryChangeReason.values()


def latest_activity_at() -> str | None:
    """Timestamp of the newest inventory movement, for the health payload."""
    def _op():
        return db.session.query(func.max(InventoryHistory.created_at)).scalar()

    return to_utc_z(run_read(_op))
