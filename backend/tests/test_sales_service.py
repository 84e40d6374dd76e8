import threading

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import current_quantity, history_total, table_counts
from saripos.errors import InsufficientStockError, NotFoundError, StorageError, ValidationError
from saripos.extensions import db
from saripos.models import InventoryHistory
from saripos.services import batch_service, sales_service
from saripos.services.sales_service import validate_sale_inputs


def test_create_sale_decrements_and_logs(app, coke, sprite, make_batch):
    coke_batch = make_batch(coke, quantity=10)
    sprite_batch = make_batch(sprite, quantity=5)

    sale_id = sales_service.create_sale(
        [
            {"batch_id": coke_batch, "quantity": 2, "price_at_sale": 25.0},
            {"batch_id": sprite_batch, "quantity": 1, "price_at_sale": 35.0},
        ],
        cash_received=100.0,
        total=85.0,
        change=15.0,
    )

    assert current_quantity(coke_batch) == 8
    assert current_quantity(sprite_batch) == 4

    sale = sales_service.get_sale(sale_id).to_dict(include_items=True)
    assert sale["total"] == 85.0
    assert [(i["batch_id"], i["quantity"]) for i in sale["items"]] == [(coke_batch, 2), (sprite_batch, 1)]

    notes = {
        row.note
        for row in db.session.query(InventoryHistory).filter_by(reason="sale").all()
    }
    assert notes == {f"Sold in sale #{sale_id}"}
    assert history_total(coke_batch) == 8
    assert history_total(sprite_batch) == 4


def test_failed_sale_is_all_or_nothing(app, coke, sprite, make_batch):
    plenty = make_batch(coke, quantity=10)
    scarce = make_batch(sprite, quantity=1)
    before = table_counts()

    with pytest.raises(InsufficientStockError) as excinfo:
        sales_service.create_sale(
            [
                {"batch_id": plenty, "quantity": 3, "price_at_sale": 25.0},
                {"batch_id": scarce, "quantity": 2, "price_at_sale": 35.0},
            ],
            cash_received=200.0,
            total=145.0,
            change=55.0,
        )

    assert excinfo.value.details == {"batch_id": scarce, "requested": 2, "available": 1}
    assert "Available: 1, requested: 2" in excinfo.value.message
    assert table_counts() == before
    assert current_quantity(plenty) == 10
    assert current_quantity(scarce) == 1


def test_storage_failure_mid_sale_rolls_back_everything(app, coke, sprite, make_batch, monkeypatch):
    first = make_batch(coke, quantity=10)
    second = make_batch(sprite, quantity=5)
    before = table_counts()

    real_record = sales_service.record_inventory_change
    calls = []

    def record_then_fail(*args, **kwargs):
        calls.append(args)
        if len(calls) == 2:
            raise IntegrityError("INSERT INTO inventory_history", {}, Exception("disk full"))
        return real_record(*args, **kwargs)

    monkeypatch.setattr(sales_service, "record_inventory_change", record_then_fail)

    with pytest.raises(StorageError):
        sales_service.create_sale(
            [
                {"batch_id": first, "quantity": 4, "price_at_sale": 25.0},
                {"batch_id": second, "quantity": 1, "price_at_sale": 35.0},
            ],
            cash_received=200.0,
            total=135.0,
            change=65.0,
        )

    assert len(calls) == 2
    assert table_counts() == before
    assert current_quantity(first) == 10
    assert current_quantity(second) == 5
    assert history_total(first) == 10


def test_sale_on_deleted_batch_is_not_found(app, coke, make_batch):
    batch_id = make_batch(coke, quantity=10)
    batch_service.delete_batch(batch_id)
    before = table_counts()

    with pytest.raises(NotFoundError):
        sales_service.create_sale(
            [{"batch_id": batch_id, "quantity": 1, "price_at_sale": 25.0}],
            cash_received=25.0,
            total=25.0,
            change=0.0,
        )
    assert table_counts() == before


@pytest.mark.parametrize(
    "items, cash, total, change",
    [
        ([], 10.0, 0.0, 10.0),
        ([{"batch_id": 1, "quantity": 0, "price_at_sale": 1.0}], 10.0, 0.0, 10.0),
        ([{"batch_id": 1, "quantity": 1.5, "price_at_sale": 1.0}], 10.0, 1.5, 8.5),
        ([{"batch_id": 1, "quantity": 1, "price_at_sale": -1.0}], 10.0, 0.0, 10.0),
        ([{"batch_id": "abc", "quantity": 1, "price_at_sale": 1.0}], 10.0, 1.0, 9.0),
        (
            [
                {"batch_id": 1, "quantity": 1, "price_at_sale": 1.0},
                {"batch_id": 1, "quantity": 1, "price_at_sale": 1.0},
            ],
            10.0,
            2.0,
            8.0,
        ),
        ([{"batch_id": 1, "quantity": 1, "price_at_sale": 30.0}], 20.0, 30.0, 0.0),
        ([{"batch_id": 1, "quantity": 1, "price_at_sale": 30.0}], 50.0, 30.0, 25.0),
    ],
    ids=[
        "empty-cart",
        "zero-quantity",
        "fractional-quantity",
        "negative-price",
        "bad-batch-id",
        "duplicate-batch",
        "cash-short",
        "wrong-change",
    ],
)
def test_validate_sale_inputs_rejects(items, cash, total, change):
    with pytest.raises(ValidationError):
        validate_sale_inputs(items, cash, total, change)


def test_validate_sale_inputs_accepts_change_within_a_cent():
    lines = validate_sale_inputs(
        [{"batch_id": 1, "quantity": 3, "price_at_sale": 9.99}], 50.0, 29.97, 20.03
    )
    assert lines[0].quantity == 3


def test_cash_a_fraction_short_is_rejected():
    with pytest.raises(ValidationError):
        validate_sale_inputs(
            [{"batch_id": 1, "quantity": 1, "price_at_sale": 10.0}], 9.996, 10.0, 0.0
        )


def test_stored_change_is_computed_from_cash_and_total(app, coke, make_batch):
    batch_id = make_batch(coke, quantity=5)

    sale_id = sales_service.create_sale(
        [{"batch_id": batch_id, "quantity": 1, "price_at_sale": 5.0}],
        cash_received=10.0,
        total=5.0,
        change=5.01,
    )

    sale = sales_service.get_sale(sale_id)
    assert sale.change == 5.0
    assert sale.change == round(sale.cash_received - sale.total, 2)


def test_total_mismatch_is_only_a_warning(app, coke, make_batch, caplog):
    batch_id = make_batch(coke, quantity=5)

    with caplog.at_level("WARNING"):
        sale_id = sales_service.create_sale(
            [{"batch_id": batch_id, "quantity": 1, "price_at_sale": 25.0}],
            cash_received=30.0,
            total=24.0,
            change=6.0,
        )

    assert sale_id > 0
    assert "does not match sum of lines" in caplog.text
    assert current_quantity(batch_id) == 4


def test_concurrent_sales_cannot_oversell(app, coke, make_batch):
    """Two 6-unit sales race for 10 units: exactly one wins."""
    batch_id = make_batch(coke, quantity=10)
    db.session.remove()

    barrier = threading.Barrier(2)
    results = []
    errors = []

    def worker():
        with app.app_context():
            try:
                barrier.wait()
                sale_id = sales_service.create_sale(
                    [{"batch_id": batch_id, "quantity": 6, "price_at_sale": 25.0}],
                    cash_received=150.0,
                    total=150.0,
                    change=0.0,
                )
                results.append(sale_id)
            except InsufficientStockError as exc:
                errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert len(results) == 1
    assert len(errors) == 1
    assert errors[0].details["available"] == 4
    assert current_quantity(batch_id) == 4
    assert history_total(batch_id) == 4
