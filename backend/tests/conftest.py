"""
Pytest fixtures for SariPOS backend tests.

Each test gets its own app over a temporary SQLite file (WAL mode needs a
real file), with the schema created, default settings inserted and the
reference units, categories and products seeded.
"""

import pytest
from sqlalchemy import func

from saripos import create_app
from saripos.config import TestConfig
from saripos.extensions import db
from saripos.models import InventoryBatch, InventoryHistory, Sale, SaleItem
from saripos.seed import seed_reference_data
from saripos.services import batch_service
from saripos.services.product_service import find_product_by_barcode
from saripos.services.settings_service import ensure_default_settings

COKE_BARCODE = "1234567890123"
SPRITE_BARCODE = "8901234567890"


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing."""
    db_path = tmp_path / "saripos-test.sqlite3"
    app = create_app(
        {'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}"},
        config_class=TestConfig,
    )

    with app.app_context():
        db.create_all()
        ensure_default_settings()
        seed_reference_data()
        yield app
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def coke(app):
    return find_product_by_barcode(COKE_BARCODE)


@pytest.fixture(scope='function')
def sprite(app):
    return find_product_by_barcode(SPRITE_BARCODE)


@pytest.fixture(scope='function')
def make_batch(app):
    """Factory: add a batch through the ledger and return its id."""
    def _make(product, quantity=10, cost_price=20.0, **extra):
        data = {"product_id": product.id, "quantity": quantity, "cost_price": cost_price}
        data.update(extra)
        return batch_service.add_batch(data)

    return _make


def history_total(batch_id: int) -> int:
    """SUM(change) over a batch's history rows."""
    return db.session.query(
        func.coalesce(func.sum(InventoryHistory.change), 0)
    ).filter(InventoryHistory.batch_id == batch_id).scalar()


def current_quantity(batch_id: int) -> int:
    return (
        db.session.query(InventoryBatch.quantity)
        .filter(InventoryBatch.id == batch_id)
        .scalar()
    )


def table_counts() -> dict:
    """Row counts of every table a sale writes to."""
    return {
        "sales": db.session.query(Sale).count(),
        "sale_items": db.session.query(SaleItem).count(),
        "inventory_history": db.session.query(InventoryHistory).count(),
    }
