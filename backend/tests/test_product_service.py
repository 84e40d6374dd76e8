import pytest
from sqlalchemy import text

from saripos.errors import NotFoundError, ValidationError
from saripos.extensions import db
from saripos.models import Product, ProductHistory
from saripos.services import product_service
from saripos.services.product_service import FieldChange, diff_product


def test_diff_product_is_pure_and_ordered():
    existing = {"name": "Coke", "selling_price": 25.0, "unit_id": 3, "category_id": None}
    incoming = {"name": "Coke 1L", "selling_price": 25.0, "unit_id": None, "category_id": 2}

    changes = diff_product(existing, incoming)

    assert changes == [
        FieldChange("name", "Coke", "Coke 1L"),
        FieldChange("unit_id", 3, None),
        FieldChange("category_id", None, 2),
    ]
    assert changes[0].describe() == 'Name changed from "Coke" to "Coke 1L"'
    assert changes[1].describe() == "Unit ID changed from 3 to null"
    assert diff_product(existing, dict(existing)) == []


def test_upsert_creates_new_product(app):
    result = product_service.upsert_product({
        "name": "Kopiko Brown",
        "barcode": "4800000000001",
        "selling_price": "8.50",
        "unit_id": 6,
        "category_id": 1,
    })

    assert result["action"] == "created"
    product = product_service.get_product(result["id"])
    assert product.selling_price == 8.5
    assert product.created_at == product.updated_at
    assert db.session.query(ProductHistory).filter_by(product_id=product.id).count() == 0


def test_upsert_existing_barcode_records_changes(app, coke):
    result = product_service.upsert_product({
        "name": "Coca-Cola 1L",
        "barcode": coke.barcode,
        "selling_price": 27.0,
        "unit_id": coke.unit_id,
        "category_id": coke.category_id,
    })

    assert result == {"id": coke.id, "action": "updated"}
    rows = (
        db.session.query(ProductHistory)
        .filter_by(product_id=coke.id)
        .order_by(ProductHistory.id.asc())
        .all()
    )
    assert [(r.field, r.old_value, r.new_value) for r in rows] == [
        ("selling_price", "25.0", "27.0"),
        ("multiple", "", ""),
    ]
    assert rows[-1].note == "Selling price changed from 25.0 to 27.0"
    assert product_service.get_product(coke.id).selling_price == 27.0


def test_product_history_failure_does_not_block_the_update(app, coke, caplog):
    db.session.execute(text(
        "CREATE TRIGGER reject_name_history BEFORE INSERT ON product_history "
        "WHEN NEW.field = 'name' "
        "BEGIN SELECT RAISE(ABORT, 'name history rejected'); END"
    ))
    db.session.commit()

    with caplog.at_level("WARNING"):
        result = product_service.upsert_product({
            "name": "Coca-Cola 1.5L",
            "barcode": coke.barcode,
            "selling_price": 27.0,
            "unit_id": coke.unit_id,
            "category_id": coke.category_id,
        })

    assert result == {"id": coke.id, "action": "updated"}
    assert "Failed to record product change" in caplog.text
    fields = [
        r.field
        for r in db.session.query(ProductHistory).filter_by(product_id=coke.id).order_by(ProductHistory.id.asc())
    ]
    assert fields == ["selling_price", "multiple"]

    product = product_service.get_product(coke.id)
    assert (product.name, product.selling_price) == ("Coca-Cola 1.5L", 27.0)


def test_upsert_without_changes_writes_nothing(app, coke):
    before = coke.to_dict()

    result = product_service.upsert_product({
        "name": coke.name,
        "barcode": coke.barcode,
        "selling_price": coke.selling_price,
        "unit_id": coke.unit_id,
        "category_id": coke.category_id,
    })

    assert result["action"] == "updated"
    assert db.session.query(ProductHistory).count() == 0
    assert product_service.get_product(coke.id).to_dict()["updated_at"] == before["updated_at"]


def test_blank_barcode_never_matches(app):
    first = product_service.upsert_product({"name": "Loose candy", "barcode": "  ", "selling_price": 1})
    second = product_service.upsert_product({"name": "Loose candy", "barcode": None, "selling_price": 1})

    assert first["action"] == second["action"] == "created"
    assert first["id"] != second["id"]
    assert db.session.query(Product).filter(Product.name == "Loose candy").count() == 2
    assert product_service.find_product_by_barcode("") is None


def test_upsert_validation(app):
    with pytest.raises(ValidationError):
        product_service.upsert_product({"barcode": "1"})
    with pytest.raises(ValidationError):
        product_service.upsert_product({"name": "x", "selling_price": -1})
    with pytest.raises(ValidationError):
        product_service.upsert_product({"name": "x", "selling_price": 1, "unit_id": 9999})
    with pytest.raises(ValidationError):
        product_service.upsert_product({"name": "x", "selling_price": 1, "stock": 5})


def test_get_product_missing(app):
    with pytest.raises(NotFoundError):
        product_service.get_product(9999)
