# Overview: Reference data and sample stock for fresh databases.

from __future__ import annotations

from .extensions import db
from .models import Category, Product, Unit
from .services.batch_service import add_batch
from .services.concurrency import run_in_transaction
from .services.product_service import find_product_by_barcode

DEFAULT_UNITS = ("Piece", "Pack", "Bottle", "Can", "Box", "Sachet")

DEFAULT_CATEGORIES = (
    "Snacks",
    "Drinks",
    "Canned Goods",
    "Instant Noodles",
    "Toiletries",
    "Household Items",
)

# (name, barcode, selling_price, unit, category)
SAMPLE_PRODUCTS = (
    ("Coca-Cola 1L", "1234567890123", 25.00, "Bottle", "Drinks"),
    ("Lucky Me Pancit Canton", "2345678901234", 10.00, "Pack", "Instant Noodles"),
    ("Pringles Original", "3456789012345", 55.00, "Can", "Snacks"),
    ("Nescafe Classic 50g", "4567890123456", 65.00, "Sachet", "Snacks"),
    ("Century Tuna Flakes", "5678901234567", 35.00, "Can", "Canned Goods"),
    ("Safeguard Soap", "6789012345678", 28.00, "Piece", "Toiletries"),
    ("Ariel Powder 1kg", "7890123456789", 120.00, "Box", "Household Items"),
    ("Sprite 1.5L", "8901234567890", 35.00, "Bottle", "Drinks"),
)

# (barcode, cost_price, quantity, expiration_date, batch_number)
SAMPLE_BATCHES = (
    ("1234567890123", 20.00, 12, "2024-12-31", "COKE-2024-01"),
    ("1234567890123", 21.00, 12, "2025-06-30", "COKE-2024-02"),
    ("2345678901234", 7.00, 30, "2025-03-31", "LUCKY-2024-01"),
    ("2345678901234", 7.50, 20, "2025-06-30", "LUCKY-2024-02"),
    ("3456789012345", 45.00, 15, "2025-09-30", "PRINGLES-2024-01"),
    ("3456789012345", 48.00, 10, "2025-12-31", "PRINGLES-2024-02"),
    ("4567890123456", 55.00, 25, "2026-01-31", "NESCAFE-2024-01"),
    ("5678901234567", 28.00, 18, "2025-08-31", "TUNA-2024-01"),
    ("6789012345678", 22.00, 40, "2026-03-31", "SAFEGUARD-2024-01"),
    ("7890123456789", 100.00, 8, "2025-11-30", "ARIEL-2024-01"),
    ("8901234567890", 28.00, 15, "2025-07-31", "SPRITE-2024-01"),
    ("8901234567890", 30.00, 10, "2025-10-31", "SPRITE-2024-02"),
)


def seed_reference_data() -> dict:
    """Idempotently insert units, categories and sample products. Returns counts inserted."""
    def _op():
        counts = {"units": 0, "categories": 0, "products": 0}

        units = {u.name: u for u in db.session.query(Unit).all()}
        for name in DEFAULT_UNITS:
            if name not in units:
                units[name] = Unit(name=name)
                db.session.add(units[name])
                counts["units"] += 1

        categories = {c.name: c for c in db.session.query(Category).all()}
        for name in DEFAULT_CATEGORIES:
            if name not in categories:
                categories[name] = Category(name=name)
                db.session.add(categories[name])
                counts["categories"] += 1
        db.session.flush()

        existing = {b for (b,) in db.session.query(Product.barcode).filter(Product.barcode.isnot(None))}
        for name, barcode, price, unit, category in SAMPLE_PRODUCTS:
            if barcode in existing:
                continue
            db.session.add(
                Product(
                    name=name,
                    barcode=barcode,
                    selling_price=price,
                    unit_id=units[unit].id,
                    category_id=categories[category].id,
                )
            )
            counts["products"] += 1
        return counts

    return run_in_transaction(_op)


def seed_sample_batches() -> int:
    """
    Add the sample batches through the batch ledger.

    Each batch gets its 'initial_stock' history row, so the seeded
    database reconciles. Skips products that already have stock.
    """
    created = 0
    for barcode, cost_price, quantity, expiration_date, batch_number in SAMPLE_BATCHES:
        product = find_product_by_barcode(barcode)
        if product is None:
            continue
        if any(b.batch_number == batch_number for b in product.batches):
            continue
        add_batch({
            "product_id": product.id,
            "cost_price": cost_price,
            "quantity": quantity,
            "expiration_date": expiration_date,
            "batch_number": batch_number,
        })
        created += 1
    return created
