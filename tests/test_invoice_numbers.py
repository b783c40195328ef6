from decimal import Decimal

from sqlalchemy import insert

from conftest import SALE_TIME

from retailbill.models import InvoiceCounter, Sale
from retailbill.services import invoice_numbers
from retailbill.services.invoice_numbers import (
    format_invoice_number, highest_existing_sequence, next_invoice_number, parse_sequence,
)


def store_sale(session_factory, store_id, invoice_number):
    with session_factory() as db:
        db.add(Sale(
            invoice_number=invoice_number,
            customer_name="Walk-in Customer",
            payment_mode="cash",
            subtotal=Decimal("10.00"),
            mrp_total=Decimal("10.00"),
            total_amount=Decimal("10.00"),
            store_id=store_id,
            sale_date=SALE_TIME,
        ))
        db.commit()


def reserve(session_factory, year):
    with session_factory() as db:
        number = next_invoice_number(db, year)
        db.commit()
    return number


def test_format_invoice_number():
    assert format_invoice_number(2025, 1) == "INV-2025-000001"
    assert format_invoice_number(2025, 123456) == "INV-2025-123456"
    assert format_invoice_number(2025, 1234567) == "INV-2025-1234567"


def test_parse_sequence():
    assert parse_sequence("INV-2025-000042", 2025) == 42
    assert parse_sequence("INV-2025-1000000", 2025) == 1000000
    assert parse_sequence("INV-2024-000042", 2025) is None
    assert parse_sequence("INV-2025-ABC", 2025) is None
    assert parse_sequence("", 2025) is None


def test_first_number_of_the_year(session_factory, seed):
    assert reserve(session_factory, 2025) == "INV-2025-000001"

    with session_factory() as db:
        counter = db.get(InvoiceCounter, 2025)
        assert counter.last_sequence == 1


def test_numbers_continue_in_order(session_factory, seed):
    numbers = [reserve(session_factory, 2025) for _ in range(3)]

    assert numbers == ["INV-2025-000001", "INV-2025-000002", "INV-2025-000003"]


def test_counter_seeded_from_existing_invoices(session_factory, seed):
    store_sale(session_factory, seed.store_id, "INV-2025-000041")
    store_sale(session_factory, seed.store_id, "INV-2025-000007")

    assert reserve(session_factory, 2025) == "INV-2025-000042"


def test_seed_compares_sequences_numerically(session_factory, seed):
    store_sale(session_factory, seed.store_id, "INV-2025-999999")
    store_sale(session_factory, seed.store_id, "INV-2025-1000000")

    with session_factory() as db:
        assert highest_existing_sequence(db, 2025) == 1000000


def test_new_year_starts_over(session_factory, seed):
    store_sale(session_factory, seed.store_id, "INV-2025-000057")
    assert reserve(session_factory, 2025) == "INV-2025-000058"

    assert reserve(session_factory, 2026) == "INV-2026-000001"
    assert reserve(session_factory, 2025) == "INV-2025-000059"


def test_rolled_back_number_is_reused(session_factory, seed):
    with session_factory() as db:
        assert next_invoice_number(db, 2025) == "INV-2025-000001"
        db.rollback()

    assert reserve(session_factory, 2025) == "INV-2025-000001"


def test_counter_created_concurrently_is_reused(session_factory, seed, monkeypatch):
    real_highest = invoice_numbers.highest_existing_sequence

    def competitor_wins(db, year):
        seen = real_highest(db, year)
        # A concurrent sale creates the year's counter between our read and our insert
        db.execute(insert(InvoiceCounter).values(year=year, last_sequence=5))
        return seen

    monkeypatch.setattr(invoice_numbers, "highest_existing_sequence", competitor_wins)

    with session_factory() as db:
        number = next_invoice_number(db, 2025)
        db.commit()

    assert number == "INV-2025-000006"
    with session_factory() as db:
        assert db.get(InvoiceCounter, 2025).last_sequence == 6

    monkeypatch.undo()
    assert reserve(session_factory, 2025) == "INV-2025-000007"
