"""
Invoice number generation.

Numbers look like INV-2025-000001: prefix, calendar year, zero-padded
sequence. The sequence lives in one invoice_counters row per year which is
locked and incremented inside the sale's own transaction, so a rolled-back
sale also rolls back its number.

The first sale of a year creates the row, seeding it from the highest invoice
number already stored for that year. Two creators racing on the insert are
resolved with a savepoint: the loser re-reads the winner's row. The unique
index on sales.invoice_number stays the last guard.
"""
import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from retailbill.core.config import settings
from retailbill.models.invoice_counter import InvoiceCounter
from retailbill.models.sale import Sale

logger = logging.getLogger(__name__)


def invoice_prefix(year: int) -> str:
    return f"{settings.INVOICE_PREFIX}-{year}-"


def format_invoice_number(year: int, sequence: int) -> str:
    return f"{invoice_prefix(year)}{sequence:0{settings.INVOICE_SEQUENCE_WIDTH}d}"


def parse_sequence(invoice_number: str, year: int) -> Optional[int]:
    """Numeric suffix of an invoice number for `year`, or None if it doesn't belong to it."""
    prefix = invoice_prefix(year)
    if not invoice_number or not invoice_number.startswith(prefix):
        return None
    suffix = invoice_number[len(prefix):]
    return int(suffix) if suffix.isdigit() else None


def highest_existing_sequence(db: Session, year: int) -> int:
    """Largest sequence already used by a stored sale in `year` (0 if none)."""
    rows = (
        db.query(Sale.invoice_number)
        .filter(Sale.invoice_number.like(f"{invoice_prefix(year)}%"))
        .all()
    )
    # Compared numerically: a sequence that outgrew the padding sorts wrong as text
    sequences = [parse_sequence(number, year) for (number,) in rows]
    return max((s for s in sequences if s is not None), default=0)


def _lock_counter(db: Session, year: int) -> Optional[InvoiceCounter]:
    return (
        db.query(InvoiceCounter)
        .filter(InvoiceCounter.year == year)
        .with_for_update()
        .populate_existing()
        .first()
    )


def _create_counter(db: Session, year: int) -> InvoiceCounter:
    seed = highest_existing_sequence(db, year)
    savepoint = db.begin_nested()
    try:
        counter = InvoiceCounter(year=year, last_sequence=seed)
        db.add(counter)
        db.flush()
        savepoint.commit()
        logger.info(f"Invoice counter created for {year} starting after sequence {seed}")
        return counter
    except IntegrityError:
        savepoint.rollback()
        logger.warning(f"Invoice counter for {year} created concurrently; re-reading")
        counter = _lock_counter(db, year)
        if counter is None:
            raise
        return counter


def next_invoice_number(db: Session, year: int) -> str:
    """
    Reserve and return the next invoice number for `year`.

    Must run inside the transaction that inserts the sale. Nothing is
    committed here.
    """
    counter = _lock_counter(db, year)
    if counter is None:
        counter = _create_counter(db, year)

    counter.last_sequence = counter.last_sequence + 1
    db.flush()
    number = format_invoice_number(year, counter.last_sequence)
    logger.debug(f"Reserved invoice number {number}")
    return number
