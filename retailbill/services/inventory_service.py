"""Inventory reads and stock decrements used by the sale engine.

Both functions work inside the caller's transaction and never commit.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from retailbill.core.exceptions import InsufficientStockError, ItemNotFoundError
from retailbill.db.session import is_sqlite
from retailbill.models.inventory import InventoryItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockDecrement:
    item_id: int
    item_name: str
    quantity: int


def find_items_by_ids(db: Session, item_ids: Iterable[int]) -> List[InventoryItem]:
    """Load the given items in one query.

    On servers with row locks the rows stay locked until the transaction ends.
    SQLite already holds the database write lock (BEGIN IMMEDIATE).
    """
    ids = list(item_ids)
    if not ids:
        return []
    query = db.query(InventoryItem).filter(InventoryItem.id.in_(ids))
    if not is_sqlite(str(db.get_bind().url)):
        query = query.with_for_update()
    return query.populate_existing().all()


def bulk_decrement_stock(db: Session, decrements: Sequence[StockDecrement]) -> None:
    """
    Subtract sold quantities from stock.

    Each row is only updated while it still holds enough stock, so stock can
    never go negative even if it changed after validation.

    Raises:
        InsufficientStockError: a row no longer has enough stock
        ItemNotFoundError: a row disappeared
    """
    for dec in decrements:
        updated = (
            db.query(InventoryItem)
            .filter(InventoryItem.id == dec.item_id, InventoryItem.stock_qty >= dec.quantity)
            .update(
                {
                    InventoryItem.stock_qty: InventoryItem.stock_qty - dec.quantity,
                    InventoryItem.updated_at: func.now(),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            available = (
                db.query(InventoryItem.stock_qty)
                .filter(InventoryItem.id == dec.item_id)
                .scalar()
            )
            if available is None:
                raise ItemNotFoundError([dec.item_id])
            logger.warning(
                f"Stock for item {dec.item_id} changed during sale: available {available}, requested {dec.quantity}"
            )
            raise InsufficientStockError(dec.item_id, dec.item_name, available, dec.quantity)

        # Loaded copies still show the old quantity
        cached = db.identity_map.get(Session.identity_key(InventoryItem, dec.item_id))
        if cached is not None:
            db.expire(cached, ["stock_qty", "updated_at"])

    logger.debug(f"Decremented stock for {len(decrements)} item(s)")
