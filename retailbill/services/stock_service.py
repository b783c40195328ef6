"""Stock validation and reservation for a sale (all-or-nothing)."""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, Sequence, Tuple

from sqlalchemy.orm import Session

from retailbill.core.exceptions import InsufficientStockError, ItemNotFoundError, SaleValidationError
from retailbill.services.inventory_service import StockDecrement, bulk_decrement_stock, find_items_by_ids
from retailbill.services.pricing import SaleLine, to_money

logger = logging.getLogger(__name__)


class RequestedItem(Protocol):
    item_id: int
    quantity: int


@dataclass(frozen=True)
class StockReservation:
    """Snapshots to store on the sale and the decrements to apply with it."""
    lines: Tuple[SaleLine, ...]
    decrements: Tuple[StockDecrement, ...]

    def apply(self, db: Session) -> None:
        bulk_decrement_stock(db, self.decrements)


def validate_and_reserve(db: Session, requested: Sequence[RequestedItem]) -> StockReservation:
    """
    Check every requested item exists and has enough stock.

    Nothing is written here. The returned reservation carries the item
    snapshots (name, brand, sku, prices as they are now) in request order.

    Raises:
        SaleValidationError: an item id appears more than once
        ItemNotFoundError: any id is unknown (all missing ids are reported)
        InsufficientStockError: the first item whose stock is short
    """
    ids = [r.item_id for r in requested]
    if len(set(ids)) != len(ids):
        raise SaleValidationError.single("items", "Each item may appear only once per sale")

    items = {item.id: item for item in find_items_by_ids(db, ids)}
    missing = [item_id for item_id in ids if item_id not in items]
    if missing:
        logger.info(f"Sale references unknown items: {missing}")
        raise ItemNotFoundError(missing)

    lines = []
    decrements = []
    for req in requested:
        item = items[req.item_id]
        if item.stock_qty < req.quantity:
            raise InsufficientStockError(item.id, item.name, item.stock_qty, req.quantity)
        lines.append(SaleLine(
            item_id=item.id,
            name=item.name,
            quantity=req.quantity,
            unit_price=to_money(item.sell_price or Decimal("0")),
            mrp=to_money(item.mrp_price or Decimal("0")),
            brand=item.brand,
            sku=item.sku,
        ))
        decrements.append(StockDecrement(item_id=item.id, item_name=item.name, quantity=req.quantity))

    return StockReservation(lines=tuple(lines), decrements=tuple(decrements))
