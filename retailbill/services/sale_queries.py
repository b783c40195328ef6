"""Read-only queries over committed sales."""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from retailbill.core.exceptions import CustomerNotFoundError, InvoiceNotFoundError
from retailbill.models.customer import Customer
from retailbill.models.sale import Sale, SaleItem

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class InvoiceFilters:
    search: Optional[str] = None
    payment_mode: Optional[str] = None
    customer_id: Optional[int] = None
    store_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    sort_order: str = "desc"


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _page_bounds(page: int, limit: int) -> Tuple[int, int]:
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    return page, limit


def get_sale_by_invoice_number(db: Session, invoice_number: str) -> Sale:
    sale = db.query(Sale).filter(Sale.invoice_number == invoice_number).first()
    if sale is None:
        raise InvoiceNotFoundError(invoice_number)
    return sale


def list_sales(db: Session, filters: InvoiceFilters, page: int = 1, limit: int = 20) -> Tuple[List[Sale], int]:
    """Filtered page of sales, newest first unless sort_order is 'asc'. Returns (sales, total)."""
    page, limit = _page_bounds(page, limit)
    query = db.query(Sale)

    if filters.search:
        pattern = _like_pattern(filters.search.strip())
        query = query.filter(or_(
            Sale.invoice_number.ilike(pattern, escape="\\"),
            Sale.customer_name.ilike(pattern, escape="\\"),
            Sale.customer_phone.ilike(pattern, escape="\\"),
        ))
    if filters.payment_mode:
        query = query.filter(Sale.payment_mode == filters.payment_mode)
    if filters.customer_id is not None:
        query = query.filter(Sale.customer_id == filters.customer_id)
    if filters.store_id is not None:
        query = query.filter(Sale.store_id == filters.store_id)
    if filters.start_date is not None:
        query = query.filter(Sale.sale_date >= filters.start_date)
    if filters.end_date is not None:
        query = query.filter(Sale.sale_date <= filters.end_date)

    total = query.count()
    order = Sale.sale_date.asc() if filters.sort_order == "asc" else Sale.sale_date.desc()
    sales = query.order_by(order, Sale.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return sales, total


def purchase_summary(db: Session, customer_id: int) -> dict:
    totals = (
        db.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount), 0),
            func.coalesce(func.sum(Sale.savings), 0),
            func.min(Sale.sale_date),
            func.max(Sale.sale_date),
        )
        .filter(Sale.customer_id == customer_id)
        .one()
    )
    count, spent, savings, first, last = totals
    total_items = (
        db.query(func.count(SaleItem.id))
        .join(Sale, SaleItem.sale_id == Sale.id)
        .filter(Sale.customer_id == customer_id)
        .scalar()
    )
    spent = Decimal(str(spent))
    return {
        "total_purchases": count,
        "total_spent": spent,
        "total_items": total_items or 0,
        "total_savings": Decimal(str(savings)),
        "avg_order_value": (spent / count) if count else Decimal("0"),
        "first_purchase": first,
        "last_purchase": last,
    }


def customer_history(
    db: Session, customer_id: int, page: int = 1, limit: int = 10
) -> Tuple[Customer, dict, List[Sale], int]:
    """
    A customer's purchases, newest first, with lifetime totals.

    Raises:
        CustomerNotFoundError: unknown customer (404)
    """
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if customer is None:
        raise CustomerNotFoundError(customer_id, status_code=404)

    purchases, total = list_sales(db, InvoiceFilters(customer_id=customer_id), page=page, limit=limit)
    return customer, purchase_summary(db, customer_id), purchases, total
