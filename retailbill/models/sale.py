"""
Sale aggregate: one committed invoice and its line items.

FINANCIAL RECORD RULES:
- A Sale is inserted once, together with its items, by the sale engine.
- SaleItem rows are insert-only snapshots; they are never updated or deleted.
- On a Sale only the status and the notification bookkeeping may change.
- Neither may be deleted.

The ORM listeners at the bottom of this module enforce these rules for every
session in the process.
"""
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, ForeignKey, Numeric, DateTime, Text, JSON, CheckConstraint, event, inspect,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from retailbill.core.exceptions import ImmutableRecordError
from retailbill.db.base import Base


class PaymentMode(str, Enum):
    CASH = "cash"
    UPI = "upi"
    CREDIT = "credit"
    CARD = "card"


class SaleStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL_REFUND = "partial_refund"
    FULL_REFUND = "full_refund"
    CANCELLED = "cancelled"


# Columns of a stored Sale that may still change
MUTABLE_SALE_FIELDS = frozenset({"status", "last_notified_at", "notification_summary", "updated_at"})


class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_sales_total_non_negative"),
        CheckConstraint("savings >= 0", name="ck_sales_savings_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(32), nullable=False, unique=True, index=True)

    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_name = Column(String(255), nullable=False)
    customer_phone = Column(String(64), nullable=True)
    customer_email = Column(String(255), nullable=True)

    payment_mode = Column(String(16), nullable=False, default=PaymentMode.CASH.value)
    payment_reference = Column(String(128), nullable=True)

    subtotal = Column(Numeric(12, 2), nullable=False)
    mrp_total = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    extra_discount = Column(Numeric(12, 2), nullable=False, default=0)
    total_discount = Column(Numeric(12, 2), nullable=False, default=0)
    gst_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    cgst_rate = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    gst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    cgst_amount = Column(Numeric(12, 2), nullable=False, default=0)
    total_tax = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)  # Final payable
    savings = Column(Numeric(12, 2), nullable=False, default=0)

    store_id = Column(Integer, ForeignKey("stores.id"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(32), nullable=False, default=SaleStatus.COMPLETED.value)
    notes = Column(Text, nullable=True)

    sale_date = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    last_notified_at = Column(DateTime(timezone=True), nullable=True)
    notification_summary = Column(JSON, nullable=True)

    items = relationship(
        "SaleItem",
        back_populates="sale",
        order_by="SaleItem.position",
        cascade="save-update, merge",
        passive_deletes="all",
        lazy="selectin",
    )
    customer = relationship("Customer", backref="sales")
    store = relationship("Store")
    staff = relationship("User")

    def __repr__(self) -> str:
        return f"<Sale {self.invoice_number} total={self.total_amount}>"


class SaleItem(Base):
    """Line of a sale with the item details captured at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    item_id = Column(Integer, ForeignKey("inventory_items.id"), nullable=False)
    item_name = Column(String(255), nullable=False)
    brand = Column(String(255), nullable=True)
    sku = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    mrp = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)

    sale = relationship("Sale", back_populates="items")


def _changed_columns(target) -> set:
    state = inspect(target)
    return {
        attr.key
        for attr in state.mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    }


@event.listens_for(SaleItem, "before_update")
def _prevent_sale_item_update(mapper, connection, target):
    changed = _changed_columns(target)
    if changed:
        raise ImmutableRecordError(
            "SaleItem", target.id, f"line items cannot be modified (attempted: {sorted(changed)})"
        )


@event.listens_for(SaleItem, "before_delete")
def _prevent_sale_item_delete(mapper, connection, target):
    raise ImmutableRecordError("SaleItem", target.id, "line items cannot be deleted")


@event.listens_for(Sale, "before_update")
def _prevent_sale_financial_update(mapper, connection, target):
    forbidden = _changed_columns(target) - MUTABLE_SALE_FIELDS
    if forbidden:
        raise ImmutableRecordError(
            "Sale", target.invoice_number, f"only status and notification fields may change (attempted: {sorted(forbidden)})"
        )


@event.listens_for(Sale, "before_delete")
def _prevent_sale_delete(mapper, connection, target):
    raise ImmutableRecordError("Sale", target.invoice_number, "sales are financial records and cannot be deleted")
