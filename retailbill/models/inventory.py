from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, Text, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from retailbill.db.base import Base


class InventoryItem(Base):
    """
    Sellable stock item.

    Owned by the inventory subsystem. The sale engine reads it to snapshot
    name/brand/prices and is the only code path that decrements stock_qty
    as a side effect of a sale.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("stock_qty >= 0", name="ck_inventory_items_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    brand = Column(String(255), nullable=True)
    sku = Column(String(64), nullable=True, index=True)
    description = Column(Text, nullable=True)
    purchase_price = Column(Numeric(12, 2), default=0)
    sell_price = Column(Numeric(12, 2), nullable=False)  # ₹ per unit
    mrp_price = Column(Numeric(12, 2), nullable=False)
    stock_qty = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    store = relationship("Store", backref="inventory_items")
