from sqlalchemy import Column, Integer
from retailbill.db.base import Base


class InvoiceCounter(Base):
    """Last invoice sequence issued per calendar year. Locked while a sale is numbered."""
    __tablename__ = "invoice_counters"

    year = Column(Integer, primary_key=True, autoincrement=False)
    last_sequence = Column(Integer, nullable=False, default=0)
