from retailbill.models.store import Store
from retailbill.models.user import User
from retailbill.models.customer import Customer
from retailbill.models.inventory import InventoryItem
from retailbill.models.sale import Sale, SaleItem, PaymentMode, SaleStatus
from retailbill.models.invoice_counter import InvoiceCounter

__all__ = [
    "Store", "User", "Customer", "InventoryItem", "Sale", "SaleItem", "PaymentMode", "SaleStatus", "InvoiceCounter",
]
