"""Customer lookup and the customer snapshot stored on a sale."""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from retailbill.core.config import settings
from retailbill.core.exceptions import CustomerNotFoundError
from retailbill.models.customer import Customer

logger = logging.getLogger(__name__)

# Markup and statement fragments that have no business in a name or note
_DANGEROUS_PATTERNS = [
    r'<\s*/?\s*script[^>]*>',  # XSS
    r'javascript:',  # XSS
    r'<[^>]+>',  # Any other tag
    r'\/\*', r'\*\/',  # SQL block comments
    r'--',  # SQL comments
]
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


def sanitize_text(value: Optional[str], max_length: int = 255) -> Optional[str]:
    """Clean free text from a request.

    - Drop control characters and markup
    - Collapse whitespace
    - Cut to max_length

    Returns None when nothing is left.
    """
    if value is None:
        return None
    value = _CONTROL_CHARS.sub('', value)
    for pattern in _DANGEROUS_PATTERNS:
        value = re.sub(pattern, '', value, flags=re.IGNORECASE)
    value = " ".join(value.split())
    value = value[:max_length].strip()
    return value or None


@dataclass(frozen=True)
class CustomerSnapshot:
    """Customer details as written onto the sale."""
    customer_id: Optional[int]
    name: str
    phone: Optional[str]
    email: Optional[str]

    @property
    def is_registered(self) -> bool:
        return self.customer_id is not None


def find_customer_by_id(db: Session, customer_id: int) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.id == customer_id).first()


def resolve_customer(
    db: Session,
    customer_id: Optional[int] = None,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    email: Optional[str] = None,
) -> CustomerSnapshot:
    """
    Build the customer snapshot for a sale.

    A customer id must resolve to a record; details given in the request
    override the stored ones. Without an id the sale is a walk-in.

    Raises:
        CustomerNotFoundError: the id doesn't exist
    """
    if customer_id is None:
        return CustomerSnapshot(
            customer_id=None,
            name=name or settings.WALK_IN_CUSTOMER_NAME,
            phone=phone,
            email=email,
        )

    customer = find_customer_by_id(db, customer_id)
    if customer is None:
        logger.info(f"Sale references unknown customer {customer_id}")
        raise CustomerNotFoundError(customer_id)

    return CustomerSnapshot(
        customer_id=customer.id,
        name=name or customer.name or "Customer",
        phone=phone or customer.phone,
        email=email or customer.email,
    )
