"""
Exception taxonomy for the billing API and secure error rendering.

SECURITY PRINCIPLE: Don't expose internal details to users.
Domain errors carry enough detail for the caller to fix the request
(which item, how much stock is left). Anything unclassified becomes a
generic 500 and is logged in full internally.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SaleError(Exception):
    """Base class for every error the sale engine surfaces to callers."""

    code: str = "SALE_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


# --- Validation (no I/O attempted) ---

class SaleValidationError(SaleError):
    code = "VALIDATION_ERROR"

    def __init__(self, errors: List[Dict[str, Any]], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = errors

    @classmethod
    def single(cls, field: Optional[str], message: str) -> "SaleValidationError":
        return cls([{"field": field, "message": message}])

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


# --- Business-rule violations discovered while processing ---

class DomainError(SaleError):
    code = "DOMAIN_ERROR"


class StoreRequiredError(DomainError):
    code = "STORE_REQUIRED"

    def __init__(self, message: str = (
        "Store ID is required. Provide storeId in the request body "
        "or ask an admin to assign a store to your account."
    ), details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class ItemNotFoundError(DomainError):
    code = "ITEM_NOT_FOUND"

    def __init__(self, missing_ids: List[int]):
        super().__init__(
            "One or more items not found in inventory",
            {"missingItemIds": missing_ids},
        )
        self.missing_ids = missing_ids


class InsufficientStockError(DomainError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: int, item_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {item_name}. Available: {available}, Requested: {requested}",
            {"itemId": item_id, "itemName": item_name, "available": available, "requested": requested},
        )
        self.item_id = item_id
        self.item_name = item_name
        self.available = available
        self.requested = requested


class CustomerNotFoundError(DomainError):
    code = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: int, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__("Customer not found", {"customerId": customer_id})
        self.customer_id = customer_id
        self.status_code = status_code


class InvoiceNotFoundError(DomainError):
    code = "INVOICE_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, invoice_number: str):
        super().__init__("Invoice not found", {"invoiceNumber": invoice_number})
        self.invoice_number = invoice_number


# --- Concurrency ---

class ConflictError(SaleError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class PersistenceConflictError(ConflictError):
    code = "PERSISTENCE_CONFLICT"

    def __init__(self, attempts: int):
        super().__init__(
            "The sale could not be saved because of concurrent updates. Please retry.",
            {"attempts": attempts},
        )
        self.attempts = attempts


# --- Downstream (never fatal to a committed sale) ---

class DownstreamError(SaleError):
    code = "DOWNSTREAM_ERROR"
    status_code = status.HTTP_502_BAD_GATEWAY


class NotificationError(DownstreamError):
    code = "NOTIFICATION_ERROR"


# --- Immutability of financial records ---

class ImmutableRecordError(SaleError):
    code = "IMMUTABLE_RECORD"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity_type: str, entity_id: Any, reason: str):
        super().__init__(f"{entity_type} {entity_id} is immutable: {reason}")
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason


# --- Everything else ---

class InternalError(SaleError):
    code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An internal error occurred. Please try again later."):
        super().__init__(message)


class BusinessError:
    """Plain HTTP errors with safe (non-leaky) messages."""

    @staticmethod
    def unauthorized(reason: str = "") -> HTTPException:
        """
        Generic 401 for all authentication failures.

        SECURITY: Same response for a bad signature, an expired token or
        an unknown user. Prevents user enumeration attacks.
        """
        logger.warning(f"Unauthorized access attempt: {reason}")
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @staticmethod
    def forbidden(reason: str = "") -> HTTPException:
        """Generic 403 for role issues."""
        logger.warning(f"Forbidden access: {reason}")
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )


def _field_from_loc(loc) -> Optional[str]:
    # ("body", "items", 0, "quantity") -> "items[0].quantity"
    parts = [p for p in loc if p not in ("body", "query", "path")]
    field = ""
    for part in parts:
        if isinstance(part, int):
            field += f"[{part}]"
        else:
            field += f".{part}" if field else str(part)
    return field or None


def pydantic_errors_to_fields(errors) -> List[Dict[str, Any]]:
    """Flatten pydantic error dicts into the `{field, message}` list callers get."""
    return [
        {"field": _field_from_loc(err.get("loc", ())), "message": err.get("msg", "Invalid value")}
        for err in errors
    ]


def register_exception_handlers(app: FastAPI) -> None:
    """Wire the taxonomy into FastAPI so routes can simply raise."""

    @app.exception_handler(SaleError)
    async def sale_error_handler(request: Request, exc: SaleError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error = SaleValidationError(pydantic_errors_to_fields(exc.errors()))
        logger.info(f"Bad request on {request.method} {request.url.path}: {error.errors}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        # SECURITY: Never expose stack traces, SQL errors, or internal paths to users.
        logger.error(
            f"Internal server error on {request.method} {request.url.path}: "
            f"{type(exc).__name__}: {exc}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=InternalError().to_dict(),
        )
