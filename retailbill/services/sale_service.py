"""
Sale transaction engine.

record_sale runs a sale through these stages:

    validating -> pricing_computed -> customer_resolved -> invoice_numbered
    -> persisted -> notifications_dispatched

Everything up to `persisted` happens in one database transaction: the stock
checks, the stock decrements, the invoice number and the sale insert commit
together or not at all. Conflicting writers (lock timeouts, serialization
failures, unique-index races) make the whole attempt roll back and start
over in a fresh session, up to SALE_COMMIT_ATTEMPTS times.

Notifications run after the commit without any session open. Their failures
are reported on the result and never undo the sale.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from retailbill.core.audit import AuditLog
from retailbill.core.config import settings
from retailbill.core.exceptions import (
    InternalError, PersistenceConflictError, SaleError, SaleValidationError, pydantic_errors_to_fields,
)
from retailbill.models.sale import Sale, SaleItem, SaleStatus
from retailbill.models.store import Store
from retailbill.notifications.channels import ContactInfo, InvoiceData
from retailbill.notifications.dispatcher import InvoiceNotificationDispatcher, NotificationReport
from retailbill.schemas.sale import RecordSaleRequest, SendNotificationsRequest
from retailbill.services.customer_service import CustomerSnapshot, resolve_customer
from retailbill.services.invoice_numbers import next_invoice_number
from retailbill.services.pdf_service import generate_invoice_pdf
from retailbill.services.pricing import PricingResult, calculate_pricing
from retailbill.services.sale_queries import get_sale_by_invoice_number
from retailbill.services.stock_service import validate_and_reserve
from retailbill.services.store_service import resolve_store

logger = logging.getLogger(__name__)

# Driver messages / SQLSTATEs that mean "another writer got in the way"
_CONFLICT_MESSAGES = ("database is locked", "deadlock", "could not serialize", "lock wait timeout")
_CONFLICT_PGCODES = ("40001", "40P01")

# Unique keys two concurrent sales can race on. Other constraint failures
# (foreign keys, NOT NULL, CHECK) fail the same way on every attempt.
_UNIQUE_VIOLATION_MESSAGES = ("unique constraint failed", "duplicate key value")
_UNIQUE_VIOLATION_PGCODE = "23505"
_RACED_KEYS = ("sales.invoice_number", "invoice_counters.year", "(invoice_number)", "(year)")


class SaleStage(str, Enum):
    VALIDATING = "validating"
    PRICING_COMPUTED = "pricing_computed"
    CUSTOMER_RESOLVED = "customer_resolved"
    INVOICE_NUMBERED = "invoice_numbered"
    PERSISTED = "persisted"
    NOTIFICATIONS_DISPATCHED = "notifications_dispatched"


@dataclass(frozen=True)
class Caller:
    """The staff member recording the sale."""
    id: Optional[int]
    role: str
    store_id: Optional[int] = None

    @classmethod
    def from_user(cls, user) -> "Caller":
        return cls(id=user.id, role=user.role, store_id=user.store_id)


@dataclass
class RecordSaleResult:
    sale: Sale
    customer: CustomerSnapshot
    attempts: int
    stage: SaleStage
    notifications: Optional[NotificationReport] = None


def is_conflict(exc: Exception) -> bool:
    """True for database errors a retry can fix."""
    if isinstance(exc, IntegrityError):
        text = str(exc.orig).lower()
        unique = (
            getattr(exc.orig, "pgcode", None) == _UNIQUE_VIOLATION_PGCODE
            or any(marker in text for marker in _UNIQUE_VIOLATION_MESSAGES)
        )
        return unique and any(key in text for key in _RACED_KEYS)
    if isinstance(exc, OperationalError):
        if getattr(exc.orig, "pgcode", None) in _CONFLICT_PGCODES:
            return True
        text = str(exc.orig).lower()
        return any(marker in text for marker in _CONFLICT_MESSAGES)
    return False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def invoice_year(sale_date: datetime) -> int:
    """Calendar year of `sale_date` in the shop's timezone. Naive datetimes are taken as UTC."""
    if sale_date.tzinfo is None:
        sale_date = sale_date.replace(tzinfo=timezone.utc)
    return sale_date.astimezone(ZoneInfo(settings.INVOICE_TIMEZONE)).year


def _build_sale(
    invoice_number: str,
    pricing: PricingResult,
    customer: CustomerSnapshot,
    request: RecordSaleRequest,
    store_id: int,
    caller: Caller,
    sale_date: datetime,
) -> Sale:
    return Sale(
        invoice_number=invoice_number,
        customer_id=customer.customer_id,
        customer_name=customer.name,
        customer_phone=customer.phone,
        customer_email=customer.email,
        payment_mode=request.payment_mode.value,
        payment_reference=request.payment_reference,
        subtotal=pricing.subtotal,
        mrp_total=pricing.mrp_total,
        discount=pricing.discount,
        extra_discount=pricing.extra_discount,
        total_discount=pricing.total_discount,
        gst_rate=pricing.gst_rate,
        cgst_rate=pricing.cgst_rate,
        gst_amount=pricing.gst_amount,
        cgst_amount=pricing.cgst_amount,
        total_tax=pricing.total_tax,
        total_amount=pricing.total_amount,
        savings=pricing.savings,
        store_id=store_id,
        staff_id=caller.id,
        status=SaleStatus.COMPLETED.value,
        notes=request.notes,
        sale_date=sale_date,
        created_at=sale_date,
        updated_at=sale_date,
        items=[
            SaleItem(
                position=position,
                item_id=line.item_id,
                item_name=line.name,
                brand=line.brand,
                sku=line.sku,
                quantity=line.quantity,
                unit_price=line.unit_price,
                mrp=line.mrp,
                total_price=line.total_price,
            )
            for position, line in enumerate(pricing.lines, start=1)
        ],
    )


class SaleService:
    def __init__(
        self,
        session_factory: sessionmaker,
        dispatcher: InvoiceNotificationDispatcher = None,
        clock: Callable[[], datetime] = None,
        max_attempts: int = None,
        backoff_seconds: float = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or InvoiceNotificationDispatcher()
        self.clock = clock or _utcnow
        self.max_attempts = max(1, max_attempts or settings.SALE_COMMIT_ATTEMPTS)
        self.backoff_seconds = settings.SALE_RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.sleep = sleep

    # --- Recording ---

    def record_sale(self, request, caller: Caller) -> RecordSaleResult:
        """
        Record a sale atomically, then send notifications if any were requested.

        Args:
            request: RecordSaleRequest or a plain mapping with the same (camelCase) fields
            caller: staff member recording the sale

        Raises:
            SaleValidationError: malformed request, nothing touched
            DomainError: store/item/customer problems or insufficient stock, rolled back
            PersistenceConflictError: still conflicting after the last attempt
            InternalError: anything unexpected, rolled back
        """
        try:
            request = self._validate(request)
        except SaleValidationError as e:
            AuditLog.log_sale_failed(e.code, caller.id, e.message, {"errors": e.errors})
            raise

        attempt = 0
        while True:
            attempt += 1
            try:
                sale, customer = self._record_once(request, caller, attempt)
                break
            except SaleError as e:
                AuditLog.log_sale_failed(e.code, caller.id, e.message, e.details)
                raise
            except (IntegrityError, OperationalError) as e:
                if not is_conflict(e):
                    logger.error(f"Database error recording sale for user {caller.id}: {e}", exc_info=True)
                    AuditLog.log_sale_failed(InternalError.code, caller.id, type(e).__name__)
                    raise InternalError() from e
                if attempt >= self.max_attempts:
                    logger.error(f"Sale for user {caller.id} still conflicting after {attempt} attempts: {e}")
                    error = PersistenceConflictError(attempt)
                    AuditLog.log_sale_failed(error.code, caller.id, str(e.orig), error.details)
                    raise error from e
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning(
                    f"Sale attempt {attempt}/{self.max_attempts} for user {caller.id} hit a conflict "
                    f"({type(e).__name__}); retrying in {delay:.3f}s"
                )
                self.sleep(delay)
            except Exception as e:
                logger.error(f"Unexpected error recording sale for user {caller.id}: {e}", exc_info=True)
                AuditLog.log_sale_failed(InternalError.code, caller.id, type(e).__name__)
                raise InternalError() from e

        AuditLog.log_sale_created(sale, caller.id, attempts=attempt)
        result = RecordSaleResult(sale=sale, customer=customer, attempts=attempt, stage=SaleStage.PERSISTED)

        channels = request.requested_channels
        if channels:
            contact = ContactInfo(
                email=customer.email,
                phone=customer.phone,
                telegram_chat_id=request.telegram_chat_id,
            )
            result.notifications = self._notify(sale, contact, channels, caller.id)
            result.stage = SaleStage.NOTIFICATIONS_DISPATCHED
        return result

    def _validate(self, request) -> RecordSaleRequest:
        if isinstance(request, RecordSaleRequest):
            return request
        try:
            return RecordSaleRequest.model_validate(request)
        except ValidationError as e:
            raise SaleValidationError(pydantic_errors_to_fields(e.errors())) from e

    def _record_once(self, request: RecordSaleRequest, caller: Caller, attempt: int) -> Tuple[Sale, CustomerSnapshot]:
        stage = SaleStage.VALIDATING
        with self.session_factory() as db:
            try:
                store_id = resolve_store(db, caller, request.store_id)
                reservation = validate_and_reserve(db, request.items)

                pricing = calculate_pricing(
                    reservation.lines,
                    discount=request.discount,
                    extra_discount=request.extra_discount,
                    gst_rate=request.effective_gst,
                    cgst_rate=request.effective_cgst,
                )
                stage = SaleStage.PRICING_COMPUTED

                customer = resolve_customer(
                    db,
                    customer_id=request.customer_id,
                    name=request.customer_name,
                    phone=request.customer_phone,
                    email=request.customer_email,
                )
                stage = SaleStage.CUSTOMER_RESOLVED

                sale_date = self.clock()
                invoice_number = next_invoice_number(db, invoice_year(sale_date))
                stage = SaleStage.INVOICE_NUMBERED

                sale = _build_sale(invoice_number, pricing, customer, request, store_id, caller, sale_date)
                db.add(sale)
                reservation.apply(db)
                db.flush()
                db.commit()
            except Exception:
                db.rollback()
                logger.info(f"Sale attempt {attempt} for user {caller.id} rolled back after stage '{stage.value}'")
                raise

        logger.info(
            f"Sale {sale.invoice_number} recorded: store={sale.store_id} staff={caller.id} "
            f"items={len(sale.items)} total={sale.total_amount} attempt={attempt}"
        )
        return sale, customer

    # --- Notifications ---

    def _notify(self, sale: Sale, contact: ContactInfo, channels: List[str], actor_id: Optional[int]) -> NotificationReport:
        try:
            with self.session_factory() as db:
                pdf_bytes = self._render_pdf(db, sale)
        except Exception as e:
            logger.error(f"Could not build invoice document for {sale.invoice_number}: {e}", exc_info=True)
            report = NotificationReport.failed(channels, "Could not generate invoice document")
            AuditLog.log_notification(sale.invoice_number, actor_id, report.summary)
            return report

        report = self.dispatcher.send_invoice_notifications(
            InvoiceData.from_sale(sale), pdf_bytes, contact, channels
        )
        self._record_notification(sale, report)
        AuditLog.log_notification(sale.invoice_number, actor_id, report.summary)
        return report

    def _render_pdf(self, db: Session, sale: Sale) -> bytes:
        store = db.get(Store, sale.store_id)
        return generate_invoice_pdf(sale, store)

    def _record_notification(self, sale: Sale, report: NotificationReport) -> None:
        notified_at = self.clock()
        try:
            with self.session_factory() as db:
                stored = db.query(Sale).filter(Sale.id == sale.id).first()
                stored.last_notified_at = notified_at
                stored.notification_summary = report.to_dict()
                db.commit()
            sale.last_notified_at = notified_at
        except Exception as e:
            # Bookkeeping only; the notification itself already went out
            logger.warning(f"Could not record notification outcome for {sale.invoice_number}: {e}", exc_info=True)

    def send_invoice_notifications(
        self, invoice_number: str, request: SendNotificationsRequest, actor_id: Optional[int]
    ) -> NotificationReport:
        """
        Re-send a committed invoice.

        Raises:
            InvoiceNotFoundError: unknown invoice number
            SaleValidationError: no channel selected, or email without any address
        """
        channels = request.requested_channels
        if not channels:
            raise SaleValidationError.single("sendEmail", "Select at least one notification channel")

        with self.session_factory() as db:
            sale = get_sale_by_invoice_number(db, invoice_number)
            email = request.custom_email or sale.customer_email
            if "email" in channels and not email:
                raise SaleValidationError.single(
                    "customEmail", "No email address on this invoice; provide customEmail"
                )
            try:
                pdf_bytes = self._render_pdf(db, sale)
            except Exception as e:
                logger.error(f"Could not build invoice document for {invoice_number}: {e}", exc_info=True)
                return NotificationReport.failed(channels, "Could not generate invoice document")
            invoice = InvoiceData.from_sale(sale)

        contact = ContactInfo(
            email=email,
            phone=request.custom_phone or sale.customer_phone,
            telegram_chat_id=request.telegram_chat_id,
        )
        report = self.dispatcher.send_invoice_notifications(invoice, pdf_bytes, contact, channels)
        self._record_notification(sale, report)
        AuditLog.log_notification(invoice_number, actor_id, report.summary)
        return report
