"""
Delivery channels for invoice notifications.

A channel reports its own outcome as a ChannelResult. Raising is allowed;
the dispatcher turns any exception into a `failed` result.
"""
import asyncio
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Optional, Protocol, Tuple

from telegram import Bot

from retailbill.core.config import settings
from retailbill.core.exceptions import NotificationError
from retailbill.notifications.messages import email_subject, format_invoice_caption, render_invoice_email_html

logger = logging.getLogger(__name__)

SENT = "sent"
FAILED = "failed"
DISABLED = "disabled"
SKIPPED = "skipped"


@dataclass(frozen=True)
class InvoiceLine:
    name: str
    quantity: int
    total_price: Decimal


@dataclass(frozen=True)
class InvoiceData:
    """What a channel needs to know about a committed sale."""
    invoice_number: str
    customer_name: str
    payment_mode: str
    total_amount: Decimal
    savings: Decimal
    sale_date: datetime
    lines: Tuple[InvoiceLine, ...] = ()

    @classmethod
    def from_sale(cls, sale) -> "InvoiceData":
        return cls(
            invoice_number=sale.invoice_number,
            customer_name=sale.customer_name,
            payment_mode=sale.payment_mode,
            total_amount=sale.total_amount,
            savings=sale.savings,
            sale_date=sale.sale_date,
            lines=tuple(InvoiceLine(i.item_name, i.quantity, i.total_price) for i in sale.items),
        )

    @property
    def pdf_filename(self) -> str:
        return f"invoice-{self.invoice_number}.pdf"


@dataclass(frozen=True)
class ContactInfo:
    email: Optional[str] = None
    phone: Optional[str] = None
    telegram_chat_id: Optional[str] = None


@dataclass
class ChannelResult:
    status: str
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.status == SENT


class NotificationChannel(Protocol):
    name: str

    def is_enabled(self) -> bool:
        ...

    def send(self, invoice: InvoiceData, pdf_bytes: bytes, contact: ContactInfo) -> ChannelResult:
        ...


class EmailChannel:
    """SMTP delivery with the PDF attached. Disabled until credentials are configured."""

    name = "email"

    def __init__(
        self,
        host: str = None,
        port: int = None,
        username: str = None,
        password: str = None,
        use_tls: bool = None,
        timeout: float = None,
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_EMAIL
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS

    def is_enabled(self) -> bool:
        return bool(self.username and self.password)

    def build_message(self, invoice: InvoiceData, pdf_bytes: bytes, to_address: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = email_subject(invoice)
        msg["From"] = formataddr((settings.COMPANY_NAME, self.username))
        msg["To"] = to_address
        msg["Message-ID"] = make_msgid(domain=self.username.split("@")[-1] if self.username else None)
        msg.set_content(
            f"Invoice {invoice.invoice_number} for {invoice.customer_name}. "
            f"Total: {invoice.total_amount}. The PDF is attached."
        )
        msg.add_alternative(render_invoice_email_html(invoice), subtype="html")
        msg.add_attachment(pdf_bytes, maintype="application", subtype="pdf", filename=invoice.pdf_filename)
        return msg

    def send(self, invoice: InvoiceData, pdf_bytes: bytes, contact: ContactInfo) -> ChannelResult:
        if not contact.email:
            return ChannelResult(status=SKIPPED, error="No email address")

        msg = self.build_message(invoice, pdf_bytes, contact.email)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            smtp.login(self.username, self.password)
            smtp.send_message(msg)

        logger.info(f"Invoice {invoice.invoice_number} emailed to {contact.email}")
        return ChannelResult(status=SENT, message_id=msg["Message-ID"])


class TelegramChannel:
    """Sends the PDF as a document to a Telegram chat."""

    name = "telegram"

    def __init__(self, token: str = None, timeout: float = None):
        self.token = token if token is not None else settings.TELEGRAM_BOT_TOKEN
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS

    def is_enabled(self) -> bool:
        return bool(self.token)

    async def _send_document(self, chat_id: str, invoice: InvoiceData, pdf_bytes: bytes):
        bot = Bot(self.token)
        async with bot:
            return await bot.send_document(
                chat_id=chat_id,
                document=pdf_bytes,
                filename=invoice.pdf_filename,
                caption=format_invoice_caption(invoice),
                parse_mode="Markdown",
                read_timeout=self.timeout,
                write_timeout=self.timeout,
                connect_timeout=self.timeout,
            )

    def send(self, invoice: InvoiceData, pdf_bytes: bytes, contact: ContactInfo) -> ChannelResult:
        if not contact.telegram_chat_id:
            return ChannelResult(status=SKIPPED, error="No Telegram chat id")

        # Called from worker threads, which have no running event loop
        message = asyncio.run(self._send_document(contact.telegram_chat_id, invoice, pdf_bytes))
        logger.info(f"Invoice {invoice.invoice_number} sent to Telegram chat {contact.telegram_chat_id}")
        return ChannelResult(status=SENT, message_id=str(message.message_id))


class WhatsAppChannel:
    """Registered so callers get an explicit answer; no provider is wired in yet."""

    name = "whatsapp"

    def __init__(self, enabled: bool = None):
        self.enabled = settings.WHATSAPP_ENABLED if enabled is None else enabled

    def is_enabled(self) -> bool:
        return self.enabled

    def send(self, invoice: InvoiceData, pdf_bytes: bytes, contact: ContactInfo) -> ChannelResult:
        raise NotificationError("WhatsApp provider is not configured")


def default_channels():
    return [EmailChannel(), TelegramChannel(), WhatsAppChannel()]
