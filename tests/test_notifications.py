from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conftest import FakeChannel

from retailbill.notifications import channels as channels_module
from retailbill.notifications.channels import (
    ContactInfo, EmailChannel, InvoiceData, InvoiceLine, TelegramChannel, WhatsAppChannel,
)
from retailbill.notifications.dispatcher import InvoiceNotificationDispatcher, NotificationReport
from retailbill.notifications.messages import format_invoice_caption, render_invoice_email_html
from retailbill.services.pdf_service import generate_invoice_pdf

PDF = b"%PDF-1.4 fake"


@pytest.fixture
def invoice():
    return InvoiceData(
        invoice_number="INV-2025-000001",
        customer_name="Asha <Verma>",
        payment_mode="upi",
        total_amount=Decimal("290.00"),
        savings=Decimal("70.00"),
        sale_date=datetime(2025, 3, 15, 10, 30, tzinfo=timezone.utc),
        lines=(InvoiceLine("Basmati Rice 5kg", 3, Decimal("300.00")),),
    )


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.calls = []
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, username, password):
        self.calls.append(("login", username))

    def send_message(self, msg):
        self.messages.append(msg)


# --- Dispatcher ---

def test_dispatcher_reports_each_channel(invoice):
    email = FakeChannel("email")
    telegram = FakeChannel("telegram", error=ConnectionError("telegram timeout"))
    dispatcher = InvoiceNotificationDispatcher([email, telegram, WhatsAppChannel(enabled=False)])

    report = dispatcher.send_invoice_notifications(
        invoice, PDF, ContactInfo(email="asha@example.com"), ["email", "telegram", "whatsapp"]
    )

    assert report.channels["email"].status == "sent"
    assert report.channels["email"].message_id == "email-1"
    assert report.channels["telegram"].status == "failed"
    assert report.channels["telegram"].error == "telegram timeout"
    assert report.channels["whatsapp"].status == "disabled"
    assert report.summary == {"total_sent": 1, "total_failed": 2, "channels": ["email"]}
    assert report.partial_failure is True


def test_dispatcher_only_uses_requested_channels(invoice):
    email = FakeChannel("email")
    telegram = FakeChannel("telegram")
    dispatcher = InvoiceNotificationDispatcher([email, telegram])

    report = dispatcher.send_invoice_notifications(invoice, PDF, ContactInfo(), ["telegram"])

    assert list(report.channels) == ["telegram"]
    assert email.sent == []
    assert report.partial_failure is False


def test_unregistered_channel_is_disabled(invoice):
    dispatcher = InvoiceNotificationDispatcher([FakeChannel("email")])

    report = dispatcher.send_invoice_notifications(invoice, PDF, ContactInfo(), ["sms"])

    assert report.channels["sms"].status == "disabled"


def test_switched_off_channel_is_not_called(invoice):
    email = FakeChannel("email", enabled=False)
    dispatcher = InvoiceNotificationDispatcher([email])

    report = dispatcher.send_invoice_notifications(invoice, PDF, ContactInfo(email="a@b.co"), ["email"])

    assert report.channels["email"].status == "disabled"
    assert email.sent == []


def test_failed_report_marks_every_channel():
    report = NotificationReport.failed(["email", "telegram"], "Could not generate invoice document")

    assert report.total_sent == 0
    assert report.to_dict()["error"] == "Could not generate invoice document"
    assert {r.status for r in report.channels.values()} == {"failed"}


# --- Email ---

def test_email_needs_credentials():
    assert not EmailChannel(username="", password="").is_enabled()
    assert EmailChannel(username="shop@example.com", password="secret").is_enabled()


def test_email_without_address_is_skipped(invoice, monkeypatch):
    monkeypatch.setattr(channels_module.smtplib, "SMTP", FakeSMTP)
    FakeSMTP.instances = []

    result = EmailChannel(username="shop@example.com", password="secret").send(invoice, PDF, ContactInfo())

    assert result.status == "skipped"
    assert FakeSMTP.instances == []


def test_email_message_carries_the_pdf(invoice):
    msg = EmailChannel(username="shop@example.com", password="secret").build_message(
        invoice, PDF, "asha@example.com"
    )

    assert msg["To"] == "asha@example.com"
    assert "INV-2025-000001" in msg["Subject"]
    attachments = list(msg.iter_attachments())
    assert len(attachments) == 1
    assert attachments[0].get_filename() == "invoice-INV-2025-000001.pdf"
    assert attachments[0].get_content() == PDF


def test_email_is_sent_over_smtp(invoice, monkeypatch):
    monkeypatch.setattr(channels_module.smtplib, "SMTP", FakeSMTP)
    FakeSMTP.instances = []
    channel = EmailChannel(host="smtp.example.com", port=2525, username="shop@example.com", password="secret",
                           use_tls=True)

    result = channel.send(invoice, PDF, ContactInfo(email="asha@example.com"))

    assert result.sent
    smtp = FakeSMTP.instances[0]
    assert (smtp.host, smtp.port) == ("smtp.example.com", 2525)
    assert smtp.calls == ["starttls", ("login", "shop@example.com")]
    assert smtp.messages[0]["To"] == "asha@example.com"
    assert result.message_id == smtp.messages[0]["Message-ID"]


# --- Telegram ---

def test_telegram_without_chat_id_is_skipped(invoice):
    result = TelegramChannel(token="123:abc").send(invoice, PDF, ContactInfo())

    assert result.status == "skipped"


def test_telegram_sends_document(invoice, monkeypatch):
    sent = {}

    async def fake_send_document(self, chat_id, invoice, pdf_bytes):
        sent.update(chat_id=chat_id, size=len(pdf_bytes))
        return SimpleNamespace(message_id=991)

    monkeypatch.setattr(TelegramChannel, "_send_document", fake_send_document)

    result = TelegramChannel(token="123:abc").send(invoice, PDF, ContactInfo(telegram_chat_id="556677"))

    assert result.sent
    assert result.message_id == "991"
    assert sent == {"chat_id": "556677", "size": len(PDF)}


def test_whatsapp_is_off_by_default():
    assert WhatsAppChannel(enabled=False).is_enabled() is False


# --- Message bodies ---

def test_email_html_escapes_customer_name(invoice):
    html = render_invoice_email_html(invoice)

    assert "Asha &lt;Verma&gt;" in html
    assert "₹290.00" in html


def test_telegram_caption_mentions_total_and_savings(invoice):
    caption = format_invoice_caption(invoice)

    assert "INV-2025-000001" in caption
    assert "₹290.00" in caption
    assert "₹70.00" in caption


# --- PDF ---

def test_invoice_pdf_renders(service, seed):
    sale = service.record_sale(
        {"items": [{"itemId": seed.items["A"], "quantity": 3}], "discount": 10, "gst": 5,
         "notes": "Deliver <after> 5pm & ring twice"},
        seed.staff,
    ).sale

    pdf_bytes = generate_invoice_pdf(sale)

    assert pdf_bytes.startswith(b"%PDF")
    assert len(pdf_bytes) > 1000
