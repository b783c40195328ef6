"""
Invoice notification dispatcher.

Sends an already-committed invoice over the requested channels. Never raises:
every channel outcome, including crashes, comes back in the report.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence

from retailbill.notifications.channels import (
    DISABLED, FAILED, ChannelResult, ContactInfo, InvoiceData, NotificationChannel, default_channels,
)

logger = logging.getLogger(__name__)


@dataclass
class NotificationReport:
    channels: Dict[str, ChannelResult] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def total_sent(self) -> int:
        return sum(1 for r in self.channels.values() if r.sent)

    @property
    def total_failed(self) -> int:
        return sum(1 for r in self.channels.values() if not r.sent)

    @property
    def partial_failure(self) -> bool:
        return self.error is not None or self.total_failed > 0

    @property
    def summary(self) -> dict:
        return {
            "total_sent": self.total_sent,
            "total_failed": self.total_failed,
            "channels": [name for name, r in self.channels.items() if r.sent],
        }

    def to_dict(self) -> dict:
        return {
            "channels": {
                name: {"status": r.status, "message_id": r.message_id, "error": r.error}
                for name, r in self.channels.items()
            },
            "summary": self.summary,
            "partial_failure": self.partial_failure,
            "error": self.error,
        }

    @classmethod
    def failed(cls, requested: Sequence[str], error: str) -> "NotificationReport":
        """Report for a round that broke down before any channel ran."""
        return cls(
            channels={name: ChannelResult(status=FAILED, error=error) for name in requested},
            error=error,
        )


class InvoiceNotificationDispatcher:
    def __init__(self, channels: Iterable[NotificationChannel] = None):
        channels = default_channels() if channels is None else channels
        self.channels: Dict[str, NotificationChannel] = {c.name: c for c in channels}

    def send_invoice_notifications(
        self,
        invoice: InvoiceData,
        pdf_bytes: bytes,
        contact: ContactInfo,
        channels: Sequence[str],
    ) -> NotificationReport:
        report = NotificationReport()
        for name in channels:
            report.channels[name] = self._send_one(name, invoice, pdf_bytes, contact)

        logger.info(
            f"Notification summary for {invoice.invoice_number}: "
            f"sent={report.total_sent} failed={report.total_failed}"
        )
        return report

    def _send_one(self, name: str, invoice: InvoiceData, pdf_bytes: bytes, contact: ContactInfo) -> ChannelResult:
        channel = self.channels.get(name)
        if channel is None:
            logger.warning(f"Notification channel '{name}' is not registered")
            return ChannelResult(status=DISABLED, error="Channel not available")

        try:
            if not channel.is_enabled():
                logger.warning(f"{name} notification requested for {invoice.invoice_number} but channel is disabled")
                return ChannelResult(status=DISABLED, error=f"{name} notifications are disabled")
            return channel.send(invoice, pdf_bytes, contact)
        except Exception as e:
            logger.error(f"{name} notification failed for {invoice.invoice_number}: {e}", exc_info=True)
            return ChannelResult(status=FAILED, error=str(e) or type(e).__name__)
