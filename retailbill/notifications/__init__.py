from retailbill.notifications.channels import (
    ChannelResult,
    ContactInfo,
    EmailChannel,
    InvoiceData,
    NotificationChannel,
    TelegramChannel,
    WhatsAppChannel,
)
from retailbill.notifications.dispatcher import InvoiceNotificationDispatcher, NotificationReport

__all__ = [
    "ChannelResult", "ContactInfo", "EmailChannel", "InvoiceData", "NotificationChannel", "TelegramChannel",
    "WhatsAppChannel", "InvoiceNotificationDispatcher", "NotificationReport",
]
