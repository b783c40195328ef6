from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import EmailStr, Field, field_validator

from retailbill.core.config import settings
from retailbill.models.sale import PaymentMode
from retailbill.schemas.common import CamelModel, Pagination
from retailbill.services.customer_service import sanitize_text


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# --- Requests ---

class SaleItemRequest(CamelModel):
    item_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, le=settings.MAX_ITEM_QUANTITY)


class RecordSaleRequest(CamelModel):
    items: List[SaleItemRequest] = Field(..., min_length=1)
    payment_mode: PaymentMode = PaymentMode.CASH
    payment_reference: Optional[str] = Field(None, max_length=128)
    customer_id: Optional[int] = Field(None, gt=0)
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=64)
    customer_email: Optional[EmailStr] = None
    discount: Decimal = Field(Decimal("0"), ge=0)
    extra_discount: Decimal = Field(Decimal("0"), ge=0)
    store_id: Optional[int] = Field(None, gt=0)
    gst: Optional[Decimal] = Field(None, ge=0, le=settings.MAX_TAX_RATE)
    cgst: Optional[Decimal] = Field(None, ge=0, le=settings.MAX_TAX_RATE)
    gst_rate: Optional[Decimal] = Field(None, ge=0, le=settings.MAX_TAX_RATE)
    cgst_rate: Optional[Decimal] = Field(None, ge=0, le=settings.MAX_TAX_RATE)
    notes: Optional[str] = Field(None, max_length=settings.MAX_NOTES_LENGTH)
    send_email: bool = False
    send_telegram: bool = False
    send_whatsapp: bool = Field(False, alias="sendWhatsApp")
    telegram_chat_id: Optional[str] = Field(None, max_length=64)

    @field_validator(
        'customer_email', 'customer_name', 'customer_phone', 'payment_reference', 'notes', 'telegram_chat_id',
        'customer_id', 'store_id', 'gst', 'cgst', 'gst_rate', 'cgst_rate',
        mode='before',
    )
    @classmethod
    def blank_is_missing(cls, v):
        return _blank_to_none(v)

    @field_validator('customer_name', 'customer_phone', 'payment_reference', 'notes')
    @classmethod
    def clean_text(cls, v: Optional[str]) -> Optional[str]:
        return sanitize_text(v, max_length=settings.MAX_NOTES_LENGTH)

    @field_validator('items')
    @classmethod
    def unique_items(cls, v: List[SaleItemRequest]) -> List[SaleItemRequest]:
        ids = [item.item_id for item in v]
        if len(set(ids)) != len(ids):
            raise ValueError('Each item may appear only once per sale')
        return v

    @property
    def effective_gst(self) -> Decimal:
        return self.gst if self.gst is not None else (self.gst_rate or Decimal("0"))

    @property
    def effective_cgst(self) -> Decimal:
        return self.cgst if self.cgst is not None else (self.cgst_rate or Decimal("0"))

    @property
    def requested_channels(self) -> List[str]:
        channels = []
        if self.send_email:
            channels.append("email")
        if self.send_telegram:
            channels.append("telegram")
        if self.send_whatsapp:
            channels.append("whatsapp")
        return channels


class SendNotificationsRequest(CamelModel):
    send_email: bool = False
    send_telegram: bool = False
    send_whatsapp: bool = Field(False, alias="sendWhatsApp")
    custom_email: Optional[EmailStr] = None
    custom_phone: Optional[str] = Field(None, max_length=64)
    telegram_chat_id: Optional[str] = Field(None, max_length=64)

    @field_validator('custom_email', 'custom_phone', 'telegram_chat_id', mode='before')
    @classmethod
    def blank_is_missing(cls, v):
        return _blank_to_none(v)

    @property
    def requested_channels(self) -> List[str]:
        channels = []
        if self.send_email:
            channels.append("email")
        if self.send_telegram:
            channels.append("telegram")
        if self.send_whatsapp:
            channels.append("whatsapp")
        return channels


# --- Responses ---

class SaleItemResponse(CamelModel):
    item_id: int
    item_name: str
    brand: Optional[str] = None
    sku: Optional[str] = None
    quantity: int
    unit_price: float
    mrp: float
    total_price: float


class SaleResponse(CamelModel):
    id: int
    invoice_number: str
    customer_id: Optional[int] = None
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    items: List[SaleItemResponse]
    payment_mode: str
    payment_reference: Optional[str] = None
    subtotal: float
    mrp_total: float
    discount: float
    extra_discount: float
    total_discount: float
    gst_rate: float
    cgst_rate: float
    gst_amount: float
    cgst_amount: float
    total_tax: float
    total_amount: float
    savings: float
    store_id: int
    staff_id: Optional[int] = None
    status: str
    notes: Optional[str] = None
    sale_date: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    last_notified_at: Optional[datetime] = None


class ChannelResultResponse(CamelModel):
    status: str
    message_id: Optional[str] = None
    error: Optional[str] = None


class NotificationSummaryResponse(CamelModel):
    total_sent: int
    total_failed: int
    channels: List[str]


class NotificationReportResponse(CamelModel):
    channels: Dict[str, ChannelResultResponse] = {}
    summary: NotificationSummaryResponse
    partial_failure: bool = False
    error: Optional[str] = None


class SaleCustomerResponse(CamelModel):
    id: Optional[int] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    is_registered: bool


class RecordSaleData(CamelModel):
    sale: SaleResponse
    invoice_number: str
    total_amount: float
    items_count: int
    savings: float
    customer: SaleCustomerResponse
    notifications: Optional[NotificationReportResponse] = None


class RecordSaleResponse(CamelModel):
    success: bool = True
    message: str = "Sale recorded successfully"
    data: RecordSaleData


class InvoiceResponse(CamelModel):
    success: bool = True
    data: SaleResponse


class InvoiceListData(CamelModel):
    invoices: List[SaleResponse]
    pagination: Pagination


class InvoiceListResponse(CamelModel):
    success: bool = True
    data: InvoiceListData


class SendNotificationsResponse(CamelModel):
    success: bool
    message: str
    data: NotificationReportResponse


class CustomerProfileResponse(CamelModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    member_since: Optional[datetime] = None


class PurchaseSummaryResponse(CamelModel):
    total_purchases: int = 0
    total_spent: float = 0
    total_items: int = 0
    total_savings: float = 0
    avg_order_value: float = 0
    first_purchase: Optional[datetime] = None
    last_purchase: Optional[datetime] = None


class CustomerHistoryData(CamelModel):
    customer: CustomerProfileResponse
    summary: PurchaseSummaryResponse
    purchases: List[SaleResponse]
    pagination: Pagination


class CustomerHistoryResponse(CamelModel):
    success: bool = True
    data: CustomerHistoryData
