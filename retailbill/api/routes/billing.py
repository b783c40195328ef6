"""Billing: record sales, read invoices, invoice PDF, re-send notifications, customer history."""
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from retailbill.api.deps import get_db, get_sale_service, require_billing_role
from retailbill.models.sale import PaymentMode
from retailbill.models.store import Store
from retailbill.schemas.common import ErrorResponse, Pagination
from retailbill.schemas.sale import (
    CustomerHistoryData,
    CustomerHistoryResponse,
    CustomerProfileResponse,
    InvoiceListData,
    InvoiceListResponse,
    InvoiceResponse,
    NotificationReportResponse,
    PurchaseSummaryResponse,
    RecordSaleData,
    RecordSaleRequest,
    RecordSaleResponse,
    SaleCustomerResponse,
    SaleResponse,
    SendNotificationsRequest,
    SendNotificationsResponse,
)
from retailbill.schemas.store import StoreListData, StoreListResponse, StoreResponse
from retailbill.services.pdf_service import generate_invoice_pdf
from retailbill.services.sale_queries import (
    InvoiceFilters, customer_history, get_sale_by_invoice_number, list_sales,
)
from retailbill.services.sale_service import Caller, SaleService
from retailbill.services.store_service import list_stores_for_user

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _report_response(report) -> Optional[NotificationReportResponse]:
    if report is None:
        return None
    return NotificationReportResponse.model_validate(report.to_dict())


@router.post(
    "/record-sale",
    response_model=RecordSaleResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
def record_sale(
    data: RecordSaleRequest,
    caller: Caller = Depends(require_billing_role),
    service: SaleService = Depends(get_sale_service),
):
    """Record a sale: stock, pricing, invoice number and sale commit together; notifications after."""
    result = service.record_sale(data, caller)
    sale = result.sale
    customer = result.customer
    return RecordSaleResponse(
        data=RecordSaleData(
            sale=SaleResponse.model_validate(sale),
            invoice_number=sale.invoice_number,
            total_amount=sale.total_amount,
            items_count=len(sale.items),
            savings=sale.savings,
            customer=SaleCustomerResponse(
                id=customer.customer_id,
                name=customer.name,
                email=customer.email,
                phone=customer.phone,
                is_registered=customer.is_registered,
            ),
            notifications=_report_response(result.notifications),
        )
    )


@router.get("/invoices", response_model=InvoiceListResponse, responses=ERROR_RESPONSES)
def get_invoices(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    payment_mode: Optional[PaymentMode] = Query(None, alias="paymentMode"),
    customer_id: Optional[int] = Query(None, alias="customerId", gt=0),
    store_id: Optional[int] = Query(None, alias="storeId", gt=0),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_billing_role),
):
    """Paginated invoices. Callers assigned to a store only see that store."""
    filters = InvoiceFilters(
        search=search,
        payment_mode=payment_mode.value if payment_mode else None,
        customer_id=customer_id,
        store_id=caller.store_id if caller.store_id is not None else store_id,
        start_date=start_date,
        end_date=end_date,
        sort_order=sort_order,
    )
    sales, total = list_sales(db, filters, page=page, limit=limit)
    return InvoiceListResponse(
        data=InvoiceListData(
            invoices=[SaleResponse.model_validate(s) for s in sales],
            pagination=Pagination.build(page, limit, total),
        )
    )


@router.get("/invoices/{invoice_number}", response_model=InvoiceResponse, responses=ERROR_RESPONSES)
def get_invoice(
    invoice_number: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_billing_role),
):
    sale = get_sale_by_invoice_number(db, invoice_number)
    return InvoiceResponse(data=SaleResponse.model_validate(sale))


@router.get(
    "/invoices/{invoice_number}/pdf",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}, **ERROR_RESPONSES},
)
def get_invoice_pdf(
    invoice_number: str,
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_billing_role),
):
    """Invoice document as a PDF attachment."""
    sale = get_sale_by_invoice_number(db, invoice_number)
    store = db.get(Store, sale.store_id)
    pdf_bytes = generate_invoice_pdf(sale, store)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="invoice-{sale.invoice_number}.pdf"'},
    )


@router.post(
    "/invoices/{invoice_number}/send",
    response_model=SendNotificationsResponse,
    responses=ERROR_RESPONSES,
)
def send_invoice_notifications(
    invoice_number: str,
    data: SendNotificationsRequest,
    caller: Caller = Depends(require_billing_role),
    service: SaleService = Depends(get_sale_service),
):
    """Re-send a committed invoice over the selected channels."""
    report = service.send_invoice_notifications(invoice_number, data, caller.id)
    if report.total_sent and not report.partial_failure:
        message = "Invoice sent successfully"
    elif report.total_sent:
        message = "Invoice sent on some channels"
    else:
        message = "Invoice could not be sent"
    return SendNotificationsResponse(
        success=report.total_sent > 0,
        message=message,
        data=_report_response(report),
    )


@router.get(
    "/customer/{customer_id}/history",
    response_model=CustomerHistoryResponse,
    responses=ERROR_RESPONSES,
)
def get_customer_history(
    customer_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_billing_role),
):
    customer, summary, purchases, total = customer_history(db, customer_id, page=page, limit=limit)
    return CustomerHistoryResponse(
        data=CustomerHistoryData(
            customer=CustomerProfileResponse(
                id=customer.id,
                name=customer.name,
                email=customer.email,
                phone=customer.phone,
                member_since=customer.created_at,
            ),
            summary=PurchaseSummaryResponse(**summary),
            purchases=[SaleResponse.model_validate(s) for s in purchases],
            pagination=Pagination.build(page, limit, total),
        )
    )


@router.get("/stores", response_model=StoreListResponse, responses=ERROR_RESPONSES)
def get_available_stores(
    db: Session = Depends(get_db),
    caller: Caller = Depends(require_billing_role),
):
    stores = list_stores_for_user(db, caller)
    return StoreListResponse(
        data=StoreListData(
            stores=[StoreResponse.model_validate(s) for s in stores],
            user_store_id=caller.store_id,
            message=(
                "Your assigned store"
                if caller.store_id is not None
                else "All available stores (you can use any storeId in requests)"
            ),
        )
    )
