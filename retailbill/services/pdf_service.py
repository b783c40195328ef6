"""
PDF Invoice Generation Service
Creates invoices for committed sales with store, customer and line details
"""
from io import BytesIO
from datetime import datetime
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import inch
from reportlab.lib import colors
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_CENTER

from retailbill.core.config import settings


def _money(amount) -> str:
    # Base-14 fonts have no rupee glyph
    return f"Rs. {float(amount or Decimal('0')):,.2f}"


def _percent(rate) -> str:
    return f"{float(rate or 0):g}%"


def generate_invoice_pdf(sale, store=None) -> bytes:
    """
    Generate the PDF for a committed sale

    Args:
        sale: Sale with its items loaded
        store: Store the sale belongs to (header falls back to COMPANY_NAME)

    Returns:
        PDF document bytes
    """
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        topMargin=0.5*inch,
        bottomMargin=0.5*inch,
        title=f"Invoice {sale.invoice_number}",
    )

    elements = []
    styles = getSampleStyleSheet()

    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=24,
        textColor=colors.HexColor('#1a56db'),
        alignment=TA_CENTER,
        spaceAfter=12
    )
    heading_style = ParagraphStyle(
        'CustomHeading',
        parent=styles['Heading2'],
        fontSize=14,
        textColor=colors.HexColor('#1f2937'),
        spaceAfter=6
    )
    normal_style = ParagraphStyle(
        'CustomNormal',
        parent=styles['Normal'],
        fontSize=10,
        textColor=colors.HexColor('#374151')
    )

    elements.append(Paragraph("TAX INVOICE", title_style))
    elements.append(Spacer(1, 0.2*inch))

    # Store and invoice info
    store_name = escape(store.name if store else settings.COMPANY_NAME)
    store_lines = [f"<b>{store_name}</b>"]
    if store is not None:
        if store.full_address:
            store_lines.append(escape(store.full_address))
        if store.phone:
            store_lines.append(f"Phone: {escape(store.phone)}")
        if store.email:
            store_lines.append(escape(store.email))
    else:
        store_lines.append(f"Phone: {escape(settings.COMPANY_PHONE)}")

    info_data = [[
        Paragraph("<br/>".join(store_lines), normal_style),
        Paragraph(
            f"<b>Invoice #:</b> {escape(sale.invoice_number)}<br/>"
            f"<b>Date:</b> {sale.sale_date.strftime('%d %b %Y, %I:%M %p')}<br/>"
            f"<b>Payment:</b> {escape(sale.payment_mode.upper())}<br/>"
            f"<b>Status:</b> {escape(sale.status.upper())}",
            normal_style
        ),
    ]]
    info_table = Table(info_data, colWidths=[3.5*inch, 3*inch])
    info_table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(info_table)
    elements.append(Spacer(1, 0.2*inch))

    # Bill to
    elements.append(Paragraph("<b>Bill To:</b>", heading_style))
    customer_info = f"<b>{escape(sale.customer_name)}</b>"
    if sale.customer_phone:
        customer_info += f"<br/>Phone: {escape(sale.customer_phone)}"
    if sale.customer_email:
        customer_info += f"<br/>Email: {escape(sale.customer_email)}"
    elements.append(Paragraph(customer_info, normal_style))
    elements.append(Spacer(1, 0.2*inch))

    # Line items
    items_data = [[
        Paragraph("<b>Item</b>", normal_style),
        Paragraph("<b>Brand</b>", normal_style),
        Paragraph("<b>Qty</b>", normal_style),
        Paragraph("<b>Rate</b>", normal_style),
        Paragraph("<b>MRP</b>", normal_style),
        Paragraph("<b>Amount</b>", normal_style),
    ]]
    for line in sale.items:
        items_data.append([
            Paragraph(escape(line.item_name), normal_style),
            Paragraph(escape(line.brand or "-"), normal_style),
            str(line.quantity),
            _money(line.unit_price),
            _money(line.mrp),
            _money(line.total_price),
        ])

    items_table = Table(items_data, colWidths=[2.2*inch, 1.1*inch, 0.5*inch, 0.9*inch, 0.9*inch, 1.0*inch])
    items_table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#f3f4f6')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.HexColor('#1f2937')),
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('FONTSIZE', (0, 1), (-1, -1), 9),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#fafafa')]),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
    ]))
    elements.append(items_table)
    elements.append(Spacer(1, 0.2*inch))

    # Totals with discount and tax breakdown
    total_rows = [("Subtotal:", _money(sale.subtotal))]
    if sale.discount:
        total_rows.append(("Discount:", f"- {_money(sale.discount)}"))
    if sale.extra_discount:
        total_rows.append(("Extra Discount:", f"- {_money(sale.extra_discount)}"))
    if sale.gst_amount:
        total_rows.append((f"GST ({_percent(sale.gst_rate)}):", _money(sale.gst_amount)))
    if sale.cgst_amount:
        total_rows.append((f"CGST ({_percent(sale.cgst_rate)}):", _money(sale.cgst_amount)))

    total_data = [['', '', Paragraph(f"<b>{label}</b>", normal_style), value] for label, value in total_rows]
    total_data.append([
        '', '',
        Paragraph("<b>TOTAL:</b>", heading_style),
        Paragraph(f"<b>{_money(sale.total_amount)}</b>", heading_style),
    ])
    last = len(total_data) - 1

    total_table = Table(total_data, colWidths=[2.2*inch, 1.1*inch, 1.8*inch, 1.5*inch])
    total_table.setStyle(TableStyle([
        ('ALIGN', (2, 0), (-1, -1), 'RIGHT'),
        ('LINEABOVE', (2, last), (-1, last), 1, colors.black),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]))
    elements.append(total_table)

    if sale.savings and Decimal(str(sale.savings)) > 0:
        elements.append(Spacer(1, 0.1*inch))
        elements.append(Paragraph(
            f"<b>You saved {_money(sale.savings)} on MRP ({_money(sale.mrp_total)})</b>",
            normal_style
        ))

    if sale.notes:
        elements.append(Spacer(1, 0.2*inch))
        elements.append(Paragraph(f"<b>Notes:</b> {escape(sale.notes)}", normal_style))

    elements.append(Spacer(1, 0.4*inch))
    elements.append(Paragraph("<b>Terms:</b>", heading_style))
    elements.append(Paragraph(
        "Goods once sold can be returned or exchanged only with this invoice. "
        f"For any queries, contact {escape(settings.COMPANY_EMAIL)}.",
        normal_style
    ))

    footer_style = ParagraphStyle(
        'Footer',
        parent=styles['Normal'],
        fontSize=8,
        textColor=colors.grey,
        alignment=TA_CENTER
    )
    elements.append(Spacer(1, 0.5*inch))
    elements.append(Paragraph("Thank you for shopping with us!", footer_style))
    elements.append(Paragraph(f"Invoice generated on {datetime.now().strftime('%d %b %Y at %I:%M %p')}", footer_style))

    doc.build(elements)
    return buffer.getvalue()
