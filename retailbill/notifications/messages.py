"""Text bodies for invoice notifications (email HTML, Telegram caption)."""
from html import escape

from retailbill.core.config import settings


def _rupees(amount) -> str:
    return f"₹{float(amount):.2f}"


def email_subject(invoice) -> str:
    return f"Invoice {invoice.invoice_number} - {settings.COMPANY_NAME}"


def render_invoice_email_html(invoice) -> str:
    """HTML body sent with the PDF attached."""
    rows = "".join(
        f'<div class="item-row"><span>{escape(line.name)} ({line.quantity}x)</span>'
        f'<span>{_rupees(line.total_price)}</span></div>'
        for line in invoice.lines
    )
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Invoice {escape(invoice.invoice_number)}</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background: #1a56db; color: white; padding: 20px; text-align: center; }}
        .content {{ background: #f9fafb; padding: 20px; border: 1px solid #e5e7eb; }}
        .item-row {{ display: flex; justify-content: space-between; padding: 8px 0; border-bottom: 1px solid #e5e7eb; }}
        .total {{ font-weight: bold; font-size: 18px; color: #059669; }}
        .footer {{ background: #374151; color: white; padding: 15px; text-align: center; }}
    </style>
</head>
<body>
    <div class="header">
        <h1>{escape(settings.COMPANY_NAME)} Invoice</h1>
        <h2>Invoice #{escape(invoice.invoice_number)}</h2>
    </div>
    <div class="content">
        <p><strong>Customer:</strong> {escape(invoice.customer_name)}</p>
        <p><strong>Date:</strong> {invoice.sale_date.strftime('%d %b %Y')}</p>
        <p><strong>Payment Mode:</strong> {escape(invoice.payment_mode.upper())}</p>
        {rows}
        <div class="item-row total"><span>Total Amount</span><span>{_rupees(invoice.total_amount)}</span></div>
        <p>Please find your invoice PDF attached to this email.</p>
    </div>
    <div class="footer">
        <p>{escape(settings.COMPANY_NAME)}</p>
        <p>Contact us: {escape(settings.COMPANY_PHONE)} | {escape(settings.COMPANY_EMAIL)}</p>
    </div>
</body>
</html>"""


def format_invoice_caption(invoice) -> str:
    """Markdown caption for the Telegram document message."""
    message = f"""
🧾 *INVOICE {invoice.invoice_number}*

📅 Date: {invoice.sale_date.strftime('%d %b %Y, %I:%M %p')}
👤 Customer: {invoice.customer_name}
💳 Payment: {invoice.payment_mode.upper()}

💰 *Total Amount: {_rupees(invoice.total_amount)}*
🎉 You saved {_rupees(invoice.savings)}

Thank you for shopping with {settings.COMPANY_NAME}!
""".strip()
    return message
