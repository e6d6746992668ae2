import logging

from django.conf import settings
from django.template.loader import render_to_string

from infrastructure.container import container
from infrastructure.email import EmailException, EmailMessage

logger = logging.getLogger(__name__)


def format_amount(amount, currency):
    """Format an amount in the smallest currency unit, e.g. 1050 usd -> '10.50 USD'."""
    return f"{amount / 100:.2f} {currency.upper()}"


def send_purchase_receipt_email(settlement):
    """
    Send the purchase receipt for a paid settlement to its buyer.

    Returns (sent, info)
    """
    buyer = settlement.buyer
    lines = list(settlement.lines.select_related("image").order_by("position"))
    for line in lines:
        line.price_display = format_amount(line.price, settlement.currency)

    context = {
        "settlement": settlement,
        "buyer": buyer,
        "lines": lines,
        "reference": settlement.transfer_group,
        "total_display": format_amount(settlement.total_price, settlement.currency),
        "frontend_url": settings.FRONTEND_URL.rstrip("/"),
        "support_email": getattr(settings, "SUPPORT_EMAIL", "support@pixora.app"),
        "company_name": "Pixora",
    }

    message = EmailMessage(
        subject=f"Your Pixora receipt #{str(settlement.id)[:8]}",
        body=render_to_string("payment_system/emails/purchase_receipt.txt", context),
        html_body=render_to_string("payment_system/emails/purchase_receipt.html", context),
        to=[buyer.email],
        tags=[f"settlement:{settlement.id}"],
    )

    try:
        sent = container.email().send(message)
    except EmailException as e:
        logger.error(f"Failed to send purchase receipt to {buyer.email} for settlement {settlement.id}: {e}")
        return False, str(e)

    if sent:
        logger.info(f"Purchase receipt sent to {buyer.email} for settlement {settlement.id}")
        return True, "Purchase receipt sent"
    return False, "Email backend declined the message"
