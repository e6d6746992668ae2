"""
Audit logging for checkout and settlement
"""
import logging

from utils.logging_utils import mask_value

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Get real client IP address"""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR', 'unknown')
    return ip


class PaymentAuditLogger:
    """Audit logging for payment operations"""

    @staticmethod
    def log_checkout_created(user_id, settlement_id, transfer_group, amount, item_count):
        """Log a checkout session handed to the buyer"""
        logger.info(
            "Checkout created",
            extra={
                'user_id': str(user_id),
                'settlement_id': str(settlement_id),
                'transfer_group': transfer_group,
                'amount': amount,
                'item_count': item_count,
                'event_type': 'checkout_created'
            }
        )

    @staticmethod
    def log_payment_completed(settlement_id, buyer_id, amount, session_id):
        """Log a settlement claimed by the completion webhook"""
        logger.info(
            "Payment completed",
            extra={
                'settlement_id': str(settlement_id),
                'user_id': str(buyer_id),
                'amount': amount,
                'session_id': mask_value(session_id),
                'event_type': 'payment_completed'
            }
        )

    @staticmethod
    def log_transfer_failure(settlement_id, seller_id, amount, error_message):
        """Log a seller transfer leg that failed"""
        logger.warning(
            "Seller transfer failed",
            extra={
                'settlement_id': str(settlement_id),
                'seller_id': str(seller_id),
                'amount': amount,
                'error': error_message,
                'event_type': 'transfer_failure'
            }
        )

    @staticmethod
    def log_security_event(event_type, ip_address, user_id=None, details=None):
        """Log security-related events"""
        logger.warning(
            f"Security event: {event_type}",
            extra={
                'event_type': f'security_{event_type}',
                'ip_address': ip_address,
                'user_id': user_id,
                'details': details
            }
        )
