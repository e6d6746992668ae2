"""
SMTP Email Service
==================

Concrete implementation of EmailServiceInterface using Django's email backend.
"""

import logging

from django.conf import settings
from django.core.mail import EmailMultiAlternatives

from utils.logging_utils import mask_value

from .interface import EmailException, EmailMessage, EmailServiceInterface


logger = logging.getLogger(__name__)


class SMTPEmailService(EmailServiceInterface):
    """
    Django SMTP email service implementation.

    Configuration (in settings.py):
        EMAIL_BACKEND, EMAIL_HOST, EMAIL_PORT, EMAIL_HOST_USER,
        EMAIL_HOST_PASSWORD, EMAIL_USE_TLS, DEFAULT_FROM_EMAIL
    """

    def __init__(self):
        self.default_from = getattr(settings, "DEFAULT_FROM_EMAIL", "noreply@example.com")

    def send(self, message: EmailMessage) -> bool:
        """
        Send an email, with an HTML alternative when ``html_body`` is set.

        Raises:
            EmailException: If sending fails
        """
        recipients = [mask_value(address) for address in message.to]
        try:
            msg = EmailMultiAlternatives(
                subject=message.subject,
                body=message.body,
                from_email=message.from_email or self.default_from,
                to=message.to,
            )
            if message.html_body:
                msg.attach_alternative(message.html_body, "text/html")

            num_sent = msg.send(fail_silently=False)
        except Exception as e:
            logger.error(f"Failed to send email to {recipients}: {str(e)}")
            raise EmailException(f"Email send failed: {str(e)}") from e

        success = num_sent > 0
        if success:
            logger.info(f"Email sent successfully to {recipients}")
        else:
            logger.warning(f"Email failed to send to {recipients}")
        return success
