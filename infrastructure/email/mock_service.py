"""
Mock Email Service
==================

Records messages in memory instead of sending them.
"""

import logging
from typing import List

from utils.logging_utils import mask_value

from .interface import EmailMessage, EmailServiceInterface

logger = logging.getLogger(__name__)


class MockEmailService(EmailServiceInterface):
    """Mock email service for tests and local development. Always succeeds."""

    def __init__(self):
        self.sent_messages: List[EmailMessage] = []

    def send(self, message: EmailMessage) -> bool:
        recipients = [mask_value(address) for address in message.to]
        logger.info(f"[MOCK EMAIL] To: {recipients}, Subject: {message.subject}, Tags: {message.tags}")

        self.sent_messages.append(message)
        return True

    def clear_sent_messages(self):
        self.sent_messages.clear()
