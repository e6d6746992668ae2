"""
Email Service Interface
========================

Abstract base class for outbound email. Only transactional mail is sent
(purchase receipts), so the contract is a single ``send``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class EmailMessage:
    """
    Represents an email message.

    Attributes:
        subject: Email subject line
        body: Email body (plain text)
        to: List of recipient email addresses
        from_email: Sender email address (optional, uses default if None)
        html_body: HTML version of email body (optional)
        tags: Labels for log correlation (e.g. settlement id)
    """

    subject: str
    body: str
    to: List[str]
    from_email: Optional[str] = None
    html_body: Optional[str] = None
    tags: List[str] = field(default_factory=list)


class EmailServiceInterface(ABC):
    """
    Abstract interface for email operations.

    Concrete implementations:
        - SMTPEmailService: Production email using Django's email backend
        - MockEmailService: Testing email service that records instead of sending
    """

    @abstractmethod
    def send(self, message: EmailMessage) -> bool:
        """
        Send a single email message.

        Returns:
            True if email sent successfully, False otherwise

        Raises:
            EmailException: If sending fails
        """
        pass


class EmailException(Exception):
    """Base exception for email operations."""

    pass
