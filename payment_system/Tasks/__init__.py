"""
Payment System Tasks Package

Celery task definitions for settlement follow-up work.
"""

# Import tasks to ensure they are registered with Celery
from .payment_tasks import retry_failed_transfers_task, send_purchase_receipt_task

__all__ = [
    "retry_failed_transfers_task",
    "send_purchase_receipt_task",
]
