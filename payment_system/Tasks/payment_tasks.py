"""
Payment System Celery Tasks

Handles settlement follow-up work outside the request cycle:
- Purchase receipt emails once a settlement is paid
- Periodic retry of failed seller transfers
- Recovery of transfer legs left unfinished by an interrupted worker
"""

import logging
from datetime import timedelta

from celery import shared_task


logger = logging.getLogger(__name__)

STALLED_TRANSFER_MINUTES = 30


@shared_task(bind=True, max_retries=3, queue="payment_tasks")
def send_purchase_receipt_task(self, settlement_id):
    """
    Email the buyer a receipt for a paid settlement.

    Args:
        settlement_id (str): The UUID of the settlement

    Returns:
        dict: Send result
    """
    from payment_system.email_utils import send_purchase_receipt_email
    from payment_system.models import Settlement

    try:
        settlement = Settlement.objects.select_related("buyer").get(id=settlement_id)
    except Settlement.DoesNotExist:
        logger.warning(f"Settlement {settlement_id} not found for receipt email")
        return {"success": False, "error": "Settlement not found", "settlement_id": settlement_id}

    if not settlement.payment_completed:
        logger.info(f"Settlement {settlement_id} is not paid, no receipt sent")
        return {"success": False, "error": "Settlement not paid", "settlement_id": settlement_id}

    sent, info = send_purchase_receipt_email(settlement)
    if sent:
        return {"success": True, "settlement_id": settlement_id}

    logger.error(f"Receipt email for settlement {settlement_id} failed: {info}")
    # Retry with exponential backoff
    try:
        raise self.retry(countdown=60 * (2**self.request.retries))
    except self.MaxRetriesExceededError:
        return {"success": False, "error": f"Max retries exceeded: {info}", "settlement_id": settlement_id}


@shared_task(bind=True, max_retries=3, queue="payment_tasks")
def retry_failed_transfers_task(self, limit=None, stalled_minutes=STALLED_TRANSFER_MINUTES):
    """
    Periodic reconciliation of seller transfers.

    First turns legs stuck in pending/processing for longer than
    ``stalled_minutes`` into failed legs, then retries every failed leg.

    Returns:
        dict: Summary of the run
    """
    from infrastructure.container import container

    service = container.reconciliation_service()

    try:
        recovered = service.recover_stalled(timedelta(minutes=stalled_minutes))
        result = service.retry_all(limit=limit)
    except Exception as e:
        logger.error(f"Error in transfer reconciliation task: {e}", exc_info=True)
        try:
            raise self.retry(countdown=60 * (2**self.request.retries))
        except self.MaxRetriesExceededError:
            return {"success": False, "error": f"Max retries exceeded: {str(e)}"}

    outcomes = result.value or []
    summary = {
        "success": True,
        "recovered_legs": recovered.value,
        "settlements_checked": len(outcomes),
        "settled": [outcome.settlement_id for outcome in outcomes if outcome.settled],
        "still_failing": {outcome.settlement_id: outcome.failed for outcome in outcomes if outcome.failed},
    }
    logger.info(
        f"Transfer reconciliation completed. Checked: {summary['settlements_checked']}, "
        f"Settled: {len(summary['settled'])}, Still failing: {len(summary['still_failing'])}"
    )
    return summary
