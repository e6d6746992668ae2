"""
WebhookService - Settlement Completion Handler

Reacts to verified payment-completion events from the payment provider:

    pending -> paid_pending_transfer -> settled
                                     -> paid_partial_transfer_failure

The pending -> paid transition is a conditional UPDATE, so a replayed or
concurrently delivered event can never copy images or pay sellers twice.
Ownership copies are committed together with that claim, before any
transfer is issued.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from gallery.models import Image
from infrastructure.payments import PaymentException, PaymentProviderInterface, WebhookEvent
from payment_system.config import PaymentConfig
from payment_system.domain.services.transfer_executor import TransferExecutor
from payment_system.infra.observability.metrics import payment_volume_total, webhook_events_total
from payment_system.models import Settlement, SettlementPayout
from payment_system.security import PaymentAuditLogger
from utils.service_base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok


COMPLETION_EVENTS = ("checkout.session.completed", "checkout.session.async_payment_succeeded")
PAID_STATUSES = ("paid", "no_payment_required")


class WebhookOutcome:
    PROCESSED = "processed"
    IGNORED = "ignored"
    AWAITING_PAYMENT = "awaiting_payment"
    UNKNOWN_SETTLEMENT = "unknown_settlement"
    DUPLICATE = "duplicate"


@dataclass
class WebhookResult:
    outcome: str
    event_type: str
    settlement_id: Optional[str] = None
    failed_transfers: List[str] = field(default_factory=list)


class WebhookService(BaseService):
    """
    Service for processing payment provider webhooks.

    Transfer failures are recorded on the payout rows and never reported to
    the webhook caller: once the event is verified and claimed, the payment
    itself has succeeded.
    """

    def __init__(self, payment_provider: PaymentProviderInterface, config: PaymentConfig):
        super().__init__()
        self.payment_provider = payment_provider
        self.config = config
        self.transfers = TransferExecutor(payment_provider, config)

    @BaseService.log_performance
    def process_webhook(self, payload: bytes, signature: str, client_ip: str = "unknown") -> ServiceResult[WebhookResult]:
        """
        Verify a webhook request and apply it.

        Args:
            payload: Raw request body
            signature: Signature header sent by the provider
            client_ip: Caller address for the audit log

        Returns:
            ServiceResult with WebhookResult, or UNAUTHORIZED if verification failed
        """
        try:
            event = self.payment_provider.verify_webhook(payload, signature, self.config.webhook_secret)
        except PaymentException as e:
            PaymentAuditLogger.log_security_event(
                "webhook_signature_failed",
                client_ip,
                details=f"Signature verification or payload parsing failed: {str(e)}",
            )
            webhook_events_total.labels(outcome="rejected").inc()
            return service_err(ErrorCodes.UNAUTHORIZED, f"Webhook verification failed: {str(e)}")

        self.logger.info(f"Webhook signature verified for event {event.event_id} ({event.event_type}) from {client_ip}")
        result = self.process_event(event)
        webhook_events_total.labels(outcome=result.value.outcome if result.ok else "error").inc()
        return result

    @BaseService.log_performance
    def process_event(self, event: WebhookEvent) -> ServiceResult[WebhookResult]:
        """Apply an already verified event."""
        if event.event_type not in COMPLETION_EVENTS:
            self.logger.info(f"Ignoring event type {event.event_type}")
            return service_ok(WebhookResult(WebhookOutcome.IGNORED, event.event_type))

        payment_status = event.data.get("payment_status")
        if payment_status is not None and payment_status not in PAID_STATUSES:
            # Delayed payment methods complete the session before the money arrives
            self.logger.info(f"Session {event.data.get('id')} completed with payment_status={payment_status}")
            return service_ok(WebhookResult(WebhookOutcome.AWAITING_PAYMENT, event.event_type))

        settlement = self._resolve_settlement(event)
        if settlement is None:
            self.logger.warning(
                f"No settlement for transfer group {event.metadata.get('transfer_group')!r} "
                f"or session {event.data.get('id')!r}"
            )
            return service_ok(WebhookResult(WebhookOutcome.UNKNOWN_SETTLEMENT, event.event_type))

        if not self._claim_and_copy(settlement):
            self.logger.info(f"Settlement {settlement.id} already completed, skipping duplicate event {event.event_id}")
            return service_ok(WebhookResult(WebhookOutcome.DUPLICATE, event.event_type, str(settlement.id)))

        settlement.refresh_from_db()
        PaymentAuditLogger.log_payment_completed(
            settlement.id, settlement.buyer_id, settlement.total_price, event.data.get("id")
        )
        payment_volume_total.labels(currency=settlement.currency, status="completed").inc(settlement.total_price)

        failed = self.complete_transfers(settlement, source="webhook")
        self._queue_receipt(settlement)

        return service_ok(
            WebhookResult(
                WebhookOutcome.PROCESSED,
                event.event_type,
                str(settlement.id),
                failed_transfers=[str(seller_id) for seller_id in failed],
            )
        )

    def complete_transfers(self, settlement: Settlement, source: str) -> list:
        """
        Transfer every payout not yet succeeded and persist the settlement's
        final state.

        Returns:
            Seller ids whose transfer failed
        """
        payouts = list(
            settlement.payouts.select_related("seller").exclude(status=SettlementPayout.Status.SUCCEEDED)
        )
        legs = self.transfers.run(settlement, payouts, source=source)
        failed = [leg.payout.seller_id for leg in legs if not leg.succeeded]

        now = timezone.now()
        if failed:
            Settlement.objects.filter(pk=settlement.pk).update(
                status=Settlement.Status.PAID_PARTIAL_TRANSFER_FAILURE, updated_at=now
            )
            self.logger.warning(
                f"Settlement {settlement.id}: {len(failed)} of {len(legs)} transfers failed, left for reconciliation"
            )
        else:
            Settlement.objects.filter(pk=settlement.pk).update(
                status=Settlement.Status.SETTLED, transfer_completed=True, settled_at=now, updated_at=now
            )
            self.logger.info(f"Settlement {settlement.id} settled with {len(legs)} transfers")

        settlement.refresh_from_db()
        return failed

    def _resolve_settlement(self, event: WebhookEvent) -> Optional[Settlement]:
        transfer_group = event.metadata.get("transfer_group")
        if transfer_group:
            settlement = Settlement.objects.filter(transfer_group=transfer_group).first()
            if settlement is not None:
                return settlement

        session_id = event.data.get("id")
        if session_id:
            return Settlement.objects.filter(stripe_checkout_session_id=session_id).first()
        return None

    def _claim_and_copy(self, settlement: Settlement) -> bool:
        """
        Mark the settlement paid and give the buyer a copy of every image,
        in one transaction.

        Returns:
            False if another delivery of the event already claimed it
        """
        with transaction.atomic():
            claimed = Settlement.objects.filter(pk=settlement.pk, payment_completed=False).update(
                payment_completed=True,
                status=Settlement.Status.PAID_PENDING_TRANSFER,
                paid_at=timezone.now(),
                updated_at=timezone.now(),
            )
            if not claimed:
                return False

            copies = [
                Image(
                    user_id=settlement.buyer_id,
                    url=line.image.url,
                    description=line.image.description,
                    tags=list(line.image.tags or []),
                    price=0,
                    is_public=False,
                    original_user_id=line.seller_id,
                    source_image=line.image,
                )
                for line in settlement.lines.select_related("image").order_by("position")
            ]
            Image.objects.bulk_create(copies)

        self.logger.info(f"Settlement {settlement.id} claimed, {len(copies)} images copied to buyer {settlement.buyer_id}")
        return True

    def _queue_receipt(self, settlement: Settlement):
        from payment_system.Tasks.payment_tasks import send_purchase_receipt_task

        settlement_id = str(settlement.id)
        transaction.on_commit(lambda: send_purchase_receipt_task.delay(settlement_id))
