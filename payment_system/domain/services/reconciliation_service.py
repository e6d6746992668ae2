"""
ReconciliationService - Disbursement Reconciler

Retries the failed seller legs of paid settlements. Succeeded legs and
ownership copies are never touched again.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from django.db.models import Q
from django.utils import timezone

from infrastructure.payments import PaymentProviderInterface
from payment_system.config import PaymentConfig
from payment_system.domain.services.transfer_executor import TransferExecutor
from payment_system.infra.observability.metrics import settlements_awaiting_transfers
from payment_system.models import Settlement, SettlementPayout
from utils.service_base import BaseService, ErrorCodes, ServiceResult, service_err, service_ok


@dataclass
class ReconciliationOutcome:
    settlement_id: str
    attempted: List[str] = field(default_factory=list)
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    settled: bool = False

    def to_dict(self):
        return {
            "settlement_id": self.settlement_id,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "settled": self.settled,
        }


class ReconciliationService(BaseService):
    """
    Service for retrying failed seller transfers.

    Each failed leg is claimed with a conditional ``failed -> processing``
    update before its transfer is issued, so two reconcilers running at once
    never transfer the same leg twice.
    """

    def __init__(self, payment_provider: PaymentProviderInterface, config: PaymentConfig):
        super().__init__()
        self.payment_provider = payment_provider
        self.config = config
        self.transfers = TransferExecutor(payment_provider, config)

    def pending_settlements(self, buyer=None, seller=None):
        """Paid settlements that still owe at least one seller."""
        queryset = Settlement.objects.awaiting_transfers().select_related("buyer")
        if buyer is not None:
            queryset = queryset.for_buyer(buyer)
        if seller is not None:
            queryset = queryset.for_seller(seller)
        return queryset.order_by("paid_at")

    @BaseService.log_performance
    def retry_failed_transfers(self, settlement: Settlement) -> ServiceResult[ReconciliationOutcome]:
        """
        Re-issue the transfers of the settlement's failed legs.

        Args:
            settlement: A paid settlement

        Returns:
            ServiceResult with ReconciliationOutcome
        """
        settlement.refresh_from_db()
        if not settlement.payment_completed:
            return service_err(ErrorCodes.INVALID_REQUEST, "Settlement has not been paid")

        outcome = ReconciliationOutcome(settlement_id=str(settlement.id))
        if settlement.transfer_completed:
            outcome.settled = True
            return service_ok(outcome)

        failed_ids = list(
            settlement.payouts.filter(status=SettlementPayout.Status.FAILED).values_list("pk", flat=True)
        )
        claimed = []
        for payout_id in failed_ids:
            # Stamping the attempt keeps recover_stalled off legs still in flight
            now = timezone.now()
            if SettlementPayout.objects.filter(pk=payout_id, status=SettlementPayout.Status.FAILED).update(
                status=SettlementPayout.Status.PROCESSING, last_attempt_at=now, updated_at=now
            ):
                claimed.append(payout_id)

        payouts = list(SettlementPayout.objects.select_related("seller").filter(pk__in=claimed))
        legs = self.transfers.run(settlement, payouts, source="reconciler")

        outcome.attempted = [str(leg.payout.seller_id) for leg in legs]
        outcome.succeeded = [str(leg.payout.seller_id) for leg in legs if leg.succeeded]
        outcome.failed = [str(leg.payout.seller_id) for leg in legs if not leg.succeeded]

        outcome.settled = self._settle_if_complete(settlement)
        self.logger.info(
            f"Reconciled settlement {settlement.id}: {len(outcome.succeeded)} succeeded, "
            f"{len(outcome.failed)} still failing"
        )
        return service_ok(outcome)

    @BaseService.log_performance
    def retry_all(self, limit: Optional[int] = None) -> ServiceResult[List[ReconciliationOutcome]]:
        """Retry every settlement with failed legs, oldest payment first."""
        queryset = self.pending_settlements().filter(payouts__status=SettlementPayout.Status.FAILED).distinct()
        settlements_awaiting_transfers.set(self.pending_settlements().count())
        if limit:
            queryset = queryset[:limit]

        outcomes = []
        for settlement in queryset:
            result = self.retry_failed_transfers(settlement)
            if result.ok:
                outcomes.append(result.value)
            else:
                self.logger.warning(f"Skipping settlement {settlement.id}: {result.error_detail}")
        return service_ok(outcomes)

    @BaseService.log_performance
    def recover_stalled(self, older_than: timedelta) -> ServiceResult[int]:
        """
        Mark legs left pending or processing by an interrupted run as failed.

        Only legs of settlements paid more than ``older_than`` ago are touched.
        Their attempt count is kept, so the retry reuses the idempotency key of
        the interrupted request.
        """
        cutoff = timezone.now() - older_than
        recovered = SettlementPayout.objects.filter(
            Q(last_attempt_at__isnull=True) | Q(last_attempt_at__lt=cutoff),
            settlement__payment_completed=True,
            settlement__transfer_completed=False,
            settlement__paid_at__lt=cutoff,
            status__in=[SettlementPayout.Status.PENDING, SettlementPayout.Status.PROCESSING],
        ).update(
            status=SettlementPayout.Status.FAILED,
            last_error="Transfer interrupted before its outcome was recorded",
            updated_at=timezone.now(),
        )

        Settlement.objects.filter(
            status=Settlement.Status.PAID_PENDING_TRANSFER,
            payouts__status=SettlementPayout.Status.FAILED,
        ).update(status=Settlement.Status.PAID_PARTIAL_TRANSFER_FAILURE, updated_at=timezone.now())

        if recovered:
            self.logger.warning(f"Recovered {recovered} stalled transfer legs older than {older_than}")
        return service_ok(recovered)

    def _settle_if_complete(self, settlement: Settlement) -> bool:
        if settlement.payouts.exclude(status=SettlementPayout.Status.SUCCEEDED).exists():
            return False

        now = timezone.now()
        Settlement.objects.filter(pk=settlement.pk, payment_completed=True).update(
            transfer_completed=True, status=Settlement.Status.SETTLED, settled_at=now, updated_at=now
        )
        settlement.refresh_from_db()
        return True
