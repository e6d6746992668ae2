"""
Concurrent seller transfers.

Worker threads only talk to the payment provider; every database write
happens on the calling thread once all legs have finished or timed out.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Optional, Sequence

from django.db.models import F
from django.utils import timezone

from infrastructure.payments import PaymentException, PaymentProviderInterface, TransferResult
from payment_system.config import PaymentConfig
from payment_system.infra.observability.metrics import payout_volume_total, transfer_legs_total
from payment_system.models import SettlementPayout
from payment_system.security import PaymentAuditLogger


logger = logging.getLogger(__name__)


@dataclass
class TransferLeg:
    payout: SettlementPayout
    destination: Optional[str]
    idempotency_key: str
    result: Optional[TransferResult] = None
    error: str = ""
    # False when the provider may still have executed the transfer
    definitive: bool = True

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class TransferExecutor:
    """Issues one transfer per payout row and records each leg's outcome."""

    def __init__(self, payment_provider: PaymentProviderInterface, config: PaymentConfig):
        self.payment_provider = payment_provider
        self.config = config

    def run(self, settlement, payouts: Sequence[SettlementPayout], source: str) -> List[TransferLeg]:
        """
        Transfer every payout concurrently and persist the per-leg outcome.

        A leg fails when the seller has no payout account, the provider raises,
        or the call does not finish within the configured timeout.

        Args:
            settlement: Settlement the payouts belong to
            payouts: Payout rows to transfer
            source: Metrics label for the caller ("webhook" or "reconciler")

        Returns:
            One TransferLeg per payout, in the given order
        """
        legs = [
            TransferLeg(
                payout=payout,
                destination=self._destination(payout),
                idempotency_key=payout.idempotency_key(settlement.transfer_group),
            )
            for payout in payouts
        ]
        runnable = [leg for leg in legs if leg.destination]
        for leg in legs:
            if not leg.destination:
                leg.error = "Seller has no payout account"

        if runnable:
            self._transfer_concurrently(settlement, runnable)

        for leg in legs:
            self._record(settlement, leg, source)
        return legs

    def _destination(self, payout: SettlementPayout) -> Optional[str]:
        # Accounts connected after checkout are picked up on retry
        return payout.seller.stripe_account_id or payout.destination_account

    def _transfer_concurrently(self, settlement, legs: List[TransferLeg]):
        workers = min(self.config.transfer_max_workers, len(legs))
        # Legs queue behind busy workers, so the budget grows with the number of rounds
        budget = self.config.transfer_timeout_seconds * math.ceil(len(legs) / workers)

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="transfer")
        try:
            futures = {executor.submit(self._transfer, settlement, leg): leg for leg in legs}
            done, not_done = wait(futures, timeout=budget)

            for future in done:
                leg = futures[future]
                try:
                    leg.result = future.result()
                except PaymentException as e:
                    leg.error = str(e) or "Transfer rejected"
                except Exception as e:
                    logger.error(f"Unexpected transfer error for payout {leg.payout.id}: {e}", exc_info=True)
                    leg.error = f"Unexpected error: {e}"
                    leg.definitive = False

            for future in not_done:
                future.cancel()
                futures[future].error = f"Transfer timed out after {budget:.1f}s"
                futures[future].definitive = False
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _transfer(self, settlement, leg: TransferLeg) -> TransferResult:
        return self.payment_provider.create_transfer(
            amount=leg.payout.amount,
            currency=settlement.currency,
            destination_account=leg.destination,
            transfer_group=settlement.transfer_group,
            metadata={"settlement_id": str(settlement.id), "seller_id": str(leg.payout.seller_id)},
            idempotency_key=leg.idempotency_key,
        )

    def _record(self, settlement, leg: TransferLeg, source: str):
        now = timezone.now()
        payout = leg.payout
        in_flight = [SettlementPayout.Status.PENDING, SettlementPayout.Status.PROCESSING]
        if leg.succeeded:
            # A confirmed transfer also replaces a failure recorded meanwhile
            SettlementPayout.objects.filter(
                pk=payout.pk, status__in=in_flight + [SettlementPayout.Status.FAILED]
            ).update(
                status=SettlementPayout.Status.SUCCEEDED,
                transfer_id=leg.result.transfer_id,
                destination_account=leg.destination,
                last_error="",
                attempt_count=F("attempt_count") + 1,
                last_attempt_at=now,
                updated_at=now,
            )
            payout_volume_total.labels(currency=settlement.currency, status="succeeded").inc(payout.amount)
            transfer_legs_total.labels(source=source, status="succeeded").inc()
            logger.info(
                f"Transferred {payout.amount} {settlement.currency} to seller {payout.seller_id} "
                f"({leg.result.transfer_id}) for {settlement.transfer_group}"
            )
        else:
            recorded = SettlementPayout.objects.filter(pk=payout.pk, status__in=in_flight).update(
                status=SettlementPayout.Status.FAILED,
                destination_account=leg.destination,
                last_error=leg.error[:1000],
                attempt_count=F("attempt_count") + (1 if leg.destination and leg.definitive else 0),
                last_attempt_at=now,
                updated_at=now,
            )
            if not recorded:
                logger.warning(
                    f"Discarding failure for payout {payout.id}: another run already recorded its outcome"
                )
                payout.refresh_from_db()
                return
            payout_volume_total.labels(currency=settlement.currency, status="failed").inc(payout.amount)
            transfer_legs_total.labels(source=source, status="failed").inc()
            PaymentAuditLogger.log_transfer_failure(settlement.id, payout.seller_id, payout.amount, leg.error)
        payout.refresh_from_db()
