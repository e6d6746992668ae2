from datetime import timedelta
from unittest.mock import patch

from django.test import TestCase
from django.utils import timezone

from gallery.tests.factories import SellerFactory
from infrastructure.payments import MockPaymentProvider
from payment_system.config import PaymentConfig
from payment_system.domain.services import ReconciliationService
from payment_system.models import Settlement, SettlementPayout
from payment_system.tests.factories import PaidSettlementFactory, SettlementFactory, SettlementPayoutFactory
from utils.service_base import ErrorCodes


class ReconciliationServiceTestCase(TestCase):
    def setUp(self):
        self.provider = MockPaymentProvider()
        self.service = ReconciliationService(
            payment_provider=self.provider, config=PaymentConfig(transfer_timeout_seconds=5)
        )

        self.settlement = PaidSettlementFactory(total_price=3000, processing_fee_total=120, platform_fee_total=30)
        self.paid_leg = SettlementPayoutFactory(
            settlement=self.settlement,
            amount=950,
            status=SettlementPayout.Status.SUCCEEDED,
            transfer_id="tr_already_done",
            attempt_count=1,
        )
        self.failed_leg = SettlementPayoutFactory(
            settlement=self.settlement,
            amount=1900,
            status=SettlementPayout.Status.FAILED,
            last_error="Mock transfer rejected",
            attempt_count=1,
        )


class RetryFailedTransfersTest(ReconciliationServiceTestCase):
    def test_successful_retry_settles(self):
        result = self.service.retry_failed_transfers(self.settlement)

        self.assertTrue(result.ok)
        outcome = result.value
        self.assertEqual(outcome.attempted, [str(self.failed_leg.seller_id)])
        self.assertEqual(outcome.succeeded, [str(self.failed_leg.seller_id)])
        self.assertEqual(outcome.failed, [])
        self.assertTrue(outcome.settled)

        self.settlement.refresh_from_db()
        self.assertEqual(self.settlement.status, Settlement.Status.SETTLED)
        self.assertTrue(self.settlement.transfer_completed)
        self.assertIsNotNone(self.settlement.settled_at)

        self.failed_leg.refresh_from_db()
        self.assertEqual(self.failed_leg.status, SettlementPayout.Status.SUCCEEDED)
        self.assertEqual(self.failed_leg.last_error, "")
        self.assertEqual(self.failed_leg.attempt_count, 2)

    def test_succeeded_legs_are_never_retransferred(self):
        self.service.retry_failed_transfers(self.settlement)

        destinations = [t["destination"] for t in self.provider.transfers]
        self.assertEqual(destinations, [self.failed_leg.destination_account])
        self.paid_leg.refresh_from_db()
        self.assertEqual(self.paid_leg.transfer_id, "tr_already_done")

    def test_retry_uses_attempt_suffixed_idempotency_key(self):
        self.service.retry_failed_transfers(self.settlement)

        self.assertEqual(
            self.provider.transfers[0]["idempotency_key"],
            f"{self.settlement.transfer_group}:{self.failed_leg.seller_id}:1",
        )
        self.assertEqual(self.provider.transfers[0]["transfer_group"], self.settlement.transfer_group)

    def test_still_failing_leg_stays_failed(self):
        self.provider.failing_accounts.add(self.failed_leg.destination_account)

        result = self.service.retry_failed_transfers(self.settlement)

        self.assertEqual(result.value.failed, [str(self.failed_leg.seller_id)])
        self.assertFalse(result.value.settled)
        self.failed_leg.refresh_from_db()
        self.assertEqual(self.failed_leg.status, SettlementPayout.Status.FAILED)
        self.assertEqual(self.failed_leg.attempt_count, 2)
        self.settlement.refresh_from_db()
        self.assertEqual(self.settlement.status, Settlement.Status.PAID_PARTIAL_TRANSFER_FAILURE)

    def test_account_connected_after_checkout_is_used(self):
        seller = SellerFactory(stripe_account_id=None)
        SettlementPayout.objects.filter(pk=self.failed_leg.pk).update(seller=seller, destination_account=None)
        seller.stripe_account_id = "acct_connected_later"
        seller.save()

        result = self.service.retry_failed_transfers(self.settlement)

        self.assertTrue(result.value.settled)
        self.assertEqual(self.provider.transfers[0]["destination"], "acct_connected_later")
        self.failed_leg.refresh_from_db()
        self.assertEqual(self.failed_leg.destination_account, "acct_connected_later")

    def test_leg_claimed_by_another_run_is_skipped(self):
        SettlementPayout.objects.filter(pk=self.failed_leg.pk).update(status=SettlementPayout.Status.PROCESSING)

        result = self.service.retry_failed_transfers(self.settlement)

        self.assertEqual(result.value.attempted, [])
        self.assertFalse(result.value.settled)
        self.assertEqual(self.provider.transfers, [])

    def test_unpaid_settlement_is_rejected(self):
        pending = SettlementFactory()

        result = self.service.retry_failed_transfers(pending)

        self.assertFalse(result.ok)
        self.assertEqual(result.error, ErrorCodes.INVALID_REQUEST)

    def test_settled_settlement_is_a_no_op(self):
        self.service.retry_failed_transfers(self.settlement)

        result = self.service.retry_failed_transfers(self.settlement)

        self.assertTrue(result.value.settled)
        self.assertEqual(result.value.attempted, [])
        self.assertEqual(len(self.provider.transfers), 1)


class RetryAllTest(ReconciliationServiceTestCase):
    def test_retries_every_settlement_with_failed_legs(self):
        other = PaidSettlementFactory()
        SettlementPayoutFactory(settlement=other, status=SettlementPayout.Status.FAILED)
        untouched = PaidSettlementFactory()
        SettlementPayoutFactory(settlement=untouched, status=SettlementPayout.Status.PROCESSING)

        result = self.service.retry_all()

        self.assertTrue(result.ok)
        self.assertEqual(
            {outcome.settlement_id for outcome in result.value}, {str(self.settlement.id), str(other.id)}
        )
        self.assertTrue(all(outcome.settled for outcome in result.value))

    def test_limit(self):
        other = PaidSettlementFactory(paid_at=timezone.now() - timedelta(days=1))
        SettlementPayoutFactory(settlement=other, status=SettlementPayout.Status.FAILED)

        result = self.service.retry_all(limit=1)

        self.assertEqual([outcome.settlement_id for outcome in result.value], [str(other.id)])

    def test_pending_settlements_filters_by_participant(self):
        self.assertEqual(list(self.service.pending_settlements(seller=self.failed_leg.seller)), [self.settlement])
        self.assertEqual(list(self.service.pending_settlements(buyer=self.failed_leg.seller)), [])


class RecoverStalledTest(TestCase):
    def setUp(self):
        self.service = ReconciliationService(payment_provider=MockPaymentProvider(), config=PaymentConfig())

    def test_interrupted_legs_become_retryable(self):
        settlement = PaidSettlementFactory(
            status=Settlement.Status.PAID_PENDING_TRANSFER, paid_at=timezone.now() - timedelta(hours=2)
        )
        leg = SettlementPayoutFactory(settlement=settlement, status=SettlementPayout.Status.PROCESSING, attempt_count=2)

        result = self.service.recover_stalled(timedelta(minutes=30))

        self.assertEqual(result.value, 1)
        leg.refresh_from_db()
        self.assertEqual(leg.status, SettlementPayout.Status.FAILED)
        self.assertEqual(leg.attempt_count, 2)
        settlement.refresh_from_db()
        self.assertEqual(settlement.status, Settlement.Status.PAID_PARTIAL_TRANSFER_FAILURE)

    def test_recent_legs_are_left_alone(self):
        settlement = PaidSettlementFactory(status=Settlement.Status.PAID_PENDING_TRANSFER)
        leg = SettlementPayoutFactory(settlement=settlement, status=SettlementPayout.Status.PENDING)

        result = self.service.recover_stalled(timedelta(minutes=30))

        self.assertEqual(result.value, 0)
        leg.refresh_from_db()
        self.assertEqual(leg.status, SettlementPayout.Status.PENDING)

    def test_unpaid_settlements_are_left_alone(self):
        settlement = SettlementFactory()
        leg = SettlementPayoutFactory(settlement=settlement, status=SettlementPayout.Status.PENDING)

        self.service.recover_stalled(timedelta(seconds=0))

        leg.refresh_from_db()
        self.assertEqual(leg.status, SettlementPayout.Status.PENDING)


class ConcurrentRecoveryTest(ReconciliationServiceTestCase):
    def setUp(self):
        super().setUp()
        long_ago = timezone.now() - timedelta(hours=2)
        Settlement.objects.filter(pk=self.settlement.pk).update(paid_at=long_ago)
        SettlementPayout.objects.filter(pk=self.failed_leg.pk).update(last_attempt_at=long_ago)

    def _during_transfers(self, callback):
        original = self.service.transfers._transfer_concurrently

        def run(settlement, legs):
            callback()
            original(settlement, legs)

        return patch.object(self.service.transfers, "_transfer_concurrently", side_effect=run)

    def test_claimed_leg_is_not_recovered_while_in_flight(self):
        seen = {}

        def recover():
            seen["recovered"] = self.service.recover_stalled(timedelta(minutes=30)).value
            seen["status"] = SettlementPayout.objects.get(pk=self.failed_leg.pk).status

        with self._during_transfers(recover):
            result = self.service.retry_failed_transfers(self.settlement)

        self.assertEqual(seen, {"recovered": 0, "status": SettlementPayout.Status.PROCESSING})
        self.assertTrue(result.value.settled)
        self.assertEqual(len(self.provider.transfers), 1)

    def test_late_failure_does_not_overwrite_recorded_success(self):
        self.provider.failing_accounts.add(self.failed_leg.destination_account)

        def other_run_succeeds():
            SettlementPayout.objects.filter(pk=self.failed_leg.pk).update(
                status=SettlementPayout.Status.SUCCEEDED, transfer_id="tr_other_run", attempt_count=2
            )

        with self._during_transfers(other_run_succeeds):
            self.service.retry_failed_transfers(self.settlement)

        self.failed_leg.refresh_from_db()
        self.assertEqual(self.failed_leg.status, SettlementPayout.Status.SUCCEEDED)
        self.assertEqual(self.failed_leg.transfer_id, "tr_other_run")
        self.assertEqual(self.failed_leg.attempt_count, 2)
        self.settlement.refresh_from_db()
        self.assertEqual(self.settlement.status, Settlement.Status.SETTLED)

    def test_confirmed_transfer_replaces_failure_recorded_meanwhile(self):
        def marked_failed():
            SettlementPayout.objects.filter(pk=self.failed_leg.pk).update(status=SettlementPayout.Status.FAILED)

        with self._during_transfers(marked_failed):
            result = self.service.retry_failed_transfers(self.settlement)

        self.assertTrue(result.value.settled)
        self.failed_leg.refresh_from_db()
        self.assertEqual(self.failed_leg.status, SettlementPayout.Status.SUCCEEDED)
        self.assertTrue(self.failed_leg.transfer_id)
