from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone

from infrastructure.container import container
from payment_system.models import Settlement, SettlementPayout
from payment_system.Tasks.payment_tasks import retry_failed_transfers_task, send_purchase_receipt_task
from payment_system.tests.factories import (
    PaidSettlementFactory,
    SettlementFactory,
    SettlementLineFactory,
    SettlementPayoutFactory,
)


class ReconcileSettlementsCommandTest(TestCase):
    def setUp(self):
        self.provider = container.configure_for_testing()
        self.settlement = PaidSettlementFactory()
        self.payout = SettlementPayoutFactory(settlement=self.settlement, status=SettlementPayout.Status.FAILED)

    def tearDown(self):
        container.reset()

    def test_retries_and_settles(self):
        out = StringIO()

        call_command("reconcile_settlements", stdout=out)

        self.settlement.refresh_from_db()
        self.assertEqual(self.settlement.status, Settlement.Status.SETTLED)
        self.assertIn("Settled: 1", out.getvalue())

    def test_dry_run_changes_nothing(self):
        out = StringIO()

        call_command("reconcile_settlements", "--dry-run", stdout=out)

        self.assertIn("failed_legs=1", out.getvalue())
        self.assertEqual(self.provider.transfers, [])
        self.payout.refresh_from_db()
        self.assertEqual(self.payout.status, SettlementPayout.Status.FAILED)

    def test_single_settlement_by_transfer_group(self):
        other = PaidSettlementFactory()
        SettlementPayoutFactory(settlement=other, status=SettlementPayout.Status.FAILED)

        call_command("reconcile_settlements", "--settlement", self.settlement.transfer_group, stdout=StringIO())

        other.refresh_from_db()
        self.assertFalse(other.transfer_completed)
        self.assertEqual(len(self.provider.transfers), 1)

    def test_unknown_settlement(self):
        with self.assertRaises(CommandError):
            call_command("reconcile_settlements", "--settlement", "not-a-settlement", stdout=StringIO())

    def test_still_failing_transfers_fail_the_command(self):
        self.provider.failing_accounts.add(self.payout.destination_account)

        with self.assertRaises(CommandError):
            call_command("reconcile_settlements", stdout=StringIO())

    def test_stalled_legs_are_recovered_first(self):
        stalled = PaidSettlementFactory(
            status=Settlement.Status.PAID_PENDING_TRANSFER, paid_at=timezone.now() - timedelta(hours=3)
        )
        SettlementPayoutFactory(settlement=stalled, status=SettlementPayout.Status.PROCESSING)
        out = StringIO()

        call_command("reconcile_settlements", "--stalled-minutes", "60", stdout=out)

        self.assertIn("Marked 1 stalled transfer legs as failed.", out.getvalue())
        stalled.refresh_from_db()
        self.assertEqual(stalled.status, Settlement.Status.SETTLED)


class PaymentTasksTest(TestCase):
    def setUp(self):
        self.provider = container.configure_for_testing()

    def tearDown(self):
        container.reset()

    def test_receipt_is_emailed_to_buyer(self):
        settlement = PaidSettlementFactory()
        SettlementLineFactory(settlement=settlement)

        result = send_purchase_receipt_task.apply(args=[str(settlement.id)]).get()

        self.assertTrue(result["success"])
        sent = container.email().sent_messages
        self.assertEqual(len(sent), 1)
        self.assertEqual(sent[0].to, [settlement.buyer.email])
        self.assertIn("10.00 USD", sent[0].body)

    def test_no_receipt_for_unpaid_settlement(self):
        settlement = SettlementFactory()

        result = send_purchase_receipt_task.apply(args=[str(settlement.id)]).get()

        self.assertFalse(result["success"])
        self.assertEqual(container.email().sent_messages, [])

    def test_retry_task_summarises_run(self):
        settlement = PaidSettlementFactory()
        SettlementPayoutFactory(settlement=settlement, status=SettlementPayout.Status.FAILED)

        result = retry_failed_transfers_task.apply().get()

        self.assertTrue(result["success"])
        self.assertEqual(result["settled"], [str(settlement.id)])
        self.assertEqual(result["still_failing"], {})
