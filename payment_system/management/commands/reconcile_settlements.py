import logging
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.core.management.base import BaseCommand, CommandError

from infrastructure.container import container
from payment_system.models import Settlement, SettlementPayout


logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Retries failed seller transfers of paid settlements."

    def add_arguments(self, parser):
        parser.add_argument(
            "--settlement",
            help="Only reconcile this settlement (id or transfer group)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="List settlements awaiting transfers without retrying anything",
        )
        parser.add_argument(
            "--stalled-minutes",
            type=int,
            default=None,
            help="First mark legs stuck in pending/processing for this many minutes as failed",
        )

    def handle(self, *args, **options):
        service = container.reconciliation_service()

        if options["settlement"]:
            settlements = [self._get_settlement(options["settlement"])]
        else:
            settlements = list(service.pending_settlements())

        self.stdout.write(f"Found {len(settlements)} settlements awaiting transfers.")

        if options["dry_run"]:
            for settlement in settlements:
                failed = settlement.payouts.filter(status=SettlementPayout.Status.FAILED).count()
                self.stdout.write(
                    f"  {settlement.id} {settlement.transfer_group} status={settlement.status} failed_legs={failed}"
                )
            self.stdout.write(self.style.WARNING("Dry run, no transfers attempted."))
            return

        if options["stalled_minutes"] is not None:
            recovered = service.recover_stalled(timedelta(minutes=options["stalled_minutes"]))
            self.stdout.write(f"Marked {recovered.value} stalled transfer legs as failed.")

        settled_count = 0
        error_count = 0

        for settlement in settlements:
            self.stdout.write(f"  Processing settlement {settlement.id} ({settlement.transfer_group})...")
            result = service.retry_failed_transfers(settlement)

            if not result.ok:
                self.stdout.write(self.style.ERROR(f"    {result.error_detail}"))
                error_count += 1
                continue

            outcome = result.value
            if outcome.settled:
                settled_count += 1
                self.stdout.write(self.style.SUCCESS(f"    Settled ({len(outcome.succeeded)} transfers retried)."))
            else:
                error_count += 1
                self.stdout.write(
                    self.style.WARNING(f"    Still failing for sellers: {', '.join(outcome.failed) or 'none attempted'}")
                )

        self.stdout.write(self.style.SUCCESS("--- Reconciliation Summary ---"))
        self.stdout.write(self.style.SUCCESS(f"Total settlements: {len(settlements)}"))
        self.stdout.write(self.style.SUCCESS(f"Settled: {settled_count}"))
        self.stdout.write(self.style.ERROR(f"Still unsettled: {error_count}"))

        if error_count > 0:
            raise CommandError("Reconciliation completed with unsettled transfers.")
        self.stdout.write(self.style.SUCCESS("Settlement reconciliation completed successfully."))

    def _get_settlement(self, reference):
        settlement = Settlement.objects.filter(transfer_group=reference).first()
        if settlement is None:
            try:
                settlement = Settlement.objects.filter(pk=reference).first()
            except ValidationError:
                settlement = None
        if settlement is None:
            raise CommandError(f"Settlement {reference} not found.")
        return settlement
