# core/management/commands/run_weekly_payouts.py


from django.core.management.base import BaseCommand
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from core.services.weekly_batches import run_weekly_payouts


class Command(BaseCommand):
    help = "Batch last week's pending detailer transfers and pay one Stripe transfer per detailer."

    def add_arguments(self, parser):
        parser.add_argument(
            "--now",
            help="ISO datetime to treat as the current time (the previous Mon-Sun week is paid).",
        )

    def handle(self, *args, **options):
        now = None
        if options.get("now"):
            now = parse_datetime(options["now"])
            if now is None:
                self.stderr.write(f"Invalid --now value: {options['now']}")
                return
            if timezone.is_naive(now):
                now = timezone.make_aware(now)

        result = run_weekly_payouts(now=now)

        for error in result.get("errors", []):
            self.stderr.write(error)

        self.stdout.write(self.style.SUCCESS(
            f"Weekly payouts complete for {result['week_start']}..{result['week_end']}. "
            f"batches_created={result['batches_created']} "
            f"transfers_processed={result['transfers_processed']} "
            f"total_amount_cents={result['total_amount_cents']} "
            f"errors={len(result.get('errors', []))}"
        ))
