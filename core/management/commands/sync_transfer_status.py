# core/management/commands/sync_transfer_status.py


from django.core.management.base import BaseCommand

from core.services.reconciliation import sync_transfer_status


class Command(BaseCommand):
    help = "Check processing transfers and weekly batches against Stripe and finalize them."

    def handle(self, *args, **options):
        result = sync_transfer_status()

        for error in result.get("errors", []):
            self.stderr.write(error)

        self.stdout.write(self.style.SUCCESS(
            f"Status sync complete. "
            f"batches_checked={result['batches_checked']} "
            f"transfers_checked={result['transfers_checked']} "
            f"transfers_updated={result['transfers_updated']}"
        ))
