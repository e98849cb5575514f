# core/management/commands/retry_failed_transfers.py


from django.core.management.base import BaseCommand

from core.services.retries import retry_failed_transfers


class Command(BaseCommand):
    help = "Retry failed detailer transfers that still have retry budget left."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None, help="Max transfers to retry in this run.")

    def handle(self, *args, **options):
        result = retry_failed_transfers(limit=options.get("limit"))

        for error in result.get("errors", []):
            self.stderr.write(error)

        self.stdout.write(self.style.SUCCESS(
            f"Retry run complete. "
            f"retried={result['retried']} "
            f"dispatched={result['dispatched']} "
            f"exhausted={result['exhausted']} "
            f"ineligible={result['ineligible']} "
            f"skipped={result['skipped']}"
        ))
