# core/management/commands/process_pending_transfers.py


from django.core.management.base import BaseCommand

from core.services.transfers import process_pending_transfers


class Command(BaseCommand):
    help = "Dispatch pending, unbatched detailer transfers individually."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=None)

    def handle(self, *args, **options):
        result = process_pending_transfers(limit=options.get("limit"))

        for error in result.get("errors", []):
            self.stderr.write(error)

        self.stdout.write(self.style.SUCCESS(
            f"Pending transfers processed={result['processed']} failed={result['failed']}"
        ))
