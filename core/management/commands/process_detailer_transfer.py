# core/management/commands/process_detailer_transfer.py


from django.core.management.base import BaseCommand, CommandError

from core.exceptions import PayoutError
from core.models import Booking
from core.services.transfers import process_detailer_transfer


class Command(BaseCommand):
    help = "Create (if needed) and dispatch the detailer transfer for one completed booking."

    def add_arguments(self, parser):
        parser.add_argument("booking_id", type=int)

    def handle(self, *args, **options):
        booking_id = options["booking_id"]
        try:
            result = process_detailer_transfer(booking_id)
        except Booking.DoesNotExist:
            raise CommandError(f"Booking {booking_id} not found")
        except PayoutError as e:
            raise CommandError(str(e))

        if not result.get("success"):
            raise CommandError(f"Booking {booking_id}: {result.get('error')}")

        if result.get("stripe_transfer_id"):
            self.stdout.write(self.style.SUCCESS(
                f"Booking {booking_id}: transfer {result.get('transfer_id')} "
                f"-> {result['stripe_transfer_id']} ({result.get('outcome')})"
            ))
        else:
            self.stdout.write(self.style.SUCCESS(
                f"Booking {booking_id}: {result.get('message') or result.get('outcome')}"
            ))
