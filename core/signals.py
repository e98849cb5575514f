# core/signals.py


import logging

from django.db import transaction
from django.db.models.signals import post_save
from django.dispatch import receiver

from .exceptions import PayoutError
from .models import Booking, DetailerTransfer

logger = logging.getLogger(__name__)


@receiver(post_save, sender=Booking)
def create_transfer_on_completion(sender, instance: Booking, created, **kwargs):
    """
    A booking saved as completed gets its detailer transfer record.
    Dispatch happens later (weekly batch, or an explicit individual run).
    """
    if instance.status != "completed" or not instance.detailer_id:
        return
    if DetailerTransfer.objects.filter(booking_id=instance.pk).exists():
        return

    from .services.transfers import create_transfer_for_booking

    def _create():
        try:
            create_transfer_for_booking(instance)
        except PayoutError as e:
            logger.error(f"Could not create transfer for booking {instance.pk}: {e}")

    transaction.on_commit(_create)
