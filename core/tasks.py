# core/tasks.py

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def run_weekly_payouts_task():
    """
    Batch and pay last week's pending transfers (Wednesday beat entry).
    """
    from core.services.weekly_batches import run_weekly_payouts

    result = run_weekly_payouts()
    logger.info(f"Weekly payouts: {result}")
    return result


@shared_task
def retry_failed_transfers_task():
    """
    Re-dispatch transfers that still have retry budget left.
    """
    from core.services.retries import retry_failed_transfers

    result = retry_failed_transfers()
    logger.info(f"Transfer retries: {result}")
    return result


@shared_task
def sync_transfer_status_task():
    """
    Finalize processing transfers and batches from Stripe.
    """
    from core.services.reconciliation import sync_transfer_status

    result = sync_transfer_status()
    logger.info(f"Transfer status sync: {result}")
    return result


@shared_task
def process_pending_transfers_task(limit=None):
    from core.services.transfers import process_pending_transfers

    result = process_pending_transfers(limit=limit)
    logger.info(f"Pending transfers: {result}")
    return result


@shared_task
def process_detailer_transfer_task(booking_id: int):
    """
    Individually pay out one completed booking.
    """
    from core.exceptions import PayoutError
    from core.models import Booking
    from core.services.transfers import process_detailer_transfer

    try:
        result = process_detailer_transfer(booking_id)
    except Booking.DoesNotExist:
        logger.error(f"Booking {booking_id} not found")
        return {'success': False, 'error': 'Booking not found'}
    except PayoutError as e:
        logger.error(f"Booking {booking_id}: {e}")
        return {'success': False, 'error': str(e)}

    logger.info(f"Booking {booking_id} transfer: {result}")
    return result
