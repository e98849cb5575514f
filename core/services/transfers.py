# core/services/transfers.py

"""
Per-booking detailer transfers: creation, individual dispatch and the shared
conditional state transitions used by the batch, retry and reconcile jobs.

Every status write goes through ``transition`` which only matches rows still in
an expected prior status, so a stale read can never move a record backwards.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.exceptions import IneligibleDetailer, PayoutError, TransferError
from core.models import Booking, Detailer, DetailerTransfer
from core.services.fees import FeeConfig, compute_fee, load_fee_config
from core.services import stripe_transfers
from core.utils.money import to_minor_units
from core.utils.notifications import notify_payout_operators, send_websocket_notification

logger = logging.getLogger(__name__)

PENDING = DetailerTransfer.STATUS_PENDING
PROCESSING = DetailerTransfer.STATUS_PROCESSING
SUCCEEDED = DetailerTransfer.STATUS_SUCCEEDED
FAILED = DetailerTransfer.STATUS_FAILED
RETRY_PENDING = DetailerTransfer.STATUS_RETRY_PENDING

OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_NOT_APPLICABLE = "not_applicable"
OUTCOME_FAILED = "failed"

NO_DESTINATION_MESSAGE = "Detailer has no Stripe Connect account connected"
ORGANIZATION_MESSAGE = "Organization detailers use batch payout system"


@dataclass
class CreationResult:
    outcome: str
    transfer: Optional[DetailerTransfer] = None
    message: str = ""


def transition(transfer_id, expected: Iterable[str], **updates) -> bool:
    """Compare-and-swap on status. Returns True when this caller won the update."""
    updates.setdefault("updated_at", timezone.now())
    return DetailerTransfer.objects.filter(
        pk=transfer_id,
        status__in=list(expected),
    ).update(**updates) == 1


def mark_structural_failure(transfer: DetailerTransfer, message: str, expected: Iterable[str]) -> bool:
    """Terminal failure that does not consume a retry attempt and leaves the retry pool."""
    won = transition(
        transfer.pk,
        expected,
        status=FAILED,
        error_message=message,
        retryable=False,
    )
    if won:
        logger.warning(f"Transfer {transfer.pk} failed permanently: {message}")
    return won


def record_attempt_failure(transfer: DetailerTransfer, attempt_count: int, message: str, max_retries: int) -> str:
    """
    Persist the outcome of a failed Stripe attempt. ``attempt_count`` is the
    retry_count after this attempt. Returns the status written (or the current
    one if another run already moved the record).
    """
    exhausted = attempt_count >= max_retries
    new_status = FAILED if exhausted else RETRY_PENDING
    error_message = f"Max retries reached. Last error: {message}" if exhausted else message

    won = transition(
        transfer.pk,
        [PROCESSING],
        status=new_status,
        error_message=error_message,
        retry_count=attempt_count,
    )
    if not won:
        logger.warning(f"Transfer {transfer.pk} left processing before failure could be recorded")
        return DetailerTransfer.objects.values_list("status", flat=True).get(pk=transfer.pk)

    if exhausted:
        escalate_exhausted(transfer, attempt_count, message)
    return new_status


def escalate_exhausted(transfer: DetailerTransfer, attempts: int, message: str) -> None:
    text = (
        f"Transfer #{transfer.pk} for booking #{transfer.booking_id} "
        f"({transfer.amount_cents} {transfer.currency.upper()} cents) failed after {attempts} attempts: {message}. "
        f"Manual intervention required."
    )
    try:
        notify_payout_operators(text)
        detailer = transfer.detailer
        if detailer.user_id:
            send_websocket_notification(
                detailer.user,
                f"We could not send your payout for booking #{transfer.booking_id}. Our team has been notified.",
                notification_type="payout_failed",
            )
    except Exception as e:
        logger.error(f"Failed to notify about exhausted transfer {transfer.pk}: {e}")


def attempt_idempotency_key(transfer_id, attempt: int, at=None) -> str:
    # Requeued records reuse attempt numbers; the claim time keeps keys unique
    at = at or timezone.now()
    return f"transfer-{transfer_id}-attempt-{attempt}-{int(at.timestamp())}"


def ensure_payable(booking: Booking, detailer: Detailer) -> None:
    """Raise IneligibleDetailer when no amount of retrying could pay this booking."""
    if booking.status != "completed":
        raise IneligibleDetailer(f"Booking is no longer completed (status: {booking.status})")
    if not detailer.is_solo:
        raise IneligibleDetailer("Detailer now belongs to an organization")
    if not detailer.payout_destination:
        raise IneligibleDetailer(NO_DESTINATION_MESSAGE)


def booking_gross_cents(booking: Booking) -> int:
    return to_minor_units(booking.gross_amount, booking.currency)


def create_transfer_for_booking(booking: Booking, config: FeeConfig | None = None) -> CreationResult:
    """
    Upsert-if-absent the transfer for a completed booking.

    - organization detailer: not applicable, nothing stored
    - existing processing / succeeded / frozen failed / claimed by a batch: returned unchanged
    - existing pending / retry_pending / failed with budget left: amounts refreshed, reset to pending
    - otherwise a new pending record
    A detailer without a payout destination leaves the record failed straight away.
    """
    if booking.status != "completed":
        raise PayoutError(f"Booking is not completed. Current status: {booking.status}")
    if not booking.detailer_id:
        raise PayoutError("Booking has no detailer assigned")

    detailer: Detailer = booking.detailer
    if not detailer.is_solo:
        logger.info(f"Booking {booking.pk}: detailer {detailer.pk} belongs to an organization, skipping")
        return CreationResult(OUTCOME_NOT_APPLICABLE, None, ORGANIZATION_MESSAGE)

    config = config or load_fee_config()
    breakdown = compute_fee(booking_gross_cents(booking), detailer.pricing_model, detailer.pk, config)
    currency = (booking.currency or getattr(settings, "PAYOUT_CURRENCY", "cad")).lower()

    with transaction.atomic():
        existing = DetailerTransfer.objects.select_for_update().filter(booking=booking).first()

        if existing is not None:
            frozen = existing.status == FAILED and (
                not existing.retryable or existing.retry_count >= config.max_retries
            )
            claimed = existing.status == PENDING and existing.weekly_payout_batch_id is not None
            if existing.status in (PROCESSING, SUCCEEDED) or frozen or claimed:
                logger.info(f"Transfer {existing.pk} for booking {booking.pk} already {existing.status}")
                return CreationResult(OUTCOME_UNCHANGED, existing, "Transfer already processed")

            existing.amount_cents = breakdown.payout_cents
            existing.platform_fee_cents = breakdown.fee_cents
            existing.currency = currency
            existing.status = PENDING
            existing.error_message = None
            existing.weekly_payout_batch = None
            existing.save(update_fields=[
                "amount_cents", "platform_fee_cents", "currency", "status",
                "error_message", "weekly_payout_batch", "updated_at",
            ])
            transfer, outcome = existing, OUTCOME_UPDATED
        else:
            try:
                with transaction.atomic():
                    transfer = DetailerTransfer.objects.create(
                        booking=booking,
                        detailer=detailer,
                        amount_cents=breakdown.payout_cents,
                        platform_fee_cents=breakdown.fee_cents,
                        currency=currency,
                        status=PENDING,
                    )
            except IntegrityError:
                # Lost a creation race on the booking unique constraint
                transfer = DetailerTransfer.objects.get(booking=booking)
                return CreationResult(OUTCOME_UNCHANGED, transfer, "Transfer already exists")
            outcome = OUTCOME_CREATED

    logger.info(
        f"Transfer {transfer.pk} {outcome} for booking {booking.pk}: "
        f"gross={breakdown.gross_cents} fee={breakdown.fee_cents} ({breakdown.fee_percentage}%) payout={breakdown.payout_cents}"
    )

    if not detailer.payout_destination:
        mark_structural_failure(transfer, NO_DESTINATION_MESSAGE, [PENDING])
        transfer.refresh_from_db()
        return CreationResult(OUTCOME_FAILED, transfer, NO_DESTINATION_MESSAGE)

    return CreationResult(outcome, transfer)


def dispatch_transfer(transfer: DetailerTransfer, config: FeeConfig | None = None) -> dict:
    """
    Send one unbatched pending transfer to Stripe on its own.
    """
    config = config or load_fee_config()
    detailer = transfer.detailer
    attempt = transfer.retry_count

    if transfer.amount_cents <= 0:
        # Nothing owed; close it without a processor call
        if transition(transfer.pk, [PENDING], status=SUCCEEDED, error_message=None):
            return {"success": True, "transfer_id": transfer.pk, "amount_cents": 0}
        return {"success": False, "transfer_id": transfer.pk, "error": "Transfer is no longer pending"}

    claimed = DetailerTransfer.objects.filter(
        pk=transfer.pk,
        status=PENDING,
        weekly_payout_batch__isnull=True,
        retry_count=attempt,
    ).update(status=PROCESSING, last_attempt_at=timezone.now(), updated_at=timezone.now())
    if not claimed:
        return {"success": False, "transfer_id": transfer.pk, "error": "Transfer is no longer pending"}

    try:
        stripe_transfer_id = stripe_transfers.execute_transfer(
            destination=detailer.payout_destination,
            amount_cents=transfer.amount_cents,
            currency=transfer.currency,
            metadata={
                "booking_id": transfer.booking_id,
                "detailer_id": detailer.pk,
                "transfer_id": transfer.pk,
            },
            idempotency_key=attempt_idempotency_key(transfer.pk, attempt),
        )
    except TransferError as e:
        status = record_attempt_failure(transfer, attempt + 1, str(e), config.max_retries)
        logger.error(f"Transfer {transfer.pk} dispatch failed ({status}): {e}")
        return {"success": False, "transfer_id": transfer.pk, "error": f"Stripe error: {e}"}
    except Exception as e:
        status = record_attempt_failure(transfer, attempt + 1, f"Unexpected error: {e}", config.max_retries)
        logger.error(f"Transfer {transfer.pk} dispatch errored ({status}): {e}")
        return {"success": False, "transfer_id": transfer.pk, "error": str(e)}

    transition(transfer.pk, [PROCESSING], stripe_transfer_id=stripe_transfer_id, error_message=None)
    return {
        "success": True,
        "transfer_id": transfer.pk,
        "stripe_transfer_id": stripe_transfer_id,
        "amount_cents": transfer.amount_cents,
    }


def process_detailer_transfer(booking_id, config: FeeConfig | None = None) -> dict:
    """
    Create (or reuse) the transfer for a completed booking and dispatch it
    individually. Raises Booking.DoesNotExist / PayoutError for bad input.
    """
    booking = Booking.objects.select_related("detailer").get(pk=booking_id)
    config = config or load_fee_config()

    result = create_transfer_for_booking(booking, config)

    if result.outcome == OUTCOME_NOT_APPLICABLE:
        return {"success": True, "outcome": result.outcome, "message": result.message}

    transfer = result.transfer
    if result.outcome == OUTCOME_FAILED:
        return {"success": False, "outcome": result.outcome, "transfer_id": transfer.pk, "error": result.message}

    if result.outcome == OUTCOME_UNCHANGED:
        if transfer.status in (PROCESSING, SUCCEEDED):
            return {
                "success": True,
                "outcome": result.outcome,
                "transfer_id": transfer.pk,
                "stripe_transfer_id": transfer.stripe_transfer_id,
                "message": result.message,
            }
        return {
            "success": False,
            "outcome": result.outcome,
            "transfer_id": transfer.pk,
            "error": transfer.error_message or f"Transfer is {transfer.status}",
        }

    summary = dispatch_transfer(transfer, config)
    summary["outcome"] = result.outcome
    return summary


def process_pending_transfers(limit: int | None = None, config: FeeConfig | None = None) -> dict:
    """
    Sweep pending, unbatched transfers and dispatch each one individually.
    """
    limit = limit or int(getattr(settings, "PENDING_TRANSFER_BATCH_SIZE", 50))
    config = config or load_fee_config()

    pending = list(
        DetailerTransfer.objects.filter(
            status=PENDING,
            weekly_payout_batch__isnull=True,
        ).order_by("created_at")[:limit]
    )

    if not pending:
        logger.info("No pending transfers to process")
        return {"success": True, "processed": 0, "failed": 0}

    logger.info(f"Found {len(pending)} pending transfers to process")

    errors = []
    processed = 0
    failed = 0
    for transfer in pending:
        try:
            result = process_detailer_transfer(transfer.booking_id, config)
            if result.get("outcome") == OUTCOME_NOT_APPLICABLE:
                # Detailer joined an organization after the record was created
                mark_structural_failure(transfer, "Detailer now belongs to an organization", [PENDING])
                errors.append(f"Transfer {transfer.pk}: detailer now belongs to an organization")
                failed += 1
                continue
            processed += 1
            if not result.get("success") and result.get("error"):
                errors.append(f"Transfer {transfer.pk}: {result['error']}")
        except Exception as e:
            logger.error(f"Error processing transfer {transfer.pk}: {e}")
            errors.append(f"Transfer {transfer.pk}: {e}")
            failed += 1

    logger.info(f"Processed {processed} transfers, {failed} failed")
    summary = {"success": True, "processed": processed, "failed": failed}
    if errors:
        summary["errors"] = errors
    return summary


def requeue_transfer(transfer: DetailerTransfer) -> bool:
    """
    Operator remediation: give a failed (or stuck retry_pending) transfer a
    fresh retry budget. The retry coordinator picks it up on its next run.
    """
    won = transition(
        transfer.pk,
        [FAILED, RETRY_PENDING],
        status=RETRY_PENDING,
        retry_count=0,
        retryable=True,
        error_message="Requeued by operator",
    )
    if won:
        logger.info(f"Transfer {transfer.pk} requeued for retry")
    return won
