# core/services/retries.py

from __future__ import annotations

import logging

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from core.exceptions import IneligibleDetailer, TransferError
from core.models import DetailerTransfer
from core.services import stripe_transfers
from core.services.fees import FeeConfig, load_fee_config
from core.services.transfers import (
    FAILED,
    PROCESSING,
    RETRY_PENDING,
    SUCCEEDED,
    attempt_idempotency_key,
    ensure_payable,
    mark_structural_failure,
    record_attempt_failure,
    transition,
)

logger = logging.getLogger(__name__)


def retryable_transfers(config: FeeConfig):
    return (
        DetailerTransfer.objects.select_related("booking", "detailer", "detailer__user")
        .filter(
            status__in=[RETRY_PENDING, FAILED],
            retry_count__lt=config.max_retries,
            retryable=True,
        )
        .order_by("created_at", "pk")
    )


def _claim_attempt(transfer: DetailerTransfer, now) -> bool:
    """Move to processing and count the attempt in one conditional update."""
    return DetailerTransfer.objects.filter(
        pk=transfer.pk,
        status=transfer.status,
        retry_count=transfer.retry_count,
        retryable=True,
    ).update(
        status=PROCESSING,
        retry_count=F("retry_count") + 1,
        last_attempt_at=now,
        updated_at=now,
    ) == 1


def retry_transfer(transfer: DetailerTransfer, config: FeeConfig, now=None) -> str:
    """
    Re-dispatch one failed transfer individually.
    Returns "dispatched", "succeeded" (nothing owed), "retry_pending", "failed",
    "ineligible" or "skipped".
    """
    now = now or timezone.now()

    try:
        ensure_payable(transfer.booking, transfer.detailer)
    except IneligibleDetailer as e:
        mark_structural_failure(transfer, str(e), [transfer.status])
        return "ineligible"

    if transfer.amount_cents <= 0:
        # Nothing owed; close it without a processor call
        if transition(transfer.pk, [transfer.status], status=SUCCEEDED, error_message=None):
            logger.info(f"Transfer {transfer.pk} has nothing to pay, closed as succeeded")
            return SUCCEEDED
        return "skipped"

    if not _claim_attempt(transfer, now):
        logger.info(f"Transfer {transfer.pk} was picked up by another run")
        return "skipped"

    attempt = transfer.retry_count + 1
    try:
        stripe_transfer_id = stripe_transfers.execute_transfer(
            destination=transfer.detailer.payout_destination,
            amount_cents=transfer.amount_cents,
            currency=transfer.currency,
            metadata={
                "booking_id": transfer.booking_id,
                "detailer_id": transfer.detailer_id,
                "transfer_id": transfer.pk,
                "retry": attempt,
            },
            idempotency_key=attempt_idempotency_key(transfer.pk, attempt, now),
        )
    except TransferError as e:
        logger.error(f"Retry {attempt} of transfer {transfer.pk} failed: {e}")
        return record_attempt_failure(transfer, attempt, str(e), config.max_retries)
    except Exception as e:
        logger.error(f"Retry {attempt} of transfer {transfer.pk} errored: {e}")
        return record_attempt_failure(transfer, attempt, f"Unexpected error: {e}", config.max_retries)

    transition(transfer.pk, [PROCESSING], stripe_transfer_id=stripe_transfer_id, error_message=None)
    logger.info(f"Transfer {transfer.pk} retry {attempt} accepted by Stripe ({stripe_transfer_id})")
    return "dispatched"


def retry_failed_transfers(now=None, config: FeeConfig | None = None, limit: int | None = None) -> dict:
    """
    Retry transfers in retry_pending / failed that still have budget left,
    oldest first, at most ``limit`` per run.
    """
    now = now or timezone.now()
    config = config or load_fee_config()
    limit = limit or int(getattr(settings, "TRANSFER_RETRY_BATCH_SIZE", 50))

    candidates = list(retryable_transfers(config)[:limit])
    if not candidates:
        logger.info("No failed transfers to retry")
        return {"success": True, "retried": 0, "dispatched": 0, "exhausted": 0, "ineligible": 0, "skipped": 0}

    logger.info(f"Retrying {len(candidates)} failed transfers")

    counts = {"retried": 0, "dispatched": 0, "exhausted": 0, "ineligible": 0, "skipped": 0}
    errors = []

    for transfer in candidates:
        try:
            outcome = retry_transfer(transfer, config, now)
        except Exception as e:
            logger.error(f"Error retrying transfer {transfer.pk}: {e}")
            errors.append(f"Transfer {transfer.pk}: {e}")
            continue

        if outcome == "skipped":
            counts["skipped"] += 1
            continue
        if outcome == "ineligible":
            counts["ineligible"] += 1
            errors.append(f"Transfer {transfer.pk}: not retryable")
            continue

        counts["retried"] += 1
        if outcome == "dispatched":
            counts["dispatched"] += 1
        elif outcome == FAILED:
            counts["exhausted"] += 1
            errors.append(f"Transfer {transfer.pk}: max retries reached")

    logger.info(
        f"Retry run done: retried={counts['retried']} dispatched={counts['dispatched']} "
        f"exhausted={counts['exhausted']} ineligible={counts['ineligible']} skipped={counts['skipped']}"
    )
    summary = {"success": True, **counts}
    if errors:
        summary["errors"] = errors
    return summary
