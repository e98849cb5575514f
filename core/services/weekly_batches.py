# core/services/weekly_batches.py

"""
Weekly payout batching for solo detailers.

Runs on the previous full calendar week (Monday 00:00 to Sunday 23:59:59.999999,
local time). Each detailer's pending, unbatched transfers in that window are
claimed into one WeeklyPayoutBatch and paid with a single Stripe transfer.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import List, Tuple

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.exceptions import IneligibleDetailer, PayoutError, TransferError
from core.models import DetailerTransfer, WeeklyPayoutBatch
from core.services import stripe_transfers
from core.services.fees import FeeConfig, load_fee_config
from core.services.transfers import NO_DESTINATION_MESSAGE, escalate_exhausted

logger = logging.getLogger(__name__)


def previous_week_bounds(now: datetime | None = None) -> Tuple[datetime, datetime]:
    """
    Return (start, end) of the last full Monday-Sunday week before ``now``.
    Both bounds are inclusive and timezone-aware.
    """
    local_now = timezone.localtime(now or timezone.now())
    this_monday = (local_now - timedelta(days=local_now.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    start = this_monday - timedelta(days=7)
    end = this_monday - timedelta(microseconds=1)
    return start, end


def _eligible_transfers(start: datetime, end: datetime):
    return (
        DetailerTransfer.objects.select_related("detailer")
        .filter(
            status=DetailerTransfer.STATUS_PENDING,
            weekly_payout_batch__isnull=True,
            created_at__gte=start,
            created_at__lte=end,
            detailer__organization__isnull=True,
        )
        .order_by("detailer_id", "created_at")
    )


def _group_by_detailer(transfers) -> "OrderedDict[tuple, List[DetailerTransfer]]":
    groups: "OrderedDict[tuple, List[DetailerTransfer]]" = OrderedDict()
    for t in transfers:
        groups.setdefault((t.detailer_id, t.currency.lower()), []).append(t)
    return groups


def _claim_members(batch: WeeklyPayoutBatch, member_ids: List[int]) -> None:
    claimed = DetailerTransfer.objects.filter(
        pk__in=member_ids,
        status=DetailerTransfer.STATUS_PENDING,
        weekly_payout_batch__isnull=True,
    ).update(weekly_payout_batch=batch, updated_at=timezone.now())
    if claimed != len(member_ids):
        # Raising inside the atomic block drops the batch row as well
        raise PayoutError(
            f"Only {claimed} of {len(member_ids)} transfers could be claimed; another run got there first"
        )


def _fail_batch(batch: WeeklyPayoutBatch, message: str, config: FeeConfig) -> None:
    """
    Record a rejected batch transfer. Members consume one attempt and leave the
    batch so the retry coordinator can pay them individually.
    """
    now = timezone.now()
    member_message = f"Batch transfer failed: {message}"

    with transaction.atomic():
        WeeklyPayoutBatch.objects.filter(pk=batch.pk, status="pending").update(
            status="failed",
            error_message=message,
            processed_at=now,
            updated_at=now,
        )
        members = DetailerTransfer.objects.filter(
            weekly_payout_batch=batch,
            status=DetailerTransfer.STATUS_PENDING,
        )
        exhausted = list(members.filter(retry_count__gte=config.max_retries - 1))
        members.filter(retry_count__gte=config.max_retries - 1).update(
            status=DetailerTransfer.STATUS_FAILED,
            retry_count=F("retry_count") + 1,
            error_message=f"Max retries reached. Last error: {member_message}",
            weekly_payout_batch=None,
            last_attempt_at=now,
            updated_at=now,
        )
        members.update(
            status=DetailerTransfer.STATUS_RETRY_PENDING,
            retry_count=F("retry_count") + 1,
            error_message=member_message,
            weekly_payout_batch=None,
            last_attempt_at=now,
            updated_at=now,
        )

    for t in exhausted:
        escalate_exhausted(t, t.retry_count + 1, member_message)


def _pay_detailer_group(members: List[DetailerTransfer], start: datetime, end: datetime, config: FeeConfig) -> WeeklyPayoutBatch | None:
    detailer = members[0].detailer
    currency = members[0].currency.lower()
    total = sum(t.amount_cents for t in members)

    if total <= 0:
        logger.info(f"Detailer {detailer.pk}: weekly total {total} is not positive, no batch created")
        return None

    if not detailer.payout_destination:
        raise IneligibleDetailer(NO_DESTINATION_MESSAGE)

    with transaction.atomic():
        batch = WeeklyPayoutBatch.objects.create(
            detailer=detailer,
            week_start_date=start.date(),
            week_end_date=end.date(),
            total_amount_cents=total,
            total_transfers=len(members),
            currency=currency,
            status="pending",
        )
        _claim_members(batch, [t.pk for t in members])

    try:
        stripe_transfer_id = stripe_transfers.execute_transfer(
            destination=detailer.payout_destination,
            amount_cents=total,
            currency=currency,
            metadata={
                "weekly_payout_batch_id": batch.pk,
                "detailer_id": detailer.pk,
                "week_start": start.date().isoformat(),
                "week_end": end.date().isoformat(),
                "transfer_count": len(members),
            },
            idempotency_key=f"weekly-batch-{batch.pk}",
        )
    except TransferError as e:
        _fail_batch(batch, str(e), config)
        raise
    except Exception as e:
        _fail_batch(batch, f"Unexpected error: {e}", config)
        raise

    now = timezone.now()
    with transaction.atomic():
        WeeklyPayoutBatch.objects.filter(pk=batch.pk, status="pending").update(
            status="processing",
            stripe_transfer_id=stripe_transfer_id,
            processed_at=now,
            updated_at=now,
        )
        DetailerTransfer.objects.filter(
            weekly_payout_batch=batch,
            status=DetailerTransfer.STATUS_PENDING,
        ).update(
            status=DetailerTransfer.STATUS_PROCESSING,
            stripe_transfer_id=stripe_transfer_id,
            error_message=None,
            last_attempt_at=now,
            updated_at=now,
        )

    batch.refresh_from_db()
    logger.info(
        f"Weekly batch {batch.pk}: {len(members)} transfers, {total} {currency} cents "
        f"-> detailer {detailer.pk} (stripe {stripe_transfer_id})"
    )
    return batch


def run_weekly_payouts(now: datetime | None = None, config: FeeConfig | None = None) -> dict:
    """
    Batch last week's pending transfers per detailer and pay each batch.
    One detailer's failure never stops the others; it lands in ``errors``.
    """
    config = config or load_fee_config()
    start, end = previous_week_bounds(now)
    logger.info(f"Running weekly payouts for {start.date()} .. {end.date()}")

    groups = _group_by_detailer(_eligible_transfers(start, end))

    batches_created = 0
    transfers_processed = 0
    total_amount_cents = 0
    errors = []

    for (detailer_id, currency), members in groups.items():
        try:
            batch = _pay_detailer_group(members, start, end, config)
        except IneligibleDetailer as e:
            logger.warning(f"Detailer {detailer_id} skipped: {e}")
            errors.append(f"Detailer {detailer_id}: {e}")
            continue
        except TransferError as e:
            logger.error(f"Weekly batch for detailer {detailer_id} failed: {e}")
            errors.append(f"Detailer {detailer_id}: Stripe error: {e}")
            continue
        except Exception as e:
            logger.error(f"Error batching payouts for detailer {detailer_id}: {e}")
            errors.append(f"Detailer {detailer_id}: {e}")
            continue

        if batch is None:
            continue
        batches_created += 1
        transfers_processed += batch.total_transfers
        total_amount_cents += batch.total_amount_cents

    logger.info(
        f"Weekly payouts done: batches={batches_created} transfers={transfers_processed} "
        f"amount_cents={total_amount_cents} errors={len(errors)}"
    )
    summary = {
        "success": True,
        "week_start": start.date().isoformat(),
        "week_end": end.date().isoformat(),
        "batches_created": batches_created,
        "transfers_processed": transfers_processed,
        "total_amount_cents": total_amount_cents,
    }
    if errors:
        summary["errors"] = errors
    return summary
