# core/services/reconciliation.py

"""
Poll Stripe for transfers still in ``processing`` and finalize them.

Batched transfers share one Stripe transfer id, so they are checked once per
batch and the result is applied to every member. Anything Stripe reports that
we cannot map confidently is left alone for the next run.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Tuple, Union

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import TransferError
from core.models import DetailerTransfer, WeeklyPayoutBatch
from core.services import stripe_transfers
from core.services.fees import load_fee_config
from core.services.stripe_transfers import RESOLVED_FAILED, RESOLVED_SUCCEEDED, TransferSnapshot
from core.services.transfers import escalate_exhausted
from core.utils.notifications import send_websocket_notification

logger = logging.getLogger(__name__)

# Claimed for an attempt but never got a Stripe id back
STALLED_AFTER = timedelta(hours=1)


@dataclass(frozen=True)
class IndividualTarget:
    transfer: DetailerTransfer

    @property
    def stripe_transfer_id(self) -> str:
        return self.transfer.stripe_transfer_id


@dataclass(frozen=True)
class BatchedTarget:
    batch: WeeklyPayoutBatch
    members: Tuple[DetailerTransfer, ...]

    @property
    def stripe_transfer_id(self) -> str:
        return self.batch.stripe_transfer_id


TransferTarget = Union[IndividualTarget, BatchedTarget]


def collect_targets() -> List[TransferTarget]:
    """
    One target per distinct Stripe transfer id among processing records, plus
    processing batches whose members were already finalized elsewhere.
    """
    records = (
        DetailerTransfer.objects.select_related("weekly_payout_batch", "detailer", "detailer__user")
        .filter(status=DetailerTransfer.STATUS_PROCESSING, stripe_transfer_id__isnull=False)
        .exclude(stripe_transfer_id="")
        .order_by("pk")
    )

    by_stripe_id: "OrderedDict[str, List[DetailerTransfer]]" = OrderedDict()
    for t in records:
        by_stripe_id.setdefault(t.stripe_transfer_id, []).append(t)

    targets: List[TransferTarget] = []
    seen_batches = set()
    for stripe_id, members in by_stripe_id.items():
        batch = members[0].weekly_payout_batch
        if (
            batch is not None
            and batch.stripe_transfer_id == stripe_id
            and all(m.weekly_payout_batch_id == batch.pk for m in members)
        ):
            targets.append(BatchedTarget(batch, tuple(members)))
            seen_batches.add(batch.pk)
        else:
            targets.extend(IndividualTarget(m) for m in members)

    orphan_batches = (
        WeeklyPayoutBatch.objects.select_related("detailer", "detailer__user")
        .filter(status="processing", stripe_transfer_id__isnull=False)
        .exclude(stripe_transfer_id="")
        .exclude(pk__in=seen_batches)
        .order_by("pk")
    )
    targets.extend(BatchedTarget(b, ()) for b in orphan_batches)
    return targets


def _infer_settled() -> bool:
    return bool(getattr(settings, "PAYOUTS_INFER_SETTLED_TRANSFERS", False))


def _notify_paid(detailer, amount_cents: int, currency: str) -> None:
    if not detailer.user_id:
        return
    try:
        send_websocket_notification(
            detailer.user,
            f"Your payout of {amount_cents / 100:.2f} {currency.upper()} has been sent.",
            notification_type="payout_success",
        )
    except Exception as e:
        logger.error(f"Failed to notify detailer {detailer.pk} about payout: {e}")


def _send_back_to_retry(queryset, message: str, max_retries: int) -> int:
    """
    Failed on Stripe: back into the retry pool, or straight to failed when the
    attempt that produced this transfer was the last one.
    """
    now = timezone.now()
    exhausted = list(queryset.filter(retry_count__gte=max_retries))
    frozen = queryset.filter(retry_count__gte=max_retries).update(
        status=DetailerTransfer.STATUS_FAILED,
        error_message=f"Max retries reached. Last error: {message}",
        updated_at=now,
    )
    requeued = queryset.update(
        status=DetailerTransfer.STATUS_RETRY_PENDING,
        error_message=message,
        updated_at=now,
    )
    for t in exhausted:
        escalate_exhausted(t, t.retry_count, message)
    return frozen + requeued


def _reconcile_batch(target: BatchedTarget, snapshot: TransferSnapshot, max_retries: int) -> int:
    batch = target.batch
    member_ids = [m.pk for m in target.members]
    state = snapshot.resolve(_infer_settled())
    now = timezone.now()

    if state == RESOLVED_SUCCEEDED:
        with transaction.atomic():
            WeeklyPayoutBatch.objects.filter(pk=batch.pk, status="processing").update(
                status="succeeded", updated_at=now,
            )
            updated = DetailerTransfer.objects.filter(
                pk__in=member_ids,
                status=DetailerTransfer.STATUS_PROCESSING,
                stripe_transfer_id=batch.stripe_transfer_id,
            ).update(status=DetailerTransfer.STATUS_SUCCEEDED, error_message=None, updated_at=now)
        logger.info(f"Batch {batch.pk} settled; {updated} transfers succeeded")
        _notify_paid(batch.detailer, batch.total_amount_cents, batch.currency)
        return updated

    if state == RESOLVED_FAILED:
        reason = snapshot.failure_message
        with transaction.atomic():
            WeeklyPayoutBatch.objects.filter(pk=batch.pk, status="processing").update(
                status="failed", error_message=reason, updated_at=now,
            )
            updated = _send_back_to_retry(
                DetailerTransfer.objects.filter(
                    pk__in=member_ids,
                    status=DetailerTransfer.STATUS_PROCESSING,
                    stripe_transfer_id=batch.stripe_transfer_id,
                ),
                f"Batch transfer failed: {reason}",
                max_retries,
            )
        logger.warning(f"Batch {batch.pk} failed on Stripe ({reason}); {updated} transfers back to retry")
        return updated

    logger.warning(
        f"Batch {batch.pk}: Stripe transfer {snapshot.transfer_id} has unrecognised status "
        f"{snapshot.status!r}, leaving as processing"
    )
    return 0


def _reconcile_individual(target: IndividualTarget, snapshot: TransferSnapshot, max_retries: int) -> int:
    transfer = target.transfer
    state = snapshot.resolve(_infer_settled())
    now = timezone.now()

    if state == RESOLVED_SUCCEEDED:
        updated = DetailerTransfer.objects.filter(
            pk=transfer.pk,
            status=DetailerTransfer.STATUS_PROCESSING,
            stripe_transfer_id=transfer.stripe_transfer_id,
        ).update(status=DetailerTransfer.STATUS_SUCCEEDED, error_message=None, updated_at=now)
        if updated:
            logger.info(f"Transfer {transfer.pk} settled")
            _notify_paid(transfer.detailer, transfer.amount_cents, transfer.currency)
        return updated

    if state == RESOLVED_FAILED:
        reason = snapshot.failure_message
        updated = _send_back_to_retry(
            DetailerTransfer.objects.filter(
                pk=transfer.pk,
                status=DetailerTransfer.STATUS_PROCESSING,
                stripe_transfer_id=transfer.stripe_transfer_id,
            ),
            reason,
            max_retries,
        )
        if updated:
            logger.warning(f"Transfer {transfer.pk} failed on Stripe ({reason}); back to retry")
        return updated

    logger.warning(
        f"Transfer {transfer.pk}: Stripe transfer {snapshot.transfer_id} has unrecognised status "
        f"{snapshot.status!r}, leaving as processing"
    )
    return 0


def _stalled_transfers(now):
    return DetailerTransfer.objects.filter(
        status=DetailerTransfer.STATUS_PROCESSING,
        stripe_transfer_id__isnull=True,
        last_attempt_at__lt=now - STALLED_AFTER,
    ).order_by("pk")


def _stalled_batches(now):
    return WeeklyPayoutBatch.objects.filter(
        status="pending",
        created_at__lt=now - STALLED_AFTER,
    ).order_by("pk")


def sync_transfer_status(now=None) -> dict:
    """
    Check every processing transfer / batch against Stripe.
    """
    now = now or timezone.now()
    max_retries = load_fee_config().max_retries
    batches_checked = 0
    transfers_checked = 0
    transfers_updated = 0
    errors = []

    for target in collect_targets():
        if isinstance(target, BatchedTarget):
            batches_checked += 1
            transfers_checked += len(target.members)
            label = f"Batch {target.batch.pk}"
        elif isinstance(target, IndividualTarget):
            transfers_checked += 1
            label = f"Transfer {target.transfer.pk}"
        else:
            raise TypeError(f"Unsupported transfer target {target!r}")

        try:
            snapshot = stripe_transfers.retrieve_transfer(target.stripe_transfer_id)
            if isinstance(target, BatchedTarget):
                transfers_updated += _reconcile_batch(target, snapshot, max_retries)
            else:
                transfers_updated += _reconcile_individual(target, snapshot, max_retries)
        except TransferError as e:
            logger.error(f"{label}: {e}")
            errors.append(f"{label}: {e}")
        except Exception as e:
            logger.error(f"Error syncing {label.lower()}: {e}")
            errors.append(f"{label}: {e}")

    for t in _stalled_transfers(now):
        message = f"Transfer {t.pk}: processing without a Stripe transfer id since {t.last_attempt_at.isoformat()}"
        logger.warning(message)
        errors.append(message)

    for b in _stalled_batches(now):
        message = f"Batch {b.pk}: still pending with claimed transfers since {b.created_at.isoformat()}"
        logger.warning(message)
        errors.append(message)

    logger.info(
        f"Status sync done: batches={batches_checked} transfers={transfers_checked} "
        f"updated={transfers_updated} errors={len(errors)}"
    )
    summary = {
        "success": True,
        "batches_checked": batches_checked,
        "transfers_checked": transfers_checked,
        "transfers_updated": transfers_updated,
    }
    if errors:
        summary["errors"] = errors
    return summary
