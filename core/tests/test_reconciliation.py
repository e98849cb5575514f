# core/tests/test_reconciliation.py

from datetime import timedelta
from unittest import mock

from django.test import TestCase, override_settings
from django.utils import timezone

from core.exceptions import TransferError
from core.models import DetailerTransfer, WeeklyPayoutBatch
from core.services.reconciliation import BatchedTarget, IndividualTarget, collect_targets, sync_transfer_status
from core.services.stripe_transfers import TransferSnapshot
from core.tests.helpers import make_detailer, make_transfer

RETRIEVE = 'core.services.stripe_transfers.retrieve_transfer'


def snapshot(transfer_id, status=None, reversed=False, failure_reason=None, amount=5000):
    return TransferSnapshot(
        transfer_id=transfer_id,
        status=status,
        amount=amount,
        reversed=reversed,
        amount_reversed=amount if reversed else 0,
        failure_reason=failure_reason,
    )


class ReconciliationTestCase(TestCase):

    def setUp(self):
        self.detailer = make_detailer(account='acct_rec')
        today = timezone.now().date()
        self.batch = WeeklyPayoutBatch.objects.create(
            detailer=self.detailer,
            week_start_date=today - timedelta(days=9),
            week_end_date=today - timedelta(days=3),
            total_amount_cents=10000,
            total_transfers=2,
            status='processing',
            stripe_transfer_id='tr_batch',
        )
        self.members = [
            make_transfer(
                self.detailer,
                amount_cents=5000,
                status=DetailerTransfer.STATUS_PROCESSING,
                stripe_transfer_id='tr_batch',
                weekly_payout_batch=self.batch,
            )
            for _ in range(2)
        ]
        self.single = make_transfer(
            self.detailer,
            amount_cents=7000,
            status=DetailerTransfer.STATUS_PROCESSING,
            stripe_transfer_id='tr_single',
        )


class CollectTargetsTests(ReconciliationTestCase):

    def test_groups_batched_members(self):
        targets = collect_targets()

        batched = [t for t in targets if isinstance(t, BatchedTarget)]
        individual = [t for t in targets if isinstance(t, IndividualTarget)]
        self.assertEqual(len(batched), 1)
        self.assertEqual(batched[0].batch, self.batch)
        self.assertEqual({m.pk for m in batched[0].members}, {m.pk for m in self.members})
        self.assertEqual([t.transfer.pk for t in individual], [self.single.pk])

    def test_ignores_records_without_stripe_id(self):
        make_transfer(self.detailer, status=DetailerTransfer.STATUS_PROCESSING)
        self.assertEqual(len(collect_targets()), 2)


class SyncTransferStatusTests(ReconciliationTestCase):

    @mock.patch(RETRIEVE)
    def test_batch_checked_once_and_fanned_out(self, retrieve):
        retrieve.side_effect = lambda tid: snapshot(tid, status='paid')

        result = sync_transfer_status()

        self.assertEqual(retrieve.call_count, 2)
        self.assertEqual(result['batches_checked'], 1)
        self.assertEqual(result['transfers_checked'], 3)
        self.assertEqual(result['transfers_updated'], 3)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.status, 'succeeded')
        for t in self.members + [self.single]:
            t.refresh_from_db()
            self.assertEqual(t.status, DetailerTransfer.STATUS_SUCCEEDED)

    @mock.patch(RETRIEVE)
    def test_reversed_batch_sends_members_back_to_retry(self, retrieve):
        retrieve.side_effect = lambda tid: (
            snapshot(tid, reversed=True) if tid == 'tr_batch' else snapshot(tid, status='in_transit')
        )

        sync_transfer_status()

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.status, 'failed')
        self.assertEqual(self.batch.error_message, 'Transfer reversed')
        for t in self.members:
            t.refresh_from_db()
            self.assertEqual(t.status, DetailerTransfer.STATUS_RETRY_PENDING)
            self.assertEqual(t.error_message, 'Batch transfer failed: Transfer reversed')
            self.assertEqual(t.retry_count, 0)
        self.single.refresh_from_db()
        self.assertEqual(self.single.status, DetailerTransfer.STATUS_PROCESSING)

    @mock.patch(RETRIEVE)
    def test_individual_failure_reason_captured(self, retrieve):
        retrieve.side_effect = lambda tid: (
            snapshot(tid, status='failed', failure_reason='account_closed') if tid == 'tr_single'
            else snapshot(tid, status='pending')
        )

        sync_transfer_status()

        self.single.refresh_from_db()
        self.assertEqual(self.single.status, DetailerTransfer.STATUS_RETRY_PENDING)
        self.assertEqual(self.single.error_message, 'account_closed')

    @mock.patch(RETRIEVE)
    def test_failure_after_last_attempt_is_terminal(self, retrieve):
        DetailerTransfer.objects.filter(pk=self.single.pk).update(retry_count=3)
        retrieve.side_effect = lambda tid: (
            snapshot(tid, status='failed', failure_reason='account_closed') if tid == 'tr_single'
            else snapshot(tid, status='pending')
        )

        sync_transfer_status()

        self.single.refresh_from_db()
        self.assertEqual(self.single.status, DetailerTransfer.STATUS_FAILED)
        self.assertTrue(self.single.error_message.startswith('Max retries reached'))

    @mock.patch(RETRIEVE)
    def test_unknown_status_changes_nothing(self, retrieve):
        retrieve.side_effect = lambda tid: snapshot(tid)

        with self.assertLogs('core.services.reconciliation', level='WARNING'):
            result = sync_transfer_status()

        self.assertEqual(result['transfers_updated'], 0)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.status, 'processing')
        self.single.refresh_from_db()
        self.assertEqual(self.single.status, DetailerTransfer.STATUS_PROCESSING)

    @override_settings(PAYOUTS_INFER_SETTLED_TRANSFERS=True)
    @mock.patch(RETRIEVE)
    def test_inferred_settlement_when_enabled(self, retrieve):
        retrieve.side_effect = lambda tid: snapshot(tid)

        result = sync_transfer_status()

        self.assertEqual(result['transfers_updated'], 3)
        self.single.refresh_from_db()
        self.assertEqual(self.single.status, DetailerTransfer.STATUS_SUCCEEDED)

    @mock.patch(RETRIEVE)
    def test_succeeded_record_never_regressed(self, retrieve):
        # Another job finished this one after targets were collected
        def settle_then_report_failure(tid):
            DetailerTransfer.objects.filter(pk=self.single.pk).update(status=DetailerTransfer.STATUS_SUCCEEDED)
            return snapshot(tid, status='failed')

        retrieve.side_effect = settle_then_report_failure

        sync_transfer_status()

        self.single.refresh_from_db()
        self.assertEqual(self.single.status, DetailerTransfer.STATUS_SUCCEEDED)

    @mock.patch(RETRIEVE)
    def test_lookup_errors_are_collected(self, retrieve):
        def flaky(tid):
            if tid == 'tr_batch':
                raise TransferError('Failed to retrieve Stripe transfer tr_batch: timeout')
            return snapshot(tid, status='paid')

        retrieve.side_effect = flaky

        result = sync_transfer_status()

        self.assertEqual(len(result['errors']), 1)
        self.assertIn(f'Batch {self.batch.pk}', result['errors'][0])
        self.single.refresh_from_db()
        self.assertEqual(self.single.status, DetailerTransfer.STATUS_SUCCEEDED)

    @mock.patch(RETRIEVE, side_effect=lambda tid: snapshot(tid, status='pending'))
    def test_stalled_attempts_reported(self, retrieve):
        stalled = make_transfer(
            self.detailer,
            status=DetailerTransfer.STATUS_PROCESSING,
            last_attempt_at=timezone.now() - timedelta(hours=3),
        )

        result = sync_transfer_status()

        self.assertTrue(any(f'Transfer {stalled.pk}' in e for e in result['errors']))

    @mock.patch(RETRIEVE, side_effect=lambda tid: snapshot(tid, status='pending'))
    def test_batches_stuck_pending_reported(self, retrieve):
        today = timezone.now().date()
        stuck = WeeklyPayoutBatch.objects.create(
            detailer=self.detailer,
            week_start_date=today - timedelta(days=9),
            week_end_date=today - timedelta(days=3),
            total_amount_cents=5000,
            total_transfers=1,
            status='pending',
        )
        WeeklyPayoutBatch.objects.filter(pk=stuck.pk).update(created_at=timezone.now() - timedelta(hours=3))
        fresh = WeeklyPayoutBatch.objects.create(
            detailer=self.detailer,
            week_start_date=today - timedelta(days=9),
            week_end_date=today - timedelta(days=3),
            status='pending',
        )

        result = sync_transfer_status()

        self.assertTrue(any(f'Batch {stuck.pk}: still pending' in e for e in result['errors']))
        self.assertFalse(any(f'Batch {fresh.pk}:' in e for e in result['errors']))
