# core/tests/test_commands.py

from io import StringIO
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from core.tasks import (
    process_detailer_transfer_task,
    retry_failed_transfers_task,
    run_weekly_payouts_task,
    sync_transfer_status_task,
)
from core.tests.helpers import make_booking, make_detailer


class CommandTests(TestCase):

    @mock.patch('core.management.commands.run_weekly_payouts.run_weekly_payouts')
    def test_run_weekly_payouts(self, run):
        run.return_value = {
            'success': True,
            'week_start': '2024-05-06',
            'week_end': '2024-05-12',
            'batches_created': 2,
            'transfers_processed': 5,
            'total_amount_cents': 42000,
            'errors': ['Detailer 9: Stripe error: Account restricted'],
        }
        out, err = StringIO(), StringIO()

        call_command('run_weekly_payouts', '--now', '2024-05-15T09:00:00', stdout=out, stderr=err)

        self.assertIn('batches_created=2', out.getvalue())
        self.assertIn('Account restricted', err.getvalue())
        now = run.call_args.kwargs['now']
        self.assertEqual(now.date().isoformat(), '2024-05-15')
        self.assertIsNotNone(now.tzinfo)

    @mock.patch('core.management.commands.retry_failed_transfers.retry_failed_transfers')
    def test_retry_failed_transfers(self, retry):
        retry.return_value = {'success': True, 'retried': 1, 'dispatched': 1, 'exhausted': 0, 'ineligible': 0, 'skipped': 0}
        out = StringIO()
        call_command('retry_failed_transfers', '--limit', '10', stdout=out)
        retry.assert_called_once_with(limit=10)
        self.assertIn('dispatched=1', out.getvalue())

    @mock.patch('core.management.commands.sync_transfer_status.sync_transfer_status')
    def test_sync_transfer_status(self, sync):
        sync.return_value = {'success': True, 'batches_checked': 1, 'transfers_checked': 3, 'transfers_updated': 3}
        out = StringIO()
        call_command('sync_transfer_status', stdout=out)
        self.assertIn('transfers_updated=3', out.getvalue())

    def test_process_detailer_transfer_unknown_booking(self):
        with self.assertRaises(CommandError):
            call_command('process_detailer_transfer', '999999', stdout=StringIO())

    @mock.patch('core.services.stripe_transfers.execute_transfer', return_value='tr_cmd')
    def test_process_detailer_transfer(self, execute):
        booking = make_booking(make_detailer(account='acct_cmd'))
        out = StringIO()
        call_command('process_detailer_transfer', str(booking.pk), stdout=out)
        self.assertIn('tr_cmd', out.getvalue())


class TaskTests(TestCase):

    @mock.patch('core.services.weekly_batches.run_weekly_payouts', return_value={'success': True})
    def test_weekly_task(self, run):
        self.assertEqual(run_weekly_payouts_task(), {'success': True})
        run.assert_called_once_with()

    @mock.patch('core.services.retries.retry_failed_transfers', return_value={'success': True})
    def test_retry_task(self, retry):
        self.assertEqual(retry_failed_transfers_task(), {'success': True})

    @mock.patch('core.services.reconciliation.sync_transfer_status', return_value={'success': True})
    def test_sync_task(self, sync):
        self.assertEqual(sync_transfer_status_task(), {'success': True})

    def test_detailer_transfer_task_missing_booking(self):
        result = process_detailer_transfer_task(999999)
        self.assertEqual(result, {'success': False, 'error': 'Booking not found'})
