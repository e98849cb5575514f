# core/tests/test_stripe_transfers.py

from unittest import mock

import stripe
from django.test import SimpleTestCase, override_settings

from core.exceptions import TransferError
from core.services.stripe_transfers import (
    RESOLVED_FAILED,
    RESOLVED_SUCCEEDED,
    RESOLVED_UNKNOWN,
    TransferSnapshot,
    execute_transfer,
    retrieve_transfer,
)


def snapshot(**kwargs):
    values = {
        'transfer_id': 'tr_1',
        'status': None,
        'amount': 1000,
        'reversed': False,
        'amount_reversed': 0,
        'failure_reason': None,
    }
    values.update(kwargs)
    return TransferSnapshot(**values)


class TransferSnapshotTests(SimpleTestCase):

    def test_paid_is_succeeded(self):
        self.assertEqual(snapshot(status='paid').resolve(), RESOLVED_SUCCEEDED)

    def test_reversal_wins_over_paid(self):
        self.assertEqual(snapshot(status='paid', reversed=True).resolve(), RESOLVED_FAILED)
        self.assertEqual(snapshot(amount_reversed=500).resolve(), RESOLVED_FAILED)

    def test_canceled_is_failed(self):
        self.assertEqual(snapshot(status='canceled').resolve(), RESOLVED_FAILED)

    def test_unrecognised_status_is_unknown(self):
        self.assertEqual(snapshot(status='in_transit').resolve(), RESOLVED_UNKNOWN)
        self.assertEqual(snapshot(status='in_transit').resolve(infer_settled=True), RESOLVED_UNKNOWN)

    def test_missing_status_only_inferred_when_enabled(self):
        self.assertEqual(snapshot().resolve(), RESOLVED_UNKNOWN)
        self.assertEqual(snapshot().resolve(infer_settled=True), RESOLVED_SUCCEEDED)
        self.assertEqual(snapshot(amount=0).resolve(infer_settled=True), RESOLVED_UNKNOWN)

    def test_failure_message(self):
        self.assertEqual(snapshot(failure_reason='account_closed').failure_message, 'account_closed')
        self.assertEqual(snapshot(reversed=True).failure_message, 'Transfer reversed')


@override_settings(STRIPE_SECRET_KEY='sk_test_123', PAYOUT_CURRENCY='cad')
class ExecuteTransferTests(SimpleTestCase):

    @mock.patch('core.services.stripe_transfers.stripe.Transfer.create')
    def test_creates_transfer(self, create):
        create.return_value = mock.Mock(id='tr_abc')

        result = execute_transfer(
            destination='acct_1',
            amount_cents=8500,
            metadata={'booking_id': 5},
            idempotency_key='transfer-1-attempt-0-1',
        )

        self.assertEqual(result, 'tr_abc')
        create.assert_called_once_with(
            amount=8500,
            currency='cad',
            destination='acct_1',
            metadata={'booking_id': '5'},
            idempotency_key='transfer-1-attempt-0-1',
        )

    @mock.patch('core.services.stripe_transfers.stripe.Transfer.create')
    def test_stripe_error_becomes_transfer_error(self, create):
        create.side_effect = stripe.error.APIConnectionError('Request timed out')

        with self.assertRaises(TransferError) as ctx:
            execute_transfer(destination='acct_1', amount_cents=100, metadata={})

        self.assertIn('timed out', str(ctx.exception))

    @mock.patch('core.services.stripe_transfers.stripe.Transfer.create')
    def test_rejects_bad_input_without_calling_stripe(self, create):
        with self.assertRaises(TransferError):
            execute_transfer(destination='', amount_cents=100, metadata={})
        with self.assertRaises(TransferError):
            execute_transfer(destination='acct_1', amount_cents=0, metadata={})
        create.assert_not_called()

    @override_settings(STRIPE_SECRET_KEY='')
    def test_not_configured(self):
        with self.assertRaises(TransferError) as ctx:
            execute_transfer(destination='acct_1', amount_cents=100, metadata={})
        self.assertEqual(ctx.exception.code, 'not_configured')


@override_settings(STRIPE_SECRET_KEY='sk_test_123')
class RetrieveTransferTests(SimpleTestCase):

    @mock.patch('core.services.stripe_transfers.stripe.Transfer.retrieve')
    def test_snapshot_fields(self, retrieve):
        retrieve.return_value = {
            'id': 'tr_9',
            'amount': 2700,
            'reversed': True,
            'amount_reversed': 2700,
        }

        result = retrieve_transfer('tr_9')

        self.assertEqual(result.transfer_id, 'tr_9')
        self.assertIsNone(result.status)
        self.assertTrue(result.reversed)
        self.assertEqual(result.resolve(), RESOLVED_FAILED)

    @mock.patch('core.services.stripe_transfers.stripe.Transfer.retrieve')
    def test_error_wrapped(self, retrieve):
        retrieve.side_effect = stripe.error.InvalidRequestError('No such transfer', param='id')
        with self.assertRaises(TransferError):
            retrieve_transfer('tr_missing')
