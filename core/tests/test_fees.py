# core/tests/test_fees.py

from decimal import Decimal
from types import MappingProxyType

from django.test import TestCase, override_settings

from core.models import PlatformSetting
from core.services.fees import FeeConfig, compute_fee, load_fee_config
from core.tests.helpers import make_detailer


class ComputeFeeTests(TestCase):

    def test_percentage_model_default_rate(self):
        result = compute_fee(10000, 'percentage', detailer_id=1, config=FeeConfig())
        self.assertEqual(result.fee_cents, 1500)
        self.assertEqual(result.payout_cents, 8500)

    def test_detailer_override_wins(self):
        config = FeeConfig(per_detailer_overrides=MappingProxyType({7: Decimal('10')}))
        result = compute_fee(10000, 'percentage', detailer_id=7, config=config)
        self.assertEqual(result.fee_cents, 1000)
        self.assertEqual(result.payout_cents, 9000)

    def test_subscription_model_rate(self):
        result = compute_fee(10000, 'subscription', config=FeeConfig())
        self.assertEqual(result.fee_cents, 300)
        self.assertEqual(result.payout_cents, 9700)

    def test_zero_gross(self):
        result = compute_fee(0, 'percentage', config=FeeConfig())
        self.assertEqual((result.fee_cents, result.payout_cents), (0, 0))

    def test_half_cent_rounds_up(self):
        # 15% of 10 cents = 1.5
        result = compute_fee(10, 'percentage', config=FeeConfig())
        self.assertEqual(result.fee_cents, 2)
        self.assertEqual(result.payout_cents, 8)

    def test_fee_and_payout_add_back_to_gross(self):
        config = FeeConfig(per_detailer_overrides=MappingProxyType({3: Decimal('12.5')}))
        for gross in (1, 3, 33, 999, 4999, 123457):
            for model, detailer_id in (('percentage', None), ('subscription', None), ('percentage', 3)):
                result = compute_fee(gross, model, detailer_id, config)
                self.assertEqual(result.fee_cents + result.payout_cents, gross)

    def test_negative_gross_rejected(self):
        with self.assertRaises(ValueError):
            compute_fee(-1, 'percentage')


class LoadFeeConfigTests(TestCase):

    @override_settings(PLATFORM_FEE_PERCENTAGE_DEFAULT='20', SUBSCRIPTION_FEE_PERCENTAGE_DEFAULT='4', TRANSFER_MAX_RETRIES=5)
    def test_settings_defaults(self):
        config = load_fee_config()
        self.assertEqual(config.percentage_fee_default, Decimal('20'))
        self.assertEqual(config.subscription_fee_default, Decimal('4'))
        self.assertEqual(config.max_retries, 5)

    def test_platform_setting_overrides_settings(self):
        PlatformSetting.objects.create(key='platform_fee_percentage', value='12')
        PlatformSetting.objects.create(key='subscription_platform_fee_percentage', value='2.5')
        config = load_fee_config()
        self.assertEqual(config.percentage_fee_default, Decimal('12'))
        self.assertEqual(config.subscription_fee_default, Decimal('2.5'))

    def test_invalid_platform_setting_falls_back(self):
        PlatformSetting.objects.create(key='platform_fee_percentage', value='lots')
        with self.assertLogs('core.services.fees', level='ERROR'):
            config = load_fee_config()
        self.assertEqual(config.percentage_fee_default, Decimal('15'))

    def test_detailer_overrides_loaded(self):
        detailer = make_detailer(override=Decimal('10.00'))
        plain = make_detailer()
        config = load_fee_config()
        self.assertEqual(config.fee_percentage_for('percentage', detailer.pk), Decimal('10.00'))
        self.assertEqual(config.fee_percentage_for('percentage', plain.pk), Decimal('15'))
        with self.assertRaises(TypeError):
            config.per_detailer_overrides[plain.pk] = Decimal('1')

    def test_out_of_range_override_uses_pricing_model_default(self):
        detailer = make_detailer(pricing_model='subscription', override=Decimal('150.00'))
        with self.assertLogs('core.services.fees', level='ERROR'):
            config = load_fee_config()
        self.assertNotIn(detailer.pk, config.per_detailer_overrides)
        result = compute_fee(10000, 'subscription', detailer.pk, config)
        self.assertEqual(result.fee_percentage, Decimal('3'))
        self.assertEqual(result.fee_cents, 300)
