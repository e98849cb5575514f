# core/services/fees.py

"""
Platform fee / detailer payout split for a completed booking.

All amounts are integer minor units (cents). The fee is rounded half-up and the
payout is always ``gross - fee`` so the two add back to the gross exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Mapping

from django.conf import settings

from core.utils.money import percentage_of_minor

logger = logging.getLogger(__name__)

PRICING_PERCENTAGE = "percentage"
PRICING_SUBSCRIPTION = "subscription"

PLATFORM_FEE_SETTING_KEY = "platform_fee_percentage"
SUBSCRIPTION_FEE_SETTING_KEY = "subscription_platform_fee_percentage"


@dataclass(frozen=True)
class FeeConfig:
    percentage_fee_default: Decimal = Decimal("15")
    subscription_fee_default: Decimal = Decimal("3")
    per_detailer_overrides: Mapping[int, Decimal] = field(default_factory=lambda: MappingProxyType({}))
    max_retries: int = 3

    def fee_percentage_for(self, pricing_model: str, detailer_id=None) -> Decimal:
        if detailer_id is not None and detailer_id in self.per_detailer_overrides:
            return self.per_detailer_overrides[detailer_id]
        if pricing_model == PRICING_SUBSCRIPTION:
            return self.subscription_fee_default
        return self.percentage_fee_default


@dataclass(frozen=True)
class FeeBreakdown:
    gross_cents: int
    fee_cents: int
    payout_cents: int
    fee_percentage: Decimal


def compute_fee(gross_cents: int, pricing_model: str, detailer_id=None, config: FeeConfig | None = None) -> FeeBreakdown:
    config = config or FeeConfig()
    gross = int(gross_cents)
    if gross < 0:
        raise ValueError("Gross amount must be >= 0")

    pct = config.fee_percentage_for(pricing_model, detailer_id)
    fee = percentage_of_minor(gross, pct)
    return FeeBreakdown(
        gross_cents=gross,
        fee_cents=fee,
        payout_cents=gross - fee,
        fee_percentage=pct,
    )


def _parse_percentage(raw, fallback: Decimal | None, name: str) -> Decimal | None:
    if raw is None or str(raw).strip() == "":
        return fallback
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        logger.error(f"Invalid fee percentage for {name}: {raw!r}. Using {fallback if fallback is not None else 'the pricing model default'}.")
        return fallback
    if value < 0 or value > 100:
        logger.error(f"Fee percentage for {name} out of range: {value}. Using {fallback if fallback is not None else 'the pricing model default'}.")
        return fallback
    return value


def load_fee_config() -> FeeConfig:
    """
    Resolve the fee configuration once: Django settings give the defaults,
    PlatformSetting rows override them, and detailers with an explicit
    platform_fee_percentage_override get their own rate.
    """
    from core.models import Detailer, PlatformSetting

    percentage_default = _parse_percentage(
        getattr(settings, "PLATFORM_FEE_PERCENTAGE_DEFAULT", "15"), Decimal("15"), "PLATFORM_FEE_PERCENTAGE_DEFAULT"
    )
    subscription_default = _parse_percentage(
        getattr(settings, "SUBSCRIPTION_FEE_PERCENTAGE_DEFAULT", "3"), Decimal("3"), "SUBSCRIPTION_FEE_PERCENTAGE_DEFAULT"
    )

    stored = dict(
        PlatformSetting.objects.filter(
            key__in=[PLATFORM_FEE_SETTING_KEY, SUBSCRIPTION_FEE_SETTING_KEY]
        ).values_list("key", "value")
    )
    percentage_default = _parse_percentage(stored.get(PLATFORM_FEE_SETTING_KEY), percentage_default, PLATFORM_FEE_SETTING_KEY)
    subscription_default = _parse_percentage(stored.get(SUBSCRIPTION_FEE_SETTING_KEY), subscription_default, SUBSCRIPTION_FEE_SETTING_KEY)

    overrides = {}
    for detailer_id, pct in Detailer.objects.filter(
        platform_fee_percentage_override__isnull=False
    ).values_list("id", "platform_fee_percentage_override"):
        value = _parse_percentage(pct, None, f"detailer {detailer_id}")
        # Invalid overrides fall through to the pricing model default
        if value is not None:
            overrides[detailer_id] = value

    return FeeConfig(
        percentage_fee_default=percentage_default,
        subscription_fee_default=subscription_default,
        per_detailer_overrides=MappingProxyType(overrides),
        max_retries=int(getattr(settings, "TRANSFER_MAX_RETRIES", 3)),
    )
