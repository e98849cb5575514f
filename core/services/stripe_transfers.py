# core/services/stripe_transfers.py

"""
Thin wrapper around Stripe Connect transfers.

Every Stripe failure (API error, network error, timeout) is re-raised as
TransferError so callers have exactly one exception type to map onto
retry_pending / failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
from django.conf import settings

from core.exceptions import TransferError

logger = logging.getLogger(__name__)

# Stripe reports settled transfers with one of these (older API versions, payouts)
SETTLED_STATUSES = {"paid", "succeeded"}
FAILED_STATUSES = {"failed", "canceled", "cancelled", "reversed"}

RESOLVED_SUCCEEDED = "succeeded"
RESOLVED_FAILED = "failed"
RESOLVED_UNKNOWN = "unknown"


def _configure_stripe() -> None:
    key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not key:
        raise TransferError("Stripe not configured", code="not_configured")
    stripe.api_key = key
    stripe.api_version = getattr(settings, "STRIPE_API_VERSION", None) or stripe.api_version
    stripe.max_network_retries = 0
    timeout = int(getattr(settings, "STRIPE_TIMEOUT_SECONDS", 30))
    stripe.default_http_client = stripe.RequestsClient(timeout=timeout)


@dataclass(frozen=True)
class TransferSnapshot:
    transfer_id: str
    status: Optional[str]
    amount: int
    reversed: bool
    amount_reversed: int
    failure_reason: Optional[str]

    def resolve(self, infer_settled: bool = False) -> str:
        """
        Map the processor view onto succeeded / failed / unknown.

        A reversal always wins. An absent or unrecognised status is unknown unless
        infer_settled is on, in which case a non-reversed transfer with a positive
        amount counts as settled.
        """
        if self.reversed or self.amount_reversed > 0:
            return RESOLVED_FAILED

        status = (self.status or "").strip().lower()
        if status in SETTLED_STATUSES:
            return RESOLVED_SUCCEEDED
        if status in FAILED_STATUSES:
            return RESOLVED_FAILED

        if not status and infer_settled and self.amount > 0:
            return RESOLVED_SUCCEEDED
        return RESOLVED_UNKNOWN

    @property
    def failure_message(self) -> str:
        if self.failure_reason:
            return self.failure_reason
        if self.reversed or self.amount_reversed > 0:
            return "Transfer reversed"
        return "Transfer failed"


def execute_transfer(
    *,
    destination: str,
    amount_cents: int,
    metadata: Dict[str, Any],
    currency: str | None = None,
    idempotency_key: str | None = None,
) -> str:
    """
    Create a Stripe transfer to a connected account and return its id.
    Only acceptance is confirmed here; settlement is checked by the reconciler.
    """
    destination = (destination or "").strip()
    if not destination:
        raise TransferError("No payout destination", code="no_destination")
    if int(amount_cents) <= 0:
        raise TransferError("Transfer amount must be > 0", code="invalid_amount")

    _configure_stripe()
    currency_l = (currency or getattr(settings, "PAYOUT_CURRENCY", "cad")).lower()

    params: Dict[str, Any] = {
        "amount": int(amount_cents),
        "currency": currency_l,
        "destination": destination,
        "metadata": {k: str(v) for k, v in (metadata or {}).items()},
    }
    if idempotency_key:
        params["idempotency_key"] = idempotency_key

    try:
        tr = stripe.Transfer.create(**params)
    except stripe.error.StripeError as e:
        message = getattr(e, "user_message", None) or str(e) or "Unknown Stripe error"
        logger.error(f"Stripe transfer to {destination} for {amount_cents} failed: {message}")
        raise TransferError(message, code=getattr(e, "code", None)) from e

    logger.info(f"Stripe transfer {tr.id} created: {amount_cents} {currency_l} -> {destination}")
    return tr.id


def retrieve_transfer(transfer_id: str) -> TransferSnapshot:
    transfer_id = (transfer_id or "").strip()
    if not transfer_id:
        raise TransferError("Missing transfer id", code="missing_id")

    _configure_stripe()
    try:
        tr = stripe.Transfer.retrieve(transfer_id)
    except stripe.error.StripeError as e:
        message = getattr(e, "user_message", None) or str(e) or "Unknown Stripe error"
        raise TransferError(f"Failed to retrieve Stripe transfer {transfer_id}: {message}", code=getattr(e, "code", None)) from e

    return TransferSnapshot(
        transfer_id=tr.get("id") or transfer_id,
        status=tr.get("status"),
        amount=int(tr.get("amount") or 0),
        reversed=bool(tr.get("reversed")),
        amount_reversed=int(tr.get("amount_reversed") or 0),
        failure_reason=tr.get("failure_message") or tr.get("failure_code"),
    )
