# core/utils/money.py


from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP

ZERO_DECIMAL_CURRENCIES = {
    "BIF","CLP","DJF","GNF","JPY","KMF","KRW","MGA","PYG","RWF","UGX","VND","VUV","XAF","XOF","XPF",
}

def currency_exponent(currency: str) -> int:
    c = (currency or "CAD").upper().strip()
    return 0 if c in ZERO_DECIMAL_CURRENCIES else 2

def to_minor_units(amount: Decimal, currency: str) -> int:
    """
    Stripe expects integer minor units.
    For 0-decimal currencies, minor units == major units.
    """
    exp = currency_exponent(currency)
    amt = Decimal(str(amount))

    if exp == 0:
        return int(amt.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return int((amt * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def percentage_of_minor(amount_minor: int, percentage: Decimal) -> int:
    """Round-half-up share of an integer minor-unit amount."""
    share = Decimal(int(amount_minor)) * Decimal(str(percentage)) / Decimal("100")
    return int(share.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
