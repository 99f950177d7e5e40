# services/ledger.py

"""
Money and commission arithmetic.

Amounts are ``Decimal`` quantized to paise (0.01) with ROUND_HALF_UP. Commission
is rounded exactly once, on the aggregate: summing the exact (unrounded)
per-order commissions and rounding gives the same cent value as rounding
``gross * rate``.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
DEFAULT_PLATFORM_RATE = Decimal('0.15')


def to_decimal(value):
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats like 0.15 don't carry binary noise
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Not a number: {value!r}") from e


def to_money(value):
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def effective_rate(vendor_rate, default_rate=DEFAULT_PLATFORM_RATE):
    """Vendor's own rate when set, else the platform default."""
    if vendor_rate is None:
        return to_decimal(default_rate)
    return to_decimal(vendor_rate)


def exact_commission(gross, rate):
    return to_decimal(gross) * to_decimal(rate)


def commission_for(gross, rate):
    return to_money(exact_commission(gross, rate))


def net_payout(gross, rate):
    return to_money(gross) - commission_for(gross, rate)


def summarize(amounts, rate):
    """
    Aggregate a set of order totals at one rate.

    Returns (count, gross, commission, net) where commission is
    round(gross * rate, 2) and net is gross - commission.
    """
    count = 0
    gross = Decimal('0')
    for amount in amounts:
        count += 1
        gross += to_decimal(amount)
    gross = to_money(gross)
    return count, gross, commission_for(gross, rate), net_payout(gross, rate)


def normalize_commission_rate(raw):
    """
    Turn an admin-entered rate into a stored fraction.

    Blank means "use the platform default" and returns None. Anything outside
    [0, 100] is clamped first; values above 1 are read as percentages.
    20 -> 0.20, 0.5 -> 0.5, 150 -> 1.0, -5 -> 0.0
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    if isinstance(raw, bool):
        raise ValueError("commission rate must be a number")
    rate = to_decimal(raw.strip() if isinstance(raw, str) else raw)
    if not rate.is_finite():
        raise ValueError("commission rate must be a finite number")

    if rate < 0:
        rate = Decimal('0')
    elif rate > 100:
        rate = Decimal('100')

    if rate > 1:
        rate = rate / Decimal('100')
    return rate.quantize(Decimal('0.0001'), rounding=ROUND_HALF_UP)
