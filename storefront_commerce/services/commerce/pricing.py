"""
Pricing helpers: currency rounding, order totals and seat proration.

All amounts are ``Decimal`` and all datetimes are timezone aware UTC.
"""

import calendar
import math
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from storefront_commerce.models import PurchaseLineItemWithOffer

CENT = Decimal("0.01")
DAYS_PER_YEAR = 365


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def round_currency(amount: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_order_total(line_items: Iterable[PurchaseLineItemWithOffer]) -> Decimal:
    return round_currency(sum((item.line_total for item in line_items), Decimal("0")))


def remaining_billable_days(expiry_date: datetime, now: datetime) -> int:
    """Whole days left until expiry, rounded up and clamped to [0, 365]."""
    remaining = (ensure_utc(expiry_date) - ensure_utc(now)) / timedelta(days=1)
    return min(DAYS_PER_YEAR, max(0, math.ceil(remaining)))


def calculate_prorated_seat_charge(
    expiry_date: datetime, yearly_rate_per_seat: Decimal, now: datetime
) -> Decimal:
    """
    Charge for one seat from ``now`` until ``expiry_date``. Not rounded.

    Example:
        >>> now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> calculate_prorated_seat_charge(now + timedelta(days=100), Decimal("365"), now)
        Decimal('100')
    """
    days = remaining_billable_days(expiry_date, now)
    return days * Decimal(yearly_rate_per_seat) / DAYS_PER_YEAR


def is_expired(expiry_date: datetime, now: datetime) -> bool:
    """A subscription is expired once its UTC expiry date is before today's UTC date."""
    return ensure_utc(expiry_date).date() < ensure_utc(now).date()


def add_years(value: datetime, years: int) -> datetime:
    """Same moment ``years`` later; Feb 29 becomes Feb 28 in non leap years."""
    target_year = value.year + years
    if value.month == 2 and value.day == 29 and not calendar.isleap(target_year):
        return value.replace(year=target_year, day=28)
    return value.replace(year=target_year)
