"""Price-change detection against previously stored subscriptions."""

from __future__ import annotations

import calendar
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from .constants import FREQUENCY_MONTHS
from .models import PriceChange, SubscriptionCandidate, SubscriptionRecord

_CENTS = Decimal("0.01")


def add_months(value: datetime, months: int) -> datetime:
    """Shift ``value`` by whole months, clamping to the last day of the month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def detect_price_change(
    user_id: str,
    candidate: SubscriptionCandidate,
    previous: SubscriptionRecord | None,
) -> PriceChange | None:
    """Compare a new candidate with the stored record for the same provider.

    Returns None for a first detection, when either price is unknown, or
    when the price did not move.
    """
    if previous is None or previous.user_id != user_id or previous.provider != candidate.provider:
        return None
    if previous.price is None or candidate.price is None:
        return None

    old_price = Decimal(previous.price)
    new_price = Decimal(candidate.price)
    if old_price == new_price:
        return None

    change = new_price - old_price
    percentage = None
    if old_price != 0:
        percentage = (change / old_price * 100).quantize(_CENTS, rounding=ROUND_HALF_UP)

    months = FREQUENCY_MONTHS.get(candidate.frequency, 1)
    billed_at = candidate.message_date or candidate.detected_at
    return PriceChange(
        provider=candidate.provider,
        old_price=old_price,
        new_price=new_price,
        change=change.quantize(_CENTS, rounding=ROUND_HALF_UP),
        percentage_change=percentage,
        frequency_months=months,
        next_renewal_date=add_months(billed_at, months).isoformat(),
    )
