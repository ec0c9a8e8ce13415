"""
Pricing workbench arithmetic.

These figures are shown to the merchant while pricing; the stored request
totals come from the same functions.
"""

import math
from datetime import datetime
from typing import Iterable, Optional

from backoffice.app.core.clock import ensure_utc
from backoffice.app.models.enums import ItemAvailabilityStatus
from backoffice.app.schemas.custom_order import PricingSummary, TimeRemaining

# (upper bound of subtotal, rate)
COMMISSION_TIERS = ((100.0, 0.07), (300.0, 0.06))
TOP_TIER_RATE = 0.05


def line_total(quantity: Optional[float], unit_price: Optional[float]) -> float:
    return round((quantity or 0) * (unit_price or 0), 2)


def substitute_total(item) -> Optional[float]:
    if item.substitute_quantity is None or item.substitute_unit_price is None:
        return None
    return line_total(item.substitute_quantity, item.substitute_unit_price)


def item_display_name(item) -> str:
    return ((item.item_name_ar or "").strip() or (item.item_name_en or "").strip())


def effective_line_total(item) -> float:
    """Substituted items are charged at the substitute's price when one is given."""
    if item.availability_status == ItemAvailabilityStatus.SUBSTITUTED:
        replacement = substitute_total(item)
        if replacement is not None:
            return replacement
    return line_total(item.quantity, item.unit_price)


def is_billable(item) -> bool:
    return bool(item_display_name(item)) and item.availability_status != ItemAvailabilityStatus.UNAVAILABLE


def commission_rate(subtotal: float) -> float:
    for ceiling, rate in COMMISSION_TIERS:
        if subtotal <= ceiling:
            return rate
    return TOP_TIER_RATE


def summarize(items: Iterable, delivery_fee: float = 0.0) -> PricingSummary:
    billable = [item for item in items if is_billable(item)]
    subtotal = round(sum(effective_line_total(item) for item in billable), 2)
    total = round(subtotal + (delivery_fee or 0.0), 2)
    rate = commission_rate(subtotal)
    commission = round(subtotal * rate, 2)

    return PricingSummary(
        items_count=len(billable),
        subtotal=subtotal,
        delivery_fee=round(delivery_fee or 0.0, 2),
        total=total,
        commission_rate=rate,
        commission=commission,
        net_profit=round(total - commission, 2),
    )


def format_countdown(seconds: int) -> str:
    hours, remainder = divmod(max(seconds, 0), 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def time_remaining(expires_at: Optional[datetime], now: datetime) -> TimeRemaining:
    """Seconds left until the pricing deadline, never negative."""
    expires_at = ensure_utc(expires_at)
    if expires_at is None:
        return TimeRemaining(seconds=0, expired=False, display=format_countdown(0))

    seconds = max(math.ceil((expires_at - now).total_seconds()), 0)
    return TimeRemaining(seconds=seconds, expired=seconds == 0, display=format_countdown(seconds))
