"""
Derived display attributes of a banner.

Nothing here touches the database: status and text colour are computed
on read and never stored.
"""

from datetime import datetime
from typing import Optional, Tuple

from backoffice.app.core.clock import ensure_utc
from backoffice.app.models.enums import BannerStatus

# Perceived luminance above this needs dark text
LUMINANCE_THRESHOLD = 0.6


def derive_status(banner, now: datetime) -> BannerStatus:
    """
    expired   -> ends_at set and already passed
    scheduled -> starts_at in the future
    otherwise active / inactive from the is_active flag
    """
    ends_at = ensure_utc(banner.ends_at)
    starts_at = ensure_utc(banner.starts_at)

    if ends_at is not None and ends_at < now:
        return BannerStatus.EXPIRED
    if starts_at is not None and starts_at > now:
        return BannerStatus.SCHEDULED
    return BannerStatus.ACTIVE if banner.is_active else BannerStatus.INACTIVE


def parse_hex(color: Optional[str]) -> Optional[Tuple[int, int, int]]:
    if not color:
        return None
    value = color.strip().lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    if len(value) != 6:
        return None
    try:
        return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)
    except ValueError:
        return None


def luminance(color: Optional[str]) -> Optional[float]:
    rgb = parse_hex(color)
    if rgb is None:
        return None
    r, g, b = rgb
    return (0.299 * r + 0.587 * g + 0.114 * b) / 255


def contrast_text_color(color: Optional[str]) -> str:
    """'dark' on light backgrounds, 'light' otherwise (and for malformed input)."""
    value = luminance(color)
    if value is None:
        return "light"
    return "dark" if value > LUMINANCE_THRESHOLD else "light"


def gradient_text_color(start: Optional[str], end: Optional[str]) -> str:
    """Text colour for a two-stop gradient, using the average luminance."""
    first = luminance(start)
    second = luminance(end)
    if first is None or second is None:
        return "light"
    return "dark" if (first + second) / 2 > LUMINANCE_THRESHOLD else "light"
