from __future__ import annotations

import logging
import math

from .market_data import Bar

logger = logging.getLogger("vnquant.ingestion.validation")

_PRICE_FIELDS = ("open", "high", "low", "close")


def check_bar(bar: Bar) -> tuple[str, float, str] | None:
    """
    Return (field, value, reason) for the first rule ``bar`` breaks, else None.
    """
    for name in _PRICE_FIELDS:
        value = getattr(bar, name)
        if value is None or not math.isfinite(value):
            return name, value, "price is not finite"
        if value <= 0:
            return name, value, "price must be positive"

    if bar.volume is None or not math.isfinite(bar.volume):
        return "volume", bar.volume, "volume is not finite"
    if bar.volume < 0:
        return "volume", bar.volume, "volume must be non-negative"

    if bar.high < bar.low:
        return "high", bar.high, f"high below low={bar.low}"
    if bar.high < bar.open:
        return "high", bar.high, f"high below open={bar.open}"
    if bar.high < bar.close:
        return "high", bar.high, f"high below close={bar.close}"
    if bar.low > bar.open:
        return "low", bar.low, f"low above open={bar.open}"
    if bar.low > bar.close:
        return "low", bar.low, f"low above close={bar.close}"
    return None


def validate_bar(bar: Bar) -> bool:
    problem = check_bar(bar)
    if problem is None:
        return True
    field, value, reason = problem
    logger.debug(
        "Rejected bar at %s: %s=%r (%s)",
        bar.timestamp,
        field,
        value,
        reason,
        extra={"event": "bar_rejected", "field": field, "value": value},
    )
    return False


def filter_valid_bars(bars: list[Bar]) -> list[Bar]:
    return [bar for bar in bars if validate_bar(bar)]
