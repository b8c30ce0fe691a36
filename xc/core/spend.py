"""
Spend aggregation over usage ledger entries.

Two notions of "recent": rolling windows measured back from now (used for
display), and the calendar day starting at local midnight (used by the
budget gate).
"""

from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from xc.storage.models import UsageEntry
from .pricing import format_currency

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)
WEEK = timedelta(days=7)
MONTH = timedelta(days=30)


def _now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now().astimezone()
    if now.tzinfo is None:
        return now.astimezone()
    return now


def _sum_since(entries: Iterable[UsageEntry], cutoff: datetime) -> float:
    # Decimal keeps sums of cent fractions exact for boundary comparisons
    total = Decimal("0")
    for entry in entries:
        if entry.timestamp >= cutoff:
            total += Decimal(str(entry.estimated_cost))
    return float(total)


def compute_spend(
    entries: Iterable[UsageEntry],
    window: timedelta,
    now: Optional[datetime] = None
) -> float:
    """Sum estimated cost of entries with timestamp >= now - window."""
    return _sum_since(entries, _now(now) - window)


def local_midnight(now: Optional[datetime] = None) -> datetime:
    """Start of the current calendar day in the local time zone."""
    # midnight may carry a different UTC offset than now across a DST change
    local = _now(now).astimezone()
    return datetime.combine(local.date(), time()).astimezone()


def compute_today_spend(entries: Iterable[UsageEntry], now: Optional[datetime] = None) -> float:
    """Sum estimated cost of entries at or after local midnight today."""
    return _sum_since(entries, local_midnight(now))


def format_cost_footer(entries: Iterable[UsageEntry], now: Optional[datetime] = None) -> str:
    """Compact 1h/24h/7d/30d spend line, or "" when nothing is recorded."""
    entries = list(entries)
    if not entries:
        return ""
    now = _now(now)
    parts = [
        f"{format_currency(compute_spend(entries, window, now))} ({label})"
        for window, label in ((HOUR, "1h"), (DAY, "24h"), (WEEK, "7d"), (MONTH, "30d"))
    ]
    return "Cost: " + " · ".join(parts)
