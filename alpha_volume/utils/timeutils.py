"""
Trading-day utilities.

The exchange accounts volume per trading day, and its day does not
start at midnight: it starts at 08:00 local time.  Everything traded
between midnight and 07:59 still belongs to the previous day.  All
code that groups trades by day goes through `trading_day()` so the
boundary is applied in exactly one place.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional
import pandas as pd

# Fixed business rule of the exchange, not configurable
TRADING_DAY_START = time(hour=8, minute=0)


def trading_day(ts: datetime) -> date:
    """Return the trading day a local timestamp belongs to.

    Parameters
    ----------
    ts : datetime or pandas.Timestamp
        Naive local time as displayed by the exchange.  Timezone-aware
        values are compared on their wall-clock time.

    Returns
    -------
    datetime.date
        ``ts.date()`` from 08:00 onwards, the day before otherwise.
    """
    if ts.time() < TRADING_DAY_START:
        return ts.date() - timedelta(days=1)
    return ts.date()


def current_trading_day(now: Optional[datetime] = None) -> date:
    """Return today's trading day, using the local clock if `now` is omitted."""
    return trading_day(now if now is not None else datetime.now())


def parse_local_timestamp(text: str) -> Optional[pd.Timestamp]:
    """Parse a history timestamp such as ``2024-12-19 07:59:12``.

    Returns `None` when the text is not a timestamp.  Only strings that
    start with a ``YYYY-MM-DD`` date are considered.
    """
    text = (text or "").strip()
    if len(text) < 10 or not (text[:4].isdigit() and text[4] == "-" and text[5:7].isdigit()
                              and text[7] == "-" and text[8:10].isdigit()):
        return None
    try:
        ts = pd.Timestamp(text)
    except (ValueError, TypeError):
        return None
    if pd.isna(ts):
        return None
    return ts
