"""
Daily volume and wear-loss statistics.

This module groups filled orders by trading day (08:00 boundary) and
computes the figures the rewards programme cares about: how much was
bought and sold, and how much the round trips cost ("wear-loss").

Every running sum is rounded to 8 decimal places after each addition,
so a day with hundreds of small trades gives the same result as the
exchange's own rounding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from ..execution.models import OrderSide, TradeRecord
from ..utils.numbers import round8
from ..utils.timeutils import trading_day

ZERO = Decimal("0")


@dataclass
class DailyStats:
    """Aggregated trades of one trading day.

    ``wear_loss`` and ``wear_loss_percentage`` stay zero unless the day
    has both buy and sell trades.
    """
    day: date
    total_buy_volume: Decimal = ZERO
    total_sell_volume: Decimal = ZERO
    total_buy_value: Decimal = ZERO
    total_sell_value: Decimal = ZERO
    wear_loss: Decimal = ZERO
    wear_loss_percentage: Decimal = ZERO
    trade_count: int = 0
    buy_trades: List[TradeRecord] = field(default_factory=list)
    sell_trades: List[TradeRecord] = field(default_factory=list)

    def add(self, record: TradeRecord) -> None:
        self.trade_count += 1
        if record.side is OrderSide.BUY:
            self.buy_trades.append(record)
            self.total_buy_volume = round8(self.total_buy_volume + record.filled_volume)
            self.total_buy_value = round8(self.total_buy_value + record.total_value)
        else:
            self.sell_trades.append(record)
            self.total_sell_volume = round8(self.total_sell_volume + record.filled_volume)
            self.total_sell_value = round8(self.total_sell_value + record.total_value)

    def finalize(self) -> None:
        """Compute wear-loss once all trades are added."""
        if not self.buy_trades or not self.sell_trades:
            return
        self.wear_loss = round8(self.total_buy_value - self.total_sell_value)
        if self.total_buy_value > 0:
            self.wear_loss_percentage = round8(self.wear_loss / self.total_buy_value * 100)

    @property
    def avg_buy_price(self) -> Decimal:
        if self.total_buy_volume <= 0:
            return ZERO
        return round8(self.total_buy_value / self.total_buy_volume)

    @property
    def avg_sell_price(self) -> Decimal:
        if self.total_sell_volume <= 0:
            return ZERO
        return round8(self.total_sell_value / self.total_sell_volume)

    @property
    def avg_buy_value(self) -> Decimal:
        """Average quote value per buy trade."""
        if not self.buy_trades:
            return ZERO
        return round8(self.total_buy_value / len(self.buy_trades))

    def summary(self) -> dict:
        """Plain-type summary for JSON output."""
        return {
            'trading_day': self.day.isoformat(),
            'trade_count': self.trade_count,
            'buy_count': len(self.buy_trades),
            'sell_count': len(self.sell_trades),
            'total_buy_volume': str(self.total_buy_volume),
            'total_sell_volume': str(self.total_sell_volume),
            'total_buy_value': str(self.total_buy_value),
            'total_sell_value': str(self.total_sell_value),
            'avg_buy_price': str(self.avg_buy_price),
            'avg_sell_price': str(self.avg_sell_price),
            'avg_buy_value': str(self.avg_buy_value),
            'wear_loss': str(self.wear_loss),
            'wear_loss_percentage': str(self.wear_loss_percentage),
        }


def bucket_by_trading_day(records: Iterable[TradeRecord]) -> Dict[date, DailyStats]:
    """Group records into finalized `DailyStats` keyed by trading day."""
    buckets: Dict[date, DailyStats] = {}
    for record in records:
        day = trading_day(record.time)
        if day not in buckets:
            buckets[day] = DailyStats(day)
        buckets[day].add(record)
    for stats in buckets.values():
        stats.finalize()
    return buckets


def compute_daily_stats(records: Iterable[TradeRecord], day: date) -> DailyStats:
    """Statistics of a single trading day.  Empty stats if nothing traded."""
    stats = bucket_by_trading_day(records).get(day)
    if stats is None:
        stats = DailyStats(day)
    return stats
