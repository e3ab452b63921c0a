import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from datetime import date, datetime
from decimal import Decimal

import pandas as pd

from alpha_volume.execution.models import OrderSide, TradeRecord
from alpha_volume.reporting.metrics import bucket_by_trading_day, compute_daily_stats
from alpha_volume.utils.timeutils import current_trading_day, parse_local_timestamp, trading_day

import unittest


def record(ts: str, side: OrderSide, volume: str, total: str) -> TradeRecord:
    return TradeRecord(
        time=pd.Timestamp(ts),
        side=side,
        filled_volume=Decimal(volume),
        price=Decimal(total) / Decimal(volume),
        total_value=Decimal(total),
        status="已成交",
    )


class TestTradingDay(unittest.TestCase):
    def test_boundary_is_eight_am(self) -> None:
        self.assertEqual(trading_day(datetime(2024, 12, 20, 7, 59, 59)), date(2024, 12, 19))
        self.assertEqual(trading_day(datetime(2024, 12, 20, 8, 0, 0)), date(2024, 12, 20))
        self.assertEqual(trading_day(pd.Timestamp("2024-12-20 23:59:59")), date(2024, 12, 20))

    def test_current_trading_day_uses_given_clock(self) -> None:
        self.assertEqual(current_trading_day(datetime(2025, 1, 1, 3, 0)), date(2024, 12, 31))

    def test_parse_local_timestamp(self) -> None:
        self.assertEqual(parse_local_timestamp(" 2024-12-19 07:59:12 "), pd.Timestamp("2024-12-19 07:59:12"))
        self.assertIsNone(parse_local_timestamp("--"))
        self.assertIsNone(parse_local_timestamp("创建时间"))
        self.assertIsNone(parse_local_timestamp(""))


class TestDailyStats(unittest.TestCase):
    def test_wear_loss_of_a_round_trip(self) -> None:
        stats = compute_daily_stats([
            record("2024-12-20 09:00:00", OrderSide.BUY, "10", "500"),
            record("2024-12-20 09:01:00", OrderSide.SELL, "10", "498.5"),
        ], date(2024, 12, 20))
        self.assertEqual(str(stats.wear_loss), "1.50000000")
        self.assertEqual(str(stats.wear_loss_percentage), "0.30000000")
        self.assertEqual(stats.trade_count, 2)
        self.assertEqual(stats.avg_buy_price, Decimal("50"))
        self.assertEqual(stats.avg_sell_price, Decimal("49.85"))

    def test_wear_loss_needs_both_sides(self) -> None:
        stats = compute_daily_stats([
            record("2024-12-20 09:00:00", OrderSide.BUY, "10", "500"),
        ], date(2024, 12, 20))
        self.assertEqual(stats.total_buy_value, Decimal("500"))
        self.assertEqual(stats.wear_loss, Decimal("0"))
        self.assertEqual(stats.wear_loss_percentage, Decimal("0"))

    def test_trades_before_eight_belong_to_previous_day(self) -> None:
        records = [
            record("2024-12-20 07:59:00", OrderSide.BUY, "1", "48"),
            record("2024-12-20 08:00:00", OrderSide.BUY, "2", "96"),
            record("2024-12-20 08:00:30", OrderSide.SELL, "2", "95.9"),
        ]
        buckets = bucket_by_trading_day(records)
        self.assertEqual(sorted(buckets), [date(2024, 12, 19), date(2024, 12, 20)])
        self.assertEqual(buckets[date(2024, 12, 19)].total_buy_volume, Decimal("1"))
        self.assertEqual(buckets[date(2024, 12, 20)].wear_loss, Decimal("0.1"))

    def test_sums_are_rounded_after_every_addition(self) -> None:
        records = [record("2024-12-20 09:00:00", OrderSide.BUY, "1", "0.000000005")] * 3
        stats = compute_daily_stats(records, date(2024, 12, 20))
        # each addition rounds half-up: 0.00000001, 0.00000002, 0.00000003
        self.assertEqual(stats.total_buy_value, Decimal("0.00000003"))

    def test_day_without_trades(self) -> None:
        stats = compute_daily_stats([], date(2024, 12, 20))
        self.assertEqual(stats.trade_count, 0)
        self.assertEqual(stats.avg_buy_value, Decimal("0"))
        self.assertEqual(stats.summary()["wear_loss"], "0")


if __name__ == '__main__':
    unittest.main()
