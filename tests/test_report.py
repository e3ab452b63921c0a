import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import json
import tempfile
from datetime import date
from decimal import Decimal

import pandas as pd

from alpha_volume.execution.models import OrderSide, TradeRecord
from alpha_volume.reporting.metrics import compute_daily_stats
from alpha_volume.reporting.report import format_summary, generate_daily_report, trades_frame

import unittest


class TestDailyReport(unittest.TestCase):
    def setUp(self) -> None:
        records = [
            TradeRecord(pd.Timestamp("2024-12-20 09:01:00"), OrderSide.SELL, Decimal("10"),
                        Decimal("49.85"), Decimal("498.5"), "已成交"),
            TradeRecord(pd.Timestamp("2024-12-20 09:00:00"), OrderSide.BUY, Decimal("10"),
                        Decimal("50"), Decimal("500"), "已成交"),
        ]
        self.stats = compute_daily_stats(records, date(2024, 12, 20))

    def test_trades_frame_is_sorted_by_time(self) -> None:
        df = trades_frame(self.stats)
        self.assertEqual(list(df['side']), ['buy', 'sell'])

    def test_summary_text_mentions_wear_loss(self) -> None:
        text = format_summary(self.stats)
        self.assertIn("2024-12-20", text)
        self.assertIn("1.5000 USDT (0.30%)", text)

    def test_generate_daily_report_writes_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            out_dir = os.path.join(tmp, 'results')
            generate_daily_report(self.stats, out_dir=out_dir)
            for name in ('trades.csv', 'summary.json', 'cumulative_value.png'):
                self.assertTrue(os.path.exists(os.path.join(out_dir, f'2024-12-20_{name}')), name)
            with open(os.path.join(out_dir, '2024-12-20_summary.json'), encoding='utf-8') as fh:
                summary = json.load(fh)
            self.assertEqual(summary['wear_loss'], '1.50000000')
            self.assertEqual(summary['buy_count'], 1)

    def test_report_for_day_without_trades(self) -> None:
        empty = compute_daily_stats([], date(2024, 12, 21))
        with tempfile.TemporaryDirectory() as tmp:
            generate_daily_report(empty, out_dir=tmp)
            self.assertTrue(os.path.exists(os.path.join(tmp, '2024-12-21_trades.csv')))
        self.assertNotIn("Wear-loss", format_summary(empty))


if __name__ == '__main__':
    unittest.main()
