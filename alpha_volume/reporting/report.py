"""
Report generation utilities.

This module turns a day's statistics into human-readable artefacts:
a CSV file of the filled orders, a JSON summary of the volume and
wear-loss figures and a PNG chart of the cumulative buy and sell
value over the trading day.  `format_summary()` renders the same
figures as text for the console.
"""

from __future__ import annotations

import os
import json
from typing import List
import pandas as pd
import matplotlib

# Use non-interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from .metrics import DailyStats


def trades_frame(stats: DailyStats) -> pd.DataFrame:
    """One row per filled order of the day, oldest first."""
    rows = [
        {
            'time': t.time,
            'side': t.side.value,
            'filled_volume': float(t.filled_volume),
            'price': float(t.price),
            'total_value': float(t.total_value),
            'status': t.status,
        }
        for t in stats.buy_trades + stats.sell_trades
    ]
    df = pd.DataFrame(rows, columns=['time', 'side', 'filled_volume', 'price', 'total_value', 'status'])
    if not df.empty:
        df = df.sort_values('time').reset_index(drop=True)
    return df


def format_summary(stats: DailyStats) -> str:
    """Multi-line text summary of a trading day."""
    lines: List[str] = [
        f"Trading day {stats.day.isoformat()} (08:00 boundary)",
        f"  Buy orders:   {len(stats.buy_trades)}",
        f"  Sell orders:  {len(stats.sell_trades)}",
        f"  Bought:       {stats.total_buy_volume:.4f} tokens for {stats.total_buy_value:.2f} USDT",
        f"  Sold:         {stats.total_sell_volume:.4f} tokens for {stats.total_sell_value:.2f} USDT",
        f"  Avg per buy:  {stats.avg_buy_value:.2f} USDT",
    ]
    if stats.buy_trades and stats.sell_trades:
        lines += [
            f"  Avg buy price:  {stats.avg_buy_price:.8f}",
            f"  Avg sell price: {stats.avg_sell_price:.8f}",
            f"  Wear-loss:      {stats.wear_loss:.4f} USDT ({stats.wear_loss_percentage:.2f}%)",
        ]
    return "\n".join(lines)


def generate_daily_report(stats: DailyStats, out_dir: str = "results") -> None:
    """Generate report files for one trading day.

    Creates the output directory if it does not exist and writes the
    following files, prefixed with the trading day:

    - `trades.csv` – filled orders of the day
    - `summary.json` – volume and wear-loss figures
    - `cumulative_value.png` – cumulative buy/sell value over the day
    """
    os.makedirs(out_dir, exist_ok=True)
    prefix = stats.day.isoformat()

    # Trades CSV
    df = trades_frame(stats)
    df.to_csv(os.path.join(out_dir, f'{prefix}_trades.csv'), index=False)

    # Summary JSON
    summary_path = os.path.join(out_dir, f'{prefix}_summary.json')
    with open(summary_path, 'w', encoding='utf-8') as fh:
        json.dump(stats.summary(), fh, indent=2, ensure_ascii=False)

    # Cumulative value plot
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df.empty:
        for side, group in df.groupby('side'):
            ax.step(group['time'], group['total_value'].cumsum(), where='post', label=side, linewidth=1.5)
        ax.set_title(f'Cumulative value {prefix}')
        ax.set_xlabel('Time')
        ax.set_ylabel('USDT')
        ax.legend()
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(os.path.join(out_dir, f'{prefix}_cumulative_value.png'))
    plt.close(fig)
