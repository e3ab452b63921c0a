"""
Application entry point.

This module defines a simple command-line interface for the volume
bot.  ``trade`` opens the exchange page and runs buy/sell rounds;
``stats`` reads today's order history and writes the daily report.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from .config.schema import Config, load_config
from .execution.controller import TradeCycleController
from .execution.models import HaltReason, RunReport
from .page.playwright_page import PlaywrightPage
from .page.waiter import ElementWaiter
from .reporting.report import format_summary, generate_daily_report
from .reporting.volume import VolumeAggregator

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


async def run_trading(config: Config) -> RunReport:
    """Open the page and run the trade cycle.  Ctrl+C stops after the current round."""
    async with PlaywrightPage.open(config.browser) as page:
        controller = TradeCycleController(config, page)
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, controller.request_stop)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")
        try:
            report = await controller.run()
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except NotImplementedError:
                pass
        if controller.last_stats is not None:
            generate_daily_report(controller.last_stats, out_dir=config.report.out_dir)
        return report


async def run_stats(config: Config) -> None:
    """Read today's order history and write the report."""
    async with PlaywrightPage.open(config.browser) as page:
        timing = config.timing
        waiter = ElementWaiter(page, timing.wait_attempts, timing.wait_interval_ms, timing.wait_initial_delay_ms)
        aggregator = VolumeAggregator(page, waiter, config.selectors, config.history)
        stats = await aggregator.collect_today_stats()
    print(format_summary(stats))
    generate_daily_report(stats, out_dir=config.report.out_dir)
    logging.info("Report saved to the '%s' directory.", config.report.out_dir)


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command-line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="Exchange volume bot")
    parser.add_argument('mode', choices=['trade', 'stats'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--max-rounds', type=int, help="Override trading.max_rounds")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    config = load_config(args.config)
    if args.max_rounds is not None:
        config.trading.update(max_rounds=args.max_rounds)

    if args.mode == 'trade':
        logging.info("Starting trade cycle (%d rounds)...", config.trading.max_rounds)
        report = asyncio.run(run_trading(config))
        logging.info("Finished: %s", report.describe())
        return 0 if report.reason in (HaltReason.COMPLETED, HaltReason.STOPPED) else 1

    logging.info("Collecting today's trading statistics...")
    asyncio.run(run_stats(config))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
