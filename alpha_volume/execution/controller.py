"""
Trade cycle controller.

This module contains the `TradeCycleController` class which runs the
volume bot: it checks that the pair trades enough to be worth it, then
repeats buy-then-sell rounds until the configured number of rounds is
done, an order fails, the page breaks or a stop is requested.

States::

    idle -> checking_volume_gate -> running -> (stopping) -> halted

Orders are strictly sequential.  A stop request is only looked at
between rounds, so an order that was submitted always runs to its fill
or timeout first.
"""

from __future__ import annotations

import asyncio
import logging
import random
from decimal import Decimal
from typing import ClassVar, Optional

from ..config.schema import Config
from ..page.locators import text_contains
from ..page.model import NotFoundError, PageError, PageModel
from ..page.waiter import ElementWaiter
from ..reporting.metrics import DailyStats
from ..reporting.volume import VolumeAggregator
from ..strategy.price_oracle import PriceError, PriceOracle, PriceResult
from ..utils.notify import LogNotifier, Notifier
from ..utils.numbers import volume_to_millions
from .models import (
    CycleState,
    HaltReason,
    OrderResult,
    OrderSide,
    RunReport,
    TradeRound,
)
from .submitter import OrderSubmitter
from .tracker import OrderStatusTracker

logger = logging.getLogger(__name__)


class ControllerBusyError(RuntimeError):
    """Raised when a second run is started while one is in progress."""


class TradeCycleController:
    """Run buy/sell rounds on one exchange page.

    Collaborators not passed in are built from `config`.  Only one
    controller can be running in a process at a time: the exchange page
    has a single order form, and two runs would overwrite each other's
    input.
    """

    _running: ClassVar[Optional["TradeCycleController"]] = None

    def __init__(
        self,
        config: Config,
        page: PageModel,
        notifier: Optional[Notifier] = None,
        oracle: Optional[PriceOracle] = None,
        submitter: Optional[OrderSubmitter] = None,
        aggregator: Optional[VolumeAggregator] = None,
    ) -> None:
        self.config = config
        self.page = page
        self.notifier = notifier or LogNotifier()
        timing = config.timing
        self.waiter = ElementWaiter(
            page, timing.wait_attempts, timing.wait_interval_ms, timing.wait_initial_delay_ms
        )
        self.oracle = oracle or PriceOracle(page, self.waiter, config.trading, config.selectors)
        if submitter is None:
            tracker = OrderStatusTracker(page, self.waiter, config.selectors, timing, self.notifier)
            submitter = OrderSubmitter(
                page, self.waiter, tracker, config.selectors, timing,
                config.trading.order_timeout_ms, self.notifier,
            )
        self.submitter = submitter
        self.aggregator = aggregator or VolumeAggregator(
            page, self.waiter, config.selectors, config.history
        )
        self.state = CycleState.IDLE
        self.completed_rounds = 0
        self.last_stats: Optional[DailyStats] = None
        self._stop_requested = False

    def request_stop(self) -> None:
        """Ask the run to stop before its next round."""
        if not self._stop_requested:
            logger.info("Stop requested, finishing the current round first")
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    async def read_24h_volume(self) -> Optional[Decimal]:
        """Read the pair's 24h volume in millions, or `None` if unreadable."""
        sel = self.config.selectors
        try:
            label = await self.waiter.wait_for(
                text_contains(sel.hint_text, sel.volume_24h_label), max_attempts=5
            )
        except NotFoundError:
            logger.warning("24h volume label not found")
            return None
        value = await self.page.next_sibling(label)
        if value is None:
            logger.warning("24h volume value not found")
            return None
        text = await self.page.read_text(value)
        millions = volume_to_millions(text)
        if millions is None:
            logger.warning("Cannot parse 24h volume %r", text)
            return None
        logger.info("24h volume %s = %sM", text, millions)
        return millions

    async def check_volume_gate(self) -> Optional[str]:
        """Return why trading must not start, or `None` if the gate passes."""
        threshold = self.config.trading.min_volume_threshold_m
        volume = await self.read_24h_volume()
        if volume is None:
            return "24h volume could not be read"
        if volume < threshold:
            return f"24h volume {volume}M is below the {threshold}M minimum"
        return None

    async def _resolve_round_prices(self) -> PriceResult:
        result = await self.oracle.resolve_prices()
        if isinstance(result, PriceError) and self.config.trading.fallback_to_static_prices:
            logger.warning("Using static prices: %s", result.message)
            return self.oracle.static_prices()
        return result

    async def _refresh_stats(self) -> None:
        try:
            self.last_stats = await self.aggregator.collect_today_stats()
        except (NotFoundError, PageError) as exc:
            logger.warning("Statistics refresh failed: %s", exc)

    async def _pause_between_rounds(self) -> None:
        timing = self.config.timing
        delay = random.uniform(timing.round_delay_min_ms, timing.round_delay_max_ms) / 1000
        await asyncio.sleep(delay)

    def _halt(self, reason: HaltReason, message: Optional[str] = None,
              last_result: Optional[OrderResult] = None) -> RunReport:
        self.state = CycleState.HALTED
        report = RunReport(
            reason=reason,
            completed_rounds=self.completed_rounds,
            target_rounds=self.config.trading.max_rounds,
            message=message,
            last_result=last_result,
        )
        logger.info("Run halted: %s", report.describe())
        if reason is HaltReason.COMPLETED:
            self.notifier.notify(f"All {report.target_rounds} rounds completed")
        else:
            self.notifier.notify(f"Trading stopped: {report.describe()}")
        return report

    async def _run_round(self, number: int) -> Optional[RunReport]:
        """Run one round.  Returns a report if the run has to halt."""
        trading = self.config.trading
        prices = await self._resolve_round_prices()
        if isinstance(prices, PriceError):
            return self._halt(HaltReason.PRICE_ERROR, prices.message)

        trade_round = TradeRound(number, prices.buy_price, prices.sell_price)
        logger.info(
            "Round %d/%d: buy @ %s, sell @ %s (%s prices)",
            number, trading.max_rounds, trade_round.buy_price, trade_round.sell_price,
            "dynamic" if prices.dynamic else "static",
        )

        trade_round.buy_result = await self.submitter.place_order(
            OrderSide.BUY, trade_round.buy_price, trading.order_volume,
            trading.abort_on_price_warning, timeout_ms=trading.order_timeout_ms,
        )
        if not trade_round.buy_result.completed:
            return self._halt(HaltReason.BUY_FAILED, trade_round.buy_result.message,
                              trade_round.buy_result)

        trade_round.sell_result = await self.submitter.place_order(
            OrderSide.SELL, trade_round.sell_price, trading.order_volume,
            trading.abort_on_price_warning, timeout_ms=trading.order_timeout_ms,
        )
        if not trade_round.sell_result.completed:
            return self._halt(HaltReason.SELL_FAILED, trade_round.sell_result.message,
                              trade_round.sell_result)

        self.completed_rounds += 1
        logger.info("Round %d done (%d/%d)", number, self.completed_rounds, trading.max_rounds)
        every = trading.stats_every_rounds
        if every and (self.completed_rounds % every == 0 or self.completed_rounds >= trading.max_rounds):
            await self._refresh_stats()
        return None

    async def run(self) -> RunReport:
        """Check the volume gate and run rounds until the run halts.

        A stop requested before the call applies to this run.  The stop
        flag is cleared when the run ends, so the controller can be run
        again.  Unexpected errors are logged and end the run with
        ``error``; they are not raised.

        Raises
        ------
        ControllerBusyError
            If a controller is already running.
        """
        if TradeCycleController._running is not None:
            raise ControllerBusyError("A trade cycle is already running")
        TradeCycleController._running = self
        try:
            return await self._run()
        except Exception as exc:
            logger.exception("Trade cycle failed in state %s", self.state.value)
            return self._halt(HaltReason.ERROR, f"{type(exc).__name__}: {exc}")
        finally:
            self._stop_requested = False
            TradeCycleController._running = None

    async def _run(self) -> RunReport:
        self.completed_rounds = 0
        self.state = CycleState.CHECKING_VOLUME_GATE
        try:
            refusal = await self.check_volume_gate()
        except (NotFoundError, PageError) as exc:
            return self._halt(HaltReason.ERROR, str(exc))
        if refusal is not None:
            return self._halt(HaltReason.VOLUME_GATE, refusal)

        self.state = CycleState.RUNNING
        if self.config.trading.stats_every_rounds:
            await self._refresh_stats()
        number = 0
        # max_rounds is re-read each round; it may be changed during the run
        while number < self.config.trading.max_rounds:
            if self._stop_requested:
                self.state = CycleState.STOPPING
                return self._halt(HaltReason.STOPPED, "stop requested")
            number += 1
            try:
                report = await self._run_round(number)
            except (NotFoundError, PageError) as exc:
                logger.error("Round %d failed: %s", number, exc)
                return self._halt(HaltReason.ERROR, str(exc))
            if report is not None:
                return report
            if number < self.config.trading.max_rounds:
                await self._pause_between_rounds()

        return self._halt(HaltReason.COMPLETED)
