import os
import sys

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import asyncio
from datetime import date
from decimal import Decimal

from alpha_volume.config.schema import Config, TradingConfig
from alpha_volume.execution.controller import ControllerBusyError, TradeCycleController
from alpha_volume.execution.models import CycleState, HaltReason, OrderStatus
from alpha_volume.reporting.metrics import DailyStats
from alpha_volume.utils.notify import RecordingNotifier

from fake_page import FakeExchange, fast_timing

import unittest


class StubAggregator:
    def __init__(self, exchange: FakeExchange) -> None:
        self.exchange = exchange
        self.orders_seen = []

    @property
    def calls(self) -> int:
        return len(self.orders_seen)

    async def collect_today_stats(self, now=None) -> DailyStats:
        self.orders_seen.append(len(self.exchange.orders))
        return DailyStats(date(2024, 12, 20))


class FailingSubmitter:
    async def place_order(self, *args, **kwargs):
        raise RuntimeError("order form script crashed")


def make_config(**trading) -> Config:
    values = dict(
        max_rounds=5,
        enable_dynamic_pricing=False,
        order_timeout_ms=1000,
        stats_every_rounds=0,
    )
    values.update(trading)
    return Config(trading=TradingConfig(**values), timing=fast_timing())


class TestTradeCycleController(unittest.IsolatedAsyncioTestCase):
    def make_controller(self, exchange: FakeExchange, config: Config, **kwargs) -> TradeCycleController:
        self.notifier = RecordingNotifier()
        return TradeCycleController(config, exchange.page, notifier=self.notifier, **kwargs)

    async def test_runs_all_rounds_in_buy_sell_order(self) -> None:
        exchange = FakeExchange()
        controller = self.make_controller(exchange, make_config())
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.COMPLETED)
        self.assertEqual(report.completed_rounds, 5)
        self.assertEqual(controller.state, CycleState.HALTED)
        self.assertEqual([o[0] for o in exchange.orders], ["buy", "sell"] * 5)
        self.assertEqual(exchange.overlapping_orders, 0)
        self.assertEqual(exchange.orders[0], ("buy", "48.004839", "10"))
        self.assertEqual(exchange.orders[1], ("sell", "48.0048361", "10"))
        self.assertIn("All 5 rounds completed", self.notifier.messages)

    async def test_buy_timeout_halts_without_selling(self) -> None:
        exchange = FakeExchange(fill_after_checks=None)
        controller = self.make_controller(exchange, make_config(order_timeout_ms=30))
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.BUY_FAILED)
        self.assertEqual(report.completed_rounds, 0)
        self.assertEqual(report.last_result.status, OrderStatus.TIMEOUT)
        self.assertEqual([o[0] for o in exchange.orders], ["buy"])

    async def test_sell_without_balance_halts(self) -> None:
        exchange = FakeExchange()
        # the bought tokens never arrive in the balance
        exchange.slider.on_set = lambda value: "0"
        controller = self.make_controller(exchange, make_config())
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.SELL_FAILED)
        self.assertEqual(report.last_result.status, OrderStatus.NO_STOCK)
        self.assertEqual(report.completed_rounds, 0)

    async def test_stop_request_is_honoured_between_rounds(self) -> None:
        exchange = FakeExchange()
        controller = self.make_controller(exchange, make_config())

        def stop_after_first_sell(side: str) -> None:
            if side == "sell":
                controller.request_stop()

        exchange.on_fill = stop_after_first_sell
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.STOPPED)
        self.assertEqual(report.completed_rounds, 1)
        self.assertEqual(len(exchange.orders), 2)
        self.assertFalse(controller.stop_requested)

    async def test_controller_can_run_again_after_a_stop(self) -> None:
        exchange = FakeExchange()
        controller = self.make_controller(exchange, make_config(max_rounds=2))
        controller.request_stop()
        first = await controller.run()
        self.assertEqual(first.reason, HaltReason.STOPPED)
        second = await controller.run()
        self.assertEqual(second.reason, HaltReason.COMPLETED)
        self.assertEqual(second.completed_rounds, 2)
        self.assertEqual(len(exchange.orders), 4)

    async def test_stop_before_run_places_no_orders(self) -> None:
        exchange = FakeExchange()
        controller = self.make_controller(exchange, make_config())
        controller.request_stop()
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.STOPPED)
        self.assertEqual(exchange.orders, [])

    async def test_low_volume_refuses_to_trade(self) -> None:
        exchange = FakeExchange(volume_text="$12.3M")
        controller = self.make_controller(exchange, make_config())
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.VOLUME_GATE)
        self.assertIn("12.3", report.message)
        self.assertEqual(exchange.orders, [])

    async def test_unreadable_volume_refuses_to_trade(self) -> None:
        exchange = FakeExchange(volume_text="--")
        controller = self.make_controller(exchange, make_config())
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.VOLUME_GATE)

    async def test_volume_in_billions_passes_gate(self) -> None:
        exchange = FakeExchange(volume_text="$1.2B")
        controller = self.make_controller(exchange, make_config())
        self.assertEqual(await controller.read_24h_volume(), Decimal("1200.0"))
        self.assertIsNone(await controller.check_volume_gate())

    async def test_missing_form_element_halts_with_error(self) -> None:
        exchange = FakeExchange()
        del exchange.page.elements[exchange.sel.limit_tab]
        controller = self.make_controller(exchange, make_config())
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.ERROR)
        self.assertIn("limit order tab", report.message)

    async def test_price_error_falls_back_to_static_prices(self) -> None:
        exchange = FakeExchange()
        exchange.set_tape(["60"], ["40"])
        config = make_config(max_rounds=1, enable_dynamic_pricing=True)
        report = await self.make_controller(exchange, config).run()
        self.assertEqual(report.reason, HaltReason.COMPLETED)
        self.assertEqual(exchange.orders[0][1], "48.004839")

    async def test_price_error_halts_without_fallback(self) -> None:
        exchange = FakeExchange()
        exchange.set_tape(["60"], ["40"])
        config = make_config(enable_dynamic_pricing=True, fallback_to_static_prices=False)
        report = await self.make_controller(exchange, config).run()
        self.assertEqual(report.reason, HaltReason.PRICE_ERROR)
        self.assertEqual(exchange.orders, [])

    async def test_dynamic_prices_are_used_when_sane(self) -> None:
        exchange = FakeExchange()
        exchange.set_tape(["48.0049", "48.0049"], ["48.0047"])
        config = make_config(max_rounds=1, enable_dynamic_pricing=True)
        await self.make_controller(exchange, config).run()
        self.assertEqual(exchange.orders[0][1], "48.0049")
        self.assertEqual(exchange.orders[1][1], "48.0047")

    async def test_statistics_refreshed_at_start_every_n_rounds_and_at_the_end(self) -> None:
        exchange = FakeExchange()
        aggregator = StubAggregator(exchange)
        config = make_config(stats_every_rounds=2)
        controller = self.make_controller(exchange, config, aggregator=aggregator)
        await controller.run()
        # before round 1, after rounds 2 and 4, after the last round
        self.assertEqual(aggregator.orders_seen, [0, 4, 8, 10])
        self.assertIsNotNone(controller.last_stats)

    async def test_no_statistics_when_refresh_disabled(self) -> None:
        exchange = FakeExchange()
        aggregator = StubAggregator(exchange)
        controller = self.make_controller(exchange, make_config(), aggregator=aggregator)
        await controller.run()
        self.assertEqual(aggregator.calls, 0)

    async def test_unexpected_error_halts_with_report(self) -> None:
        exchange = FakeExchange()
        controller = self.make_controller(exchange, make_config(), submitter=FailingSubmitter())
        report = await controller.run()
        self.assertEqual(report.reason, HaltReason.ERROR)
        self.assertIn("RuntimeError", report.message)
        self.assertEqual(report.completed_rounds, 0)
        self.assertEqual(report.target_rounds, 5)
        self.assertEqual(controller.state, CycleState.HALTED)
        self.assertEqual(len(self.notifier.messages), 1)
        # the single-run guard is released
        self.assertIsNone(TradeCycleController._running)

    async def test_max_rounds_change_applies_at_next_round(self) -> None:
        exchange = FakeExchange()
        config = make_config(max_rounds=10)
        controller = self.make_controller(exchange, config)

        def shorten(side: str) -> None:
            if side == "sell":
                config.trading.update(max_rounds=2)

        exchange.on_fill = shorten
        report = await controller.run()
        self.assertEqual(report.completed_rounds, 2)
        self.assertEqual(report.target_rounds, 2)

    async def test_second_concurrent_run_is_rejected(self) -> None:
        exchange = FakeExchange()
        first = self.make_controller(exchange, make_config(max_rounds=1))
        second = self.make_controller(FakeExchange(), make_config(max_rounds=1))
        task = asyncio.create_task(first.run())
        await asyncio.sleep(0)
        with self.assertRaises(ControllerBusyError):
            await second.run()
        report = await task
        self.assertEqual(report.reason, HaltReason.COMPLETED)
        # the guard is released once the first run is over
        report = await second.run()
        self.assertEqual(report.reason, HaltReason.COMPLETED)


if __name__ == '__main__':
    unittest.main()
