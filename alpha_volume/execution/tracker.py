"""
Open-order tracking.

After an order is submitted the bot switches to the open-orders view
and waits for the exchange's "no open orders" hint.  A limit order
that is not filled within the timeout is left on the book and
reported; the user has to decide what to do with it.
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from ..config.schema import SelectorsConfig, TimingConfig
from ..page.locators import text_contains
from ..page.model import CssSelector, NotFoundError, PageModel
from ..page.waiter import ElementWaiter
from ..utils.notify import LogNotifier, Notifier
from .models import OrderResult, OrderStatus

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Order not filled before timeout, manual intervention required"


class OrderStatusTracker:
    """Wait until the open-orders list is empty."""

    def __init__(
        self,
        page: PageModel,
        waiter: ElementWaiter,
        selectors: SelectorsConfig,
        timing: TimingConfig,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.page = page
        self.waiter = waiter
        self.selectors = selectors
        self.timing = timing
        self.notifier = notifier or LogNotifier()

    async def _show_open_orders(self) -> None:
        for selector in (self.selectors.open_orders_tab, self.selectors.open_orders_limit_tab):
            tab = await self.page.find_element(CssSelector(selector))
            if tab is not None:
                await self.page.click(tab)

    def _poll_interval_ms(self) -> float:
        # Jittered between the configured bounds
        return random.uniform(self.timing.status_poll_min_ms, self.timing.status_poll_max_ms)

    async def await_completion(self, timeout_ms: int) -> OrderResult:
        """Return `completed` once no order is open, `timeout` after `timeout_ms`.

        The page is always checked at least once, even when `timeout_ms`
        is shorter than the first-check delay.  The timeout is reported
        as a result, never raised.
        """
        await self._show_open_orders()
        try:
            await self.waiter.wait_for(
                text_contains(self.selectors.hint_text, self.selectors.no_open_orders_text),
                interval_ms=self._poll_interval_ms,
                initial_delay_ms=self.timing.status_first_check_ms,
                timeout_ms=timeout_ms,
            )
        except NotFoundError:
            logger.warning("Order still open after %d ms", timeout_ms)
            self.notifier.notify("The order may not fill at this price. Check the open orders and adjust the price.")
            return OrderResult(OrderStatus.TIMEOUT, TIMEOUT_MESSAGE)
        logger.info("Order filled")
        return OrderResult(OrderStatus.COMPLETED)
