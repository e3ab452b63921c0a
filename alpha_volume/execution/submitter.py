"""
Limit order submission.

`OrderSubmitter.place_order()` fills in the exchange's order form and
submits it, the way a user would: pick the buy or sell tab, switch to
limit orders, enter price (and volume for buys), press the action
button and answer the confirmation dialogs.  It then hands over to
`OrderStatusTracker` to wait for the fill.

A required control that never shows up raises `ElementNotFoundError`.
The caller must not retry: a missing form control means the page is
not what the bot expects.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from ..config.schema import SelectorsConfig, TimingConfig
from ..page.locators import active_tab, dialog_button, text_equals
from ..page.model import CssSelector, Element, ElementNotFoundError, Locator, NotFoundError, PageModel
from ..page.waiter import ElementWaiter
from ..utils.notify import LogNotifier, Notifier
from ..utils.numbers import format_price
from .models import OrderResult, OrderSide, OrderStatus
from .tracker import OrderStatusTracker

logger = logging.getLogger(__name__)


class OrderSubmitter:
    """Place one limit order on the exchange page."""

    def __init__(
        self,
        page: PageModel,
        waiter: ElementWaiter,
        tracker: OrderStatusTracker,
        selectors: SelectorsConfig,
        timing: TimingConfig,
        order_timeout_ms: int,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.page = page
        self.waiter = waiter
        self.tracker = tracker
        self.selectors = selectors
        self.timing = timing
        self.order_timeout_ms = order_timeout_ms
        self.notifier = notifier or LogNotifier()

    async def _require(self, step: str, locator: Locator) -> Element:
        try:
            return await self.waiter.wait_for(locator)
        except NotFoundError as exc:
            logger.error("Order form step '%s' failed: %s", step, exc)
            raise ElementNotFoundError(step, str(exc)) from exc

    async def _optional_dialog(self, locator: Locator, attempts: int, interval_ms: int,
                               initial_delay_ms: int) -> Optional[Element]:
        try:
            return await self.waiter.wait_for(
                locator,
                max_attempts=attempts,
                interval_ms=interval_ms,
                initial_delay_ms=initial_delay_ms,
            )
        except NotFoundError:
            return None

    async def _press_continue(self, dialog_name: str) -> None:
        locator = dialog_button(self.selectors.dialog, self.selectors.dialog_button,
                                self.selectors.continue_label)
        button = await self._optional_dialog(
            locator, self.timing.dialog_attempts, self.timing.dialog_interval_ms, 0
        )
        if button is None:
            logger.warning("%s dialog has no continue button, leaving it open", dialog_name)
            return
        await self.page.click(button)
        logger.info("Confirmed %s dialog", dialog_name)

    async def _select_side(self, side: OrderSide) -> None:
        label = self.selectors.buy_tab_label if side is OrderSide.BUY else self.selectors.sell_tab_label
        tab = await self._require(f"{side.value} tab", text_equals(self.selectors.side_tab, label))
        await self.page.click(tab)
        await self._require(f"{side.value} tab activation", active_tab(self.selectors.side_tab, label))
        logger.debug("%s tab active", side.value)

    async def _sell_all_available(self) -> bool:
        """Drag the quantity slider to 100 %.  Returns False when nothing is sellable."""
        slider = await self.page.find_element(CssSelector(self.selectors.sell_slider))
        if slider is None:
            return True
        await self.page.set_field_value(slider, "100")
        return (await self.page.read_value(slider)).strip() not in ("", "0")

    async def place_order(
        self,
        side: OrderSide,
        price: Decimal,
        volume: Decimal,
        abort_on_warning: bool = False,
        timeout_ms: Optional[int] = None,
    ) -> OrderResult:
        """Submit a limit order and wait for it to fill.

        Parameters
        ----------
        side : OrderSide
            Buy or sell.
        price : Decimal
            Limit price.
        volume : Decimal
            Quantity to buy.  Ignored for sells, which sell the whole
            available balance.
        abort_on_warning : bool
            Return `aborted` instead of confirming the exchange's
            slippage warning.
        timeout_ms : int, optional
            Fill timeout.  Defaults to the timeout given at construction.

        Returns
        -------
        OrderResult
            `no_stock` when there is nothing to sell, `aborted` when
            the slippage warning stopped the order, otherwise the
            tracker's `completed` or `timeout`.

        Raises
        ------
        ElementNotFoundError
            If a required form control never appeared.
        """
        await self._select_side(side)

        limit_tab = await self._require("limit order tab", CssSelector(self.selectors.limit_tab))
        await self.page.click(limit_tab)

        if side is OrderSide.SELL and not await self._sell_all_available():
            logger.warning("Sell skipped: no available balance")
            return OrderResult(OrderStatus.NO_STOCK, "No balance available to sell")

        price_input = await self._require("limit price input", CssSelector(self.selectors.price_input))
        await self.page.set_field_value(price_input, format_price(price))
        if side is OrderSide.BUY:
            volume_input = await self._require("volume input", CssSelector(self.selectors.volume_input))
            await self.page.set_field_value(volume_input, format(volume, "f"))
            logger.info("Limit buy %s @ %s", volume, format_price(price))
        else:
            logger.info("Limit sell all @ %s", format_price(price))

        button_selector = self.selectors.buy_button if side is OrderSide.BUY else self.selectors.sell_button
        button = await self._require(f"{side.value} button", CssSelector(button_selector))
        await self.page.click(button)

        confirm = await self._optional_dialog(
            CssSelector(self.selectors.confirm_modal),
            3,
            self.timing.wait_interval_ms,
            self.timing.wait_initial_delay_ms,
        )
        if confirm is not None and self.selectors.slippage_warning_text in await self.page.read_text(confirm):
            if abort_on_warning:
                logger.warning("Slippage warning shown, aborting %s order", side.value)
                self.notifier.notify("Slippage warning shown by the exchange, trading stopped")
                return OrderResult(OrderStatus.ABORTED, "Slippage warning, order aborted")
            logger.info("Slippage warning shown, continuing")
            await self._press_continue("slippage warning")

        fee = await self._optional_dialog(
            CssSelector(self.selectors.fee_modal),
            self.timing.dialog_attempts,
            self.timing.dialog_interval_ms,
            0,
        )
        if fee is not None and self.selectors.fee_notice_text in await self.page.read_text(fee):
            await self._press_continue("fee notice")
        else:
            logger.debug("No fee notice dialog")

        result = await self.tracker.await_completion(
            self.order_timeout_ms if timeout_ms is None else timeout_ms
        )
        if result is None:
            result = OrderResult(OrderStatus.UNKNOWN)
        logger.info("%s order result: %s", side.value, result.status.value)
        return result
