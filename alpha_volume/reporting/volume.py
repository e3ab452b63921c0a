"""
Order history scan.

`VolumeAggregator` reads the exchange's order history page by page,
keeps the filled orders and turns today's into `DailyStats`.

History is listed newest first, so the scan stops at the first page
that reaches back into an earlier trading day.  If the exchange ever
served pages out of order this would under-collect; the page ceiling
protects against the opposite case of never meeting an old row.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from ..config.schema import HistoryConfig, SelectorsConfig
from ..execution.models import OrderSide, TradeRecord
from ..page.locators import text_contains, text_equals
from ..page.model import CssSelector, NotFoundError, PageModel
from ..page.waiter import ElementWaiter
from ..utils.numbers import parse_decimal, round8
from ..utils.timeutils import current_trading_day, parse_local_timestamp, trading_day
from .metrics import ZERO, DailyStats, compute_daily_stats

logger = logging.getLogger(__name__)

# Column layout of the history table:
# expand | created | token | type | side | avg price | price | filled | amount | total | status
COL_TIME = 1
COL_SIDE = 4
COL_PRICE = 6
COL_FILLED = 7
COL_TOTAL = 9
COL_STATUS = 10
MIN_CELLS = COL_STATUS + 1


def parse_trade_row(cells: Sequence[str], selectors: SelectorsConfig) -> Optional[TradeRecord]:
    """Turn the cell texts of one history row into a `TradeRecord`.

    Returns `None` for anything that is not a filled buy or sell with a
    timestamp and a non-zero filled quantity.  Such rows (cancelled
    orders, headers, placeholders) are expected and skipped silently.
    """
    if len(cells) < MIN_CELLS:
        return None
    raw_time = cells[COL_TIME].strip()
    ts = parse_local_timestamp(raw_time)
    if ts is None:
        return None

    side_text = cells[COL_SIDE].strip()
    if selectors.buy_tab_label in side_text:
        side = OrderSide.BUY
    elif selectors.sell_tab_label in side_text:
        side = OrderSide.SELL
    else:
        return None

    status = cells[COL_STATUS].strip()
    if selectors.filled_status_label not in status:
        return None

    filled = parse_decimal(cells[COL_FILLED])
    if filled is None or round8(filled) == 0:
        return None

    # An unreadable price or total counts as zero; the order itself is kept
    price = parse_decimal(cells[COL_PRICE]) or ZERO
    total = parse_decimal(cells[COL_TOTAL]) or ZERO
    return TradeRecord(
        time=ts,
        side=side,
        filled_volume=round8(filled),
        price=round8(price),
        total_value=round8(total),
        status=status,
        raw_time=raw_time,
    )


def _page_number(text: str) -> Optional[int]:
    text = text.strip()
    return int(text) if text.isdigit() else None


class VolumeAggregator:
    """Collect today's filled orders from the order history."""

    def __init__(
        self,
        page: PageModel,
        waiter: ElementWaiter,
        selectors: SelectorsConfig,
        history: HistoryConfig,
    ) -> None:
        self.page = page
        self.waiter = waiter
        self.selectors = selectors
        self.history = history

    async def open_order_history(self) -> None:
        """Switch to the order history table, limit orders, configured time range.

        Raises
        ------
        NotFoundError
            If the history tab, its container or its table is missing.
        """
        sel = self.selectors
        tab = await self.waiter.wait_for(CssSelector(sel.order_history_tab))
        await self.page.click(tab)
        container = await self.waiter.wait_for(CssSelector(sel.history_container))

        limit_tabs = await self.page.query_all(sel.history_limit_tab, within=container)
        if limit_tabs:
            await self.page.click(limit_tabs[0])
            try:
                await self.waiter.wait_for(
                    CssSelector(sel.history_limit_tab),
                    predicate=self._is_selected,
                    max_attempts=5,
                )
            except NotFoundError:
                logger.warning("History limit-order tab did not activate")
        else:
            logger.warning("History limit-order tab not found")

        for element in await self.page.query_all(sel.history_time_range, within=container):
            if (await self.page.read_text(element)) == self.history.time_range_label:
                await self.page.click(element)
                break
        else:
            logger.warning("Time range %r not found", self.history.time_range_label)

        await self.waiter.wait_for(CssSelector(sel.history_table))

    async def _is_selected(self, element) -> bool:
        return (await self.page.read_attribute(element, "aria-selected")) == "true"

    async def current_page_number(self) -> Optional[int]:
        active = await self.page.find_element(CssSelector(self.selectors.pagination_active))
        if active is None:
            return None
        return _page_number(await self.page.read_text(active))

    async def reset_to_first_page(self) -> bool:
        """Press the reset button so the scan starts at page 1."""
        button = await self.page.find_element(
            text_contains(self.selectors.reset_button, self.selectors.reset_label)
        )
        if button is None:
            logger.warning("Reset button not found")
        else:
            await self.page.click(button)
            await asyncio.sleep(self.history.reset_settle_ms / 1000)
        current = await self.current_page_number()
        if current not in (None, 1):
            logger.warning("History is on page %s after reset", current)
            return False
        return True

    async def has_next_page(self) -> bool:
        current = await self.current_page_number()
        if current is None:
            return False
        highest = 0
        for item in await self.page.query_all(self.selectors.pagination_item):
            number = _page_number(await self.page.read_text(item))
            if number is not None and number > highest:
                highest = number
        return current < highest

    async def go_to_next_page(self) -> bool:
        current = await self.current_page_number()
        if current is None:
            return False
        target = str(current + 1)
        button = await self.page.find_element(text_equals(self.selectors.pagination_item, target))
        if button is None:
            logger.warning("Page button %s not found", target)
            return False
        await self.page.click(button)
        try:
            await self.waiter.wait_for(
                text_equals(self.selectors.pagination_active, target),
                max_attempts=5,
                initial_delay_ms=0,
            )
        except NotFoundError:
            logger.warning("Page %s did not become active", target)
            return False
        return True

    async def read_current_page(self, today: date) -> Tuple[List[TradeRecord], bool]:
        """Parse the visible rows.

        Returns the filled orders on the page and whether the page holds
        any row (filled or not) from a trading day before `today`.
        """
        try:
            await self.waiter.wait_for(CssSelector(self.selectors.history_rows), max_attempts=5)
        except NotFoundError:
            logger.info("History page has no rows")
            return [], False

        records: List[TradeRecord] = []
        stale = False
        for row in await self.page.read_rows(self.selectors.history_rows):
            cells = await self.page.read_cells(row, self.selectors.history_cells)
            if len(cells) > COL_TIME:
                ts = parse_local_timestamp(cells[COL_TIME])
                if ts is not None and trading_day(ts) < today:
                    stale = True
            record = parse_trade_row(cells, self.selectors)
            if record is not None:
                records.append(record)
        return records, stale

    async def collect_records(self, today: date) -> List[TradeRecord]:
        """Walk the history pages and return every filled order read."""
        await self.open_order_history()
        await self.reset_to_first_page()

        records: List[TradeRecord] = []
        page_number = 1
        while True:
            page_records, stale = await self.read_current_page(today)
            records.extend(page_records)
            logger.info("History page %d: %d filled orders", page_number, len(page_records))

            if not page_records:
                logger.debug("Stopping: page %d has no filled orders", page_number)
                break
            if stale:
                logger.debug("Stopping: page %d reaches before %s", page_number, today)
                break
            if page_number >= self.history.max_pages:
                logger.warning("Stopping at the %d page limit", self.history.max_pages)
                break
            if not await self.has_next_page():
                break
            if not await self.go_to_next_page():
                break
            page_number += 1
            await asyncio.sleep(self.history.page_settle_ms / 1000)

        logger.info("Read %d filled orders from %d page(s)", len(records), page_number)
        return records

    async def collect_today_stats(self, now: Optional[datetime] = None) -> DailyStats:
        """Scan the history and return the statistics of the current trading day."""
        today = current_trading_day(now)
        records = await self.collect_records(today)
        stats = compute_daily_stats(records, today)
        logger.info(
            "Trading day %s: %d buys (%s USDT), %d sells (%s USDT), wear-loss %s USDT (%s%%)",
            today,
            len(stats.buy_trades),
            stats.total_buy_value,
            len(stats.sell_trades),
            stats.total_sell_value,
            stats.wear_loss,
            stats.wear_loss_percentage,
        )
        return stats
