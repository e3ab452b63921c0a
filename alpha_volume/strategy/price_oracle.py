"""
Limit price selection.

In static mode the configured buy and sell prices are used as they
are.  In dynamic mode the prices follow the market: the most frequent
price among the latest prints of the trade tape is taken per side,
which is where orders fill fastest with the least slippage, and the
configured offset is applied on top.

Dynamic prices are sanity-checked before use.  A failed check is
returned as a `PriceError`; it is up to the caller to fall back to the
static prices or stop.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence, Union

from ..config.schema import SelectorsConfig, TradingConfig
from ..page.model import CssSelector, NotFoundError, PageModel
from ..page.waiter import ElementWaiter
from ..utils.numbers import parse_decimal, round8

logger = logging.getLogger(__name__)

TAPE_SAMPLE_SIZE = 20
MAX_SPREAD_RATIO = Decimal("0.01")
MAX_DEVIATION_RATIO = Decimal("0.10")


@dataclass(frozen=True)
class PriceQuote:
    buy_price: Decimal
    sell_price: Decimal
    dynamic: bool = False


@dataclass(frozen=True)
class PriceError:
    """A rejected price pair.

    `bound` names the failed check: ``tape`` (no usable trade tape),
    ``non_positive``, ``spread`` or ``deviation``.
    """
    bound: str
    message: str


PriceResult = Union[PriceQuote, PriceError]


def modal_price(prices: Sequence[Decimal]) -> Optional[Decimal]:
    """Most frequent price, rounded to 8 places.  Ties go to the first seen."""
    if not prices:
        return None
    counts = Counter(round8(p) for p in prices)
    best, best_count = None, 0
    # Counter preserves first-seen order, so a strict '>' keeps the earliest on ties
    for price, count in counts.items():
        if count > best_count:
            best, best_count = price, count
    return best


def check_prices(buy: Decimal, sell: Decimal, reference_buy: Decimal,
                 reference_sell: Decimal) -> Optional[PriceError]:
    """Return the first failed sanity check, or `None` if the pair is usable."""
    if buy <= 0 or sell <= 0:
        return PriceError("non_positive", f"Invalid prices: buy={buy}, sell={sell}")
    spread = abs(buy - sell) / min(buy, sell)
    if spread > MAX_SPREAD_RATIO:
        return PriceError(
            "spread",
            f"Spread too wide: buy={buy}, sell={sell}, spread={spread * 100:.2f}%",
        )
    buy_dev = abs(buy - reference_buy) / reference_buy
    sell_dev = abs(sell - reference_sell) / reference_sell
    if buy_dev > MAX_DEVIATION_RATIO or sell_dev > MAX_DEVIATION_RATIO:
        return PriceError(
            "deviation",
            f"Dynamic prices too far from configured: buy={buy} (configured {reference_buy}), "
            f"sell={sell} (configured {reference_sell})",
        )
    return None


class PriceOracle:
    """Resolve the buy and sell limit prices for the next round."""

    def __init__(
        self,
        page: PageModel,
        waiter: ElementWaiter,
        trading: TradingConfig,
        selectors: SelectorsConfig,
    ) -> None:
        self.page = page
        self.waiter = waiter
        self.trading = trading
        self.selectors = selectors

    def static_prices(self) -> PriceQuote:
        return PriceQuote(self.trading.buy_price, self.trading.sell_price)

    async def _read_prints(self, selector: str) -> List[Decimal]:
        prices = []
        for element in await self.page.query_all(selector):
            price = parse_decimal(await self.page.read_text(element))
            if price is not None:
                prices.append(price)
        return prices

    async def resolve_prices(self, dynamic: Optional[bool] = None) -> PriceResult:
        """Return the price pair for the next round.

        Parameters
        ----------
        dynamic : bool, optional
            Force static (`False`) or dynamic (`True`) mode.  Defaults to
            ``trading.enable_dynamic_pricing``.
        """
        if dynamic is None:
            dynamic = self.trading.enable_dynamic_pricing
        if not dynamic:
            return self.static_prices()

        try:
            await self.waiter.wait_for(CssSelector(self.selectors.trade_tape), max_attempts=5)
        except NotFoundError as exc:
            logger.warning("Trade tape not found: %s", exc)
            return PriceError("tape", "Trade tape not found")

        buy_prints = await self._read_prints(self.selectors.tape_buy_prices)
        sell_prints = await self._read_prints(self.selectors.tape_sell_prices)
        if not buy_prints and not sell_prints:
            logger.warning("Trade tape has no readable prices")
            return PriceError("tape", "No readable prices in the trade tape")

        offset = self.trading.price_offset
        buy_price, sell_price = self.trading.buy_price, self.trading.sell_price

        modal_buy = modal_price(buy_prints[:TAPE_SAMPLE_SIZE])
        if modal_buy:
            buy_price = round8(modal_buy + offset)
            logger.debug("Modal buy print %s -> buy price %s", modal_buy, buy_price)
        modal_sell = modal_price(sell_prints[:TAPE_SAMPLE_SIZE])
        if modal_sell:
            sell_price = round8(modal_sell - offset)
            logger.debug("Modal sell print %s -> sell price %s", modal_sell, sell_price)

        error = check_prices(buy_price, sell_price, self.trading.buy_price, self.trading.sell_price)
        if error is not None:
            logger.warning("Dynamic prices rejected: %s", error.message)
            return error

        logger.info("Dynamic prices: buy %s, sell %s", buy_price, sell_price)
        return PriceQuote(buy_price, sell_price, dynamic=True)
