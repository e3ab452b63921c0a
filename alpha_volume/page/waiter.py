"""
Polling wait primitive.

Every "wait for the page to settle" in the bot is a call to
`ElementWaiter.wait_for()`.  It suspends with `asyncio.sleep` between
attempts, so the event loop stays free while the page updates.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from .model import Element, Locator, NotFoundError, PageError, PageModel

logger = logging.getLogger(__name__)

Predicate = Callable[[Element], Union[bool, Awaitable[bool]]]
# Milliseconds, or a callable drawing a new value before every pause
Interval = Union[int, float, Callable[[], float]]


class ElementWaiter:
    """Poll a page for an element until it appears or the budget runs out.

    Parameters
    ----------
    page : PageModel
        The page to poll.
    max_attempts, interval_ms, initial_delay_ms : int
        Defaults used when a call does not pass its own budget.
    """

    def __init__(
        self,
        page: PageModel,
        max_attempts: int = 10,
        interval_ms: int = 500,
        initial_delay_ms: int = 500,
    ) -> None:
        self.page = page
        self.max_attempts = max_attempts
        self.interval_ms = interval_ms
        self.initial_delay_ms = initial_delay_ms

    async def wait_for(
        self,
        locator: Locator,
        predicate: Optional[Predicate] = None,
        max_attempts: Optional[int] = None,
        interval_ms: Optional[Interval] = None,
        initial_delay_ms: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> Element:
        """Return the first element found by `locator` that satisfies `predicate`.

        With `timeout_ms` the number of attempts is not limited: polling
        goes on until the deadline, pauses are cut short at the deadline
        and one last attempt is always made after the final pause.

        Raises
        ------
        NotFoundError
            If no matching element appeared within the budget.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        interval = self.interval_ms if interval_ms is None else interval_ms
        initial = self.initial_delay_ms if initial_delay_ms is None else initial_delay_ms
        deadline = None if timeout_ms is None else time.monotonic() + timeout_ms / 1000

        await self._pause(initial, deadline)
        attempt = 0
        while True:
            attempt += 1
            element = await self._attempt(locator, predicate)
            if element is not None:
                return element
            if deadline is None:
                if attempt >= attempts:
                    break
            elif time.monotonic() >= deadline:
                break
            await self._pause(interval() if callable(interval) else interval, deadline)

        budget = f"{attempts} attempts" if deadline is None else f"{timeout_ms} ms"
        logger.debug("Gave up on %s after %s", locator, budget)
        raise NotFoundError(f"Element not found: {locator} (after {budget})")

    async def _pause(self, delay_ms: float, deadline: Optional[float]) -> None:
        delay = delay_ms / 1000
        if deadline is not None:
            delay = max(0.0, min(delay, deadline - time.monotonic()))
        await asyncio.sleep(delay)

    async def _attempt(self, locator: Locator, predicate: Optional[Predicate]) -> Optional[Element]:
        try:
            element = await self.page.find_element(locator)
            if element is None:
                return None
            if predicate is not None:
                accepted = predicate(element)
                if inspect.isawaitable(accepted):
                    accepted = await accepted
                if not accepted:
                    return None
        except PageError as exc:
            # Elements re-render while the page updates; retry on the next attempt
            logger.debug("Lookup of %s failed: %s", locator, exc)
            return None
        return element
