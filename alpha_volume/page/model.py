"""
Page model interface.

The bot never talks to a browser directly.  Everything it does to the
exchange page goes through a `PageModel`: look elements up, fill a
form field, click, and read text.  `PlaywrightPage` implements it for a
real browser; tests use an in-memory page.

Elements are opaque handles owned by the page implementation.  Only
the page model itself inspects them.
"""

from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

Element = Any


class PageError(RuntimeError):
    """Raised by a page implementation when an interaction fails."""


class NotFoundError(LookupError):
    """Raised when an element did not appear within its wait budget."""


class ElementNotFoundError(NotFoundError):
    """A required order-form element is missing.

    The message names the step of the order flow that failed, which is
    the first thing to check when the exchange changed its markup.
    """

    def __init__(self, step: str, detail: str) -> None:
        super().__init__(f"{step}: {detail}")
        self.step = step


@dataclass(frozen=True)
class CssSelector:
    """Locate the first element matching a CSS selector."""
    selector: str

    def __str__(self) -> str:
        return self.selector


@dataclass(frozen=True)
class Resolver:
    """Locate an element with a function of the page.

    `fn` receives the `PageModel` and returns the element or `None`.
    It may be a coroutine function.
    """
    fn: Callable[["PageModel"], Union[Optional[Element], Awaitable[Optional[Element]]]]
    description: str = "resolver"

    def __str__(self) -> str:
        return self.description


Locator = Union[CssSelector, Resolver]


class PageModel(ABC):
    """Abstract exchange page.

    Implementations provide the primitive operations.  Lookups, row
    reading and cell reading are built on top of them here.
    """

    @abstractmethod
    async def query_all(self, selector: str, within: Optional[Element] = None) -> List[Element]:
        """Return all elements matching `selector`, optionally below `within`."""

    @abstractmethod
    async def set_field_value(self, element: Element, value: str) -> None:
        """Set a form control's value and emit the input/change notifications."""

    @abstractmethod
    async def click(self, element: Element) -> None:
        """Click an element."""

    @abstractmethod
    async def read_text(self, element: Element) -> str:
        """Return the element's text content, stripped."""

    @abstractmethod
    async def read_attribute(self, element: Element, name: str) -> Optional[str]:
        """Return an attribute value or `None` if it is not set."""

    @abstractmethod
    async def read_value(self, element: Element) -> str:
        """Return the current value of a form control."""

    @abstractmethod
    async def next_sibling(self, element: Element) -> Optional[Element]:
        """Return the next sibling element, if any."""

    async def find_element(self, locator: Locator) -> Optional[Element]:
        """Single-shot lookup of a locator.  Returns `None` when absent."""
        if isinstance(locator, CssSelector):
            matches = await self.query_all(locator.selector)
            return matches[0] if matches else None
        result = locator.fn(self)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def has_class(self, element: Element, class_name: str) -> bool:
        classes = await self.read_attribute(element, "class") or ""
        return class_name in classes.split()

    async def is_structural_row(self, row: Element) -> bool:
        """Measurement and hidden rows that tables render without data."""
        if (await self.read_attribute(row, "aria-hidden")) == "true":
            return True
        classes = await self.read_attribute(row, "class") or ""
        return any(token.endswith("measure-row") for token in classes.split())

    async def read_rows(self, selector: str) -> List[Element]:
        """Return the data rows matching `selector`, structural rows excluded."""
        rows = []
        for row in await self.query_all(selector):
            if not await self.is_structural_row(row):
                rows.append(row)
        return rows

    async def read_cells(self, row: Element, cell_selector: str) -> List[str]:
        """Return the text of every cell in `row`.

        Falls back to ``td`` cells when `cell_selector` matches nothing.
        """
        cells = await self.query_all(cell_selector, within=row)
        if not cells:
            cells = await self.query_all("td", within=row)
        return [await self.read_text(cell) for cell in cells]
