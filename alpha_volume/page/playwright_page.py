"""
Playwright implementation of the page model.

Opens the exchange page in a persistent Chromium profile so that the
logged-in session survives between runs, and maps the `PageModel`
primitives onto Playwright element handles.

Form fields are set through the native ``value`` setter followed by
``input`` and ``change`` events.  Typing into the field is not enough
on React pages, which only update their state on those events.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import ElementHandle, Page, async_playwright

from ..config.schema import BrowserConfig
from .model import Element, PageError, PageModel

logger = logging.getLogger(__name__)

_SET_VALUE_JS = """
(el, value) => {
    el.focus();
    const proto = el instanceof HTMLTextAreaElement
        ? HTMLTextAreaElement.prototype
        : HTMLInputElement.prototype;
    const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
    setter.call(el, '');
    setter.call(el, value);
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
    el.blur();
}
"""


class PlaywrightPage(PageModel):
    """`PageModel` backed by a Playwright `Page`."""

    def __init__(self, page: Page) -> None:
        self.page = page

    @classmethod
    @asynccontextmanager
    async def open(cls, config: BrowserConfig) -> AsyncIterator["PlaywrightPage"]:
        """Launch Chromium with the configured profile and open the trading page."""
        async with async_playwright() as p:
            context = await p.chromium.launch_persistent_context(
                config.user_data_dir,
                headless=config.headless,
            )
            try:
                page = context.pages[0] if context.pages else await context.new_page()
                logger.info("Opening %s", config.url)
                await page.goto(config.url, wait_until="domcontentloaded")
                yield cls(page)
            finally:
                await context.close()

    async def query_all(self, selector: str, within: Optional[Element] = None) -> List[Element]:
        root = within if within is not None else self.page
        try:
            return await root.query_selector_all(selector)
        except PlaywrightError as exc:
            raise PageError(f"query {selector!r} failed: {exc}") from exc

    async def set_field_value(self, element: Element, value: str) -> None:
        try:
            await element.evaluate(_SET_VALUE_JS, str(value))
        except PlaywrightError as exc:
            raise PageError(f"setting value {value!r} failed: {exc}") from exc

    async def click(self, element: Element) -> None:
        try:
            await element.click()
        except PlaywrightError as exc:
            raise PageError(f"click failed: {exc}") from exc

    async def read_text(self, element: Element) -> str:
        try:
            return ((await element.text_content()) or "").strip()
        except PlaywrightError as exc:
            raise PageError(f"reading text failed: {exc}") from exc

    async def read_attribute(self, element: Element, name: str) -> Optional[str]:
        try:
            return await element.get_attribute(name)
        except PlaywrightError as exc:
            raise PageError(f"reading attribute {name!r} failed: {exc}") from exc

    async def read_value(self, element: Element) -> str:
        try:
            return await element.input_value()
        except PlaywrightError as exc:
            raise PageError(f"reading value failed: {exc}") from exc

    async def next_sibling(self, element: Element) -> Optional[Element]:
        try:
            handle = await element.evaluate_handle("el => el.nextElementSibling")
        except PlaywrightError as exc:
            raise PageError(f"reading sibling failed: {exc}") from exc
        sibling: Optional[ElementHandle] = handle.as_element()
        return sibling
