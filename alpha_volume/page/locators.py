"""
Text-matching locators.

The exchange page identifies several controls only by their label
(side tabs, dialog buttons, hint texts).  These factories build
`Resolver` locators for them from the configured selectors and
labels.
"""

from __future__ import annotations

from typing import Optional

from .model import Element, PageModel, Resolver


def text_equals(selector: str, label: str) -> Resolver:
    """First element matching `selector` whose text is exactly `label`."""

    async def resolve(page: PageModel) -> Optional[Element]:
        for element in await page.query_all(selector):
            if (await page.read_text(element)) == label:
                return element
        return None

    return Resolver(resolve, f"{selector} == {label!r}")


def text_contains(selector: str, fragment: str) -> Resolver:
    """First element matching `selector` whose text contains `fragment`."""

    async def resolve(page: PageModel) -> Optional[Element]:
        for element in await page.query_all(selector):
            if fragment in await page.read_text(element):
                return element
        return None

    return Resolver(resolve, f"{selector} ~= {fragment!r}")


def active_tab(selector: str, label: str) -> Resolver:
    """The tab labelled `label`, only once it is active and selected."""

    async def resolve(page: PageModel) -> Optional[Element]:
        for element in await page.query_all(selector):
            if (await page.read_text(element)) != label:
                continue
            if await page.has_class(element, "active") and \
                    (await page.read_attribute(element, "aria-selected")) == "true":
                return element
        return None

    return Resolver(resolve, f"active {selector} == {label!r}")


def dialog_button(dialog_selector: str, button_selector: str, fragment: str) -> Resolver:
    """Button inside the open dialog whose text contains `fragment`."""

    async def resolve(page: PageModel) -> Optional[Element]:
        dialogs = await page.query_all(dialog_selector)
        if not dialogs:
            return None
        for button in await page.query_all(button_selector, within=dialogs[0]):
            if fragment in await page.read_text(button):
                return button
        return None

    return Resolver(resolve, f"{dialog_selector} {button_selector} ~= {fragment!r}")
