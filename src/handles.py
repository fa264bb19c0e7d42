from __future__ import annotations

import logging
from typing import Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from errors import ElementNotFound, StaleReference, WaitTimeout

logger = logging.getLogger(__name__)

STALE_MARKERS = (
    "not attached to the dom",
    "element is detached",
    "execution context was destroyed",
    "node is detached",
)


class WidgetHandle(Protocol):
    """What the extraction and navigation layers need from a located element."""

    description: str

    async def count(self) -> int: ...

    def nth(self, index: int) -> "WidgetHandle": ...

    def locate(self, selector: str, has_text: str | None = None) -> "WidgetHandle": ...

    async def read_text(self) -> str: ...

    async def read_attribute(self, name: str) -> str | None: ...

    async def is_visible(self) -> bool: ...

    async def click(self) -> None: ...

    async def fill(self, text: str) -> None: ...

    async def press(self, key: str) -> None: ...

    async def wait_for(self, state: str = "visible", timeout_ms: int | None = None) -> None: ...


def _translate(exc: PlaywrightError, description: str, action: str):
    message = str(exc)
    if isinstance(exc, PlaywrightTimeoutError):
        return WaitTimeout(f"{action} timed out on {description}: {message.splitlines()[0] if message else ''}", target=description)
    lowered = message.lower()
    if any(marker in lowered for marker in STALE_MARKERS):
        return StaleReference(f"{action} hit a re-rendered element {description}", target=description)
    return ElementNotFound(f"{action} failed on {description}: {message.splitlines()[0] if message else ''}", target=description)


class PlaywrightWidget:
    """WidgetHandle over a Playwright Locator; maps driver errors to ErrorKind exceptions."""

    def __init__(self, locator: Locator, description: str = "", timeout_ms: int = 30000) -> None:
        self.locator = locator
        self.description = description or str(locator)
        self.timeout_ms = timeout_ms

    @classmethod
    def root(cls, page: Page, timeout_ms: int = 30000) -> "PlaywrightWidget":
        return cls(page.locator("html"), "document", timeout_ms)

    def _child(self, locator: Locator, description: str) -> "PlaywrightWidget":
        return PlaywrightWidget(locator, description, self.timeout_ms)

    async def count(self) -> int:
        try:
            return await self.locator.count()
        except PlaywrightError as e:
            raise _translate(e, self.description, "count") from e

    def nth(self, index: int) -> "PlaywrightWidget":
        return self._child(self.locator.nth(index), f"{self.description}[{index}]")

    def locate(self, selector: str, has_text: str | None = None) -> "PlaywrightWidget":
        if has_text:
            child = self.locator.locator(selector, has_text=has_text)
            return self._child(child, f"{self.description} >> {selector}:has-text({has_text!r})")
        return self._child(self.locator.locator(selector), f"{self.description} >> {selector}")

    async def read_text(self) -> str:
        try:
            return await self.locator.first.inner_text(timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise _translate(e, self.description, "read_text") from e

    async def read_attribute(self, name: str) -> str | None:
        try:
            return await self.locator.first.get_attribute(name, timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise _translate(e, self.description, f"read_attribute({name})") from e

    async def is_visible(self) -> bool:
        try:
            return await self.locator.first.is_visible()
        except PlaywrightError as e:
            raise _translate(e, self.description, "is_visible") from e

    async def click(self) -> None:
        logger.debug("click %s", self.description)
        try:
            await self.locator.first.click(timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise _translate(e, self.description, "click") from e

    async def fill(self, text: str) -> None:
        logger.debug("fill %s", self.description)
        try:
            await self.locator.first.fill(text, timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise _translate(e, self.description, "fill") from e

    async def press(self, key: str) -> None:
        try:
            await self.locator.first.press(key, timeout=self.timeout_ms)
        except PlaywrightError as e:
            raise _translate(e, self.description, f"press({key})") from e

    async def wait_for(self, state: str = "visible", timeout_ms: int | None = None) -> None:
        try:
            await self.locator.first.wait_for(state=state, timeout=timeout_ms if timeout_ms is not None else self.timeout_ms)
        except PlaywrightError as e:
            raise _translate(e, self.description, f"wait_for({state})") from e
