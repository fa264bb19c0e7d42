from __future__ import annotations

import logging
import urllib.parse
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from playwright.async_api import async_playwright

from config import Settings
from errors import AuthFailure
from handles import PlaywrightWidget, WidgetHandle

logger = logging.getLogger(__name__)


def host_allowed(url: str, allowed_hosts: list[str]) -> bool:
    try:
        host = urllib.parse.urlparse(url).hostname or ""
    except ValueError:
        return False
    if not host:
        return True
    return any(host == h or host.endswith("." + h) for h in allowed_hosts if h)


@dataclass
class SessionContext:
    """Everything one scenario owns: browser page, API client and its auth token.

    Created per scenario and passed into every component; nothing here is shared
    between scenarios. The token may be assigned once.
    """

    settings: Settings
    scenario: str = ""
    page: Any = None
    browser_context: Any = None
    api: Any = None
    root_handle: WidgetHandle | None = None
    user: dict = field(default_factory=dict)
    _token: str | None = field(default=None, repr=False)

    @property
    def verbose(self) -> bool:
        return self.settings.verbose

    @property
    def token(self) -> str | None:
        return self._token

    @token.setter
    def token(self, value: str) -> None:
        if self._token is not None:
            raise RuntimeError(f"Auth token already set for session {self.scenario or '(unnamed)'}")
        if not value:
            raise AuthFailure("Empty auth token", target=self.scenario)
        self._token = value

    @property
    def has_token(self) -> bool:
        return self._token is not None

    def auth_headers(self) -> dict[str, str]:
        if not self._token:
            raise AuthFailure("No auth token in session; log in first", target=self.scenario)
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def root(self) -> WidgetHandle:
        if self.root_handle is not None:
            return self.root_handle
        if self.page is None:
            raise RuntimeError("Session has no page")
        return PlaywrightWidget.root(self.page, self.settings.action_timeout_ms)

    async def goto(self, path: str = "/") -> None:
        target = self.settings.url(path)
        if self.verbose:
            print(f"→ Navigating to {target}")
        await self.page.goto(target, timeout=self.settings.navigation_timeout_ms)
        await self.page.wait_for_load_state("networkidle", timeout=self.settings.navigation_timeout_ms)


@asynccontextmanager
async def open_session(settings: Settings, scenario: str = "") -> AsyncIterator[SessionContext]:
    """Launch a browser and API client for one scenario; always closes them on exit."""
    allowed = [
        urllib.parse.urlparse(settings.base_url).hostname or "",
        urllib.parse.urlparse(settings.api_base_url).hostname or "",
    ]
    async with async_playwright() as p:
        browser = await p.chromium.launch(headless=settings.headless)
        try:
            context = await browser.new_context(viewport=settings.viewport)
            context.set_default_timeout(settings.action_timeout_ms)

            async def route_guard(route, request):
                if request.resource_type == "document" and request.is_navigation_request():
                    if not host_allowed(request.url, allowed):
                        if settings.verbose:
                            print(f"⛔ Blocking navigation: {request.url}")
                        await route.abort()
                        return
                await route.continue_()

            await context.route("**/*", route_guard)
            api = await p.request.new_context(ignore_https_errors=True)
            try:
                page = await context.new_page()
                ctx = SessionContext(settings=settings, scenario=scenario, page=page, browser_context=context, api=api)
                logger.debug("session opened for %s", scenario or "(unnamed)")
                yield ctx
            finally:
                await api.dispose()
                await context.close()
        finally:
            await browser.close()
            logger.debug("session closed for %s", scenario or "(unnamed)")
