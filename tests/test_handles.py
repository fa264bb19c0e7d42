"""Tests for the Playwright handle adapter and the TOTP helper."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pyotp
import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from errors import ElementNotFound, StaleReference, WaitTimeout
from handles import PlaywrightWidget
from locators import URGENT_FREEZES_PAGER, resolve
from totp_cli import current_code, main, seconds_remaining


def widget(**first_methods) -> PlaywrightWidget:
    locator = MagicMock()
    for name, mock in first_methods.items():
        setattr(locator.first, name, mock)
    return PlaywrightWidget(locator, "range label", timeout_ms=50)


class TestPlaywrightWidget:
    """Tests for driver error translation."""

    @pytest.mark.asyncio
    async def test_reads_first_match(self) -> None:
        """Text is read from the first matching element with the handle's timeout."""
        inner_text = AsyncMock(return_value="1 – 5 of 12")
        assert await widget(inner_text=inner_text).read_text() == "1 – 5 of 12"
        inner_text.assert_awaited_once_with(timeout=50)

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Driver timeouts become WaitTimeout."""
        handle = widget(inner_text=AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 50ms exceeded.")))
        with pytest.raises(WaitTimeout) as exc_info:
            await handle.read_text()
        assert exc_info.value.target == "range label"

    @pytest.mark.asyncio
    async def test_detached_element(self) -> None:
        """Detached elements become StaleReference."""
        handle = widget(click=AsyncMock(side_effect=PlaywrightError("Element is not attached to the DOM")))
        with pytest.raises(StaleReference):
            await handle.click()

    @pytest.mark.asyncio
    async def test_other_driver_errors(self) -> None:
        """Anything else is ElementNotFound."""
        handle = widget(get_attribute=AsyncMock(side_effect=PlaywrightError("strict mode violation")))
        with pytest.raises(ElementNotFound):
            await handle.read_attribute("disabled")

    def test_resolve_builds_scoped_locator(self) -> None:
        """Scoped specs chain locators from the document root."""
        page = MagicMock()
        handle = resolve(PlaywrightWidget.root(page), URGENT_FREEZES_PAGER.next_button)
        assert "app-urgent-freezes-panel" in handle.description
        assert handle.description.endswith("button.mat-mdc-paginator-navigation-next")
        page.locator.assert_called_once_with("html")


class TestTotp:
    """Tests for the TOTP helper."""

    SECRET = "JBSWY3DPEHPK3PXP"

    def test_code_for_time(self) -> None:
        """Codes match pyotp for the same instant."""
        assert current_code(self.SECRET, for_time=1_700_000_000) == pyotp.TOTP(self.SECRET).at(1_700_000_000)

    def test_seconds_remaining(self) -> None:
        """The window counts down to the next 30 second boundary."""
        assert seconds_remaining(now=60) == 30
        assert seconds_remaining(now=89.5) == 1

    def test_main_without_secret(self, monkeypatch, capsys) -> None:
        """No argument and no TOTP_SECRET is an error."""
        monkeypatch.delenv("TOTP_SECRET", raising=False)
        assert main([]) == 1
        assert "No secret" in capsys.readouterr().out

    def test_main_prints_code(self, monkeypatch, capsys) -> None:
        """The code comes from TOTP_SECRET when no argument is given."""
        monkeypatch.setenv("TOTP_SECRET", self.SECRET)
        assert main([]) == 0
        assert len(capsys.readouterr().out.split()[0]) == 6
