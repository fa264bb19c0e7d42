from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from errors import ElementNotFound, WaitTimeout
from handles import WidgetHandle
from locators import Dialog, FilterBox, LocatorSpec, Paginator, resolve
from records import attribute_flag, collapse_whitespace
from session import SessionContext
from waits import retry_stale, wait_for_quiescence, wait_until

logger = logging.getLogger(__name__)

SNAPSHOT_SAMPLE = 5


class WidgetPhase(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    STABLE = "stable"
    TIMED_OUT = "timed_out"
    CLOSING = "closing"


class NavOutcome(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    ADVANCED = "advanced"
    NO_OP = "no_op"
    STALLED = "stalled"
    APPLIED = "applied"
    TIMED_OUT = "timed_out"


class Direction(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class WidgetState:
    """What a widget shows right now. Read fresh for every step, never reused."""

    visible_rows: int
    range_label: str | None = None
    next_enabled: bool | None = None
    prev_enabled: bool | None = None
    empty_state: bool = False


@dataclass(frozen=True)
class NavResult:
    outcome: NavOutcome
    widget: str
    range_label: str | None = None
    state: WidgetState | None = None
    clicked: bool = False
    detail: str = ""

    @property
    def timed_out(self) -> bool:
        return self.outcome == NavOutcome.TIMED_OUT


async def is_control_enabled(handle: WidgetHandle) -> bool:
    """A control is disabled by a set ``disabled`` attribute or ``aria-disabled="true"``."""
    if await handle.count() == 0:
        raise ElementNotFound(f"No control for {handle.description}", target=handle.description)
    if attribute_flag(await handle.read_attribute("disabled")):
        return False
    aria = await handle.read_attribute("aria-disabled")
    if aria is not None and aria.strip().lower() == "true":
        return False
    return True


class Navigator:
    """Moves widgets between states with bounded waits.

    Operations run in call order. Each one ends in a terminal outcome (or a
    typed error for structural problems) before the caller extracts anything.
    """

    def __init__(self, ctx: SessionContext, root: WidgetHandle | None = None) -> None:
        self.ctx = ctx
        self.root = root or ctx.root()
        settings = ctx.settings
        self.action_timeout_ms = settings.action_timeout_ms
        self.settle_timeout_ms = settings.settle_timeout_ms
        self.quiet_ms = settings.quiet_window_ms
        self.poll_ms = settings.poll_interval_ms
        self.stale_retries = settings.stale_retries
        self.phases: dict[str, WidgetPhase] = {}

    def phase(self, name: str) -> WidgetPhase:
        return self.phases.get(name, WidgetPhase.CLOSED)

    def _set_phase(self, name: str, phase: WidgetPhase) -> None:
        logger.debug("%s: %s -> %s", name, self.phase(name).value, phase.value)
        self.phases[name] = phase

    def _resolve(self, spec: LocatorSpec) -> WidgetHandle:
        return resolve(self.root, spec)

    async def _visible(self, spec: LocatorSpec) -> bool:
        async def check() -> bool:
            handle = self._resolve(spec)
            if await handle.count() == 0:
                return False
            return await handle.is_visible()

        return await retry_stale(check, self.stale_retries, spec.name)

    async def _click(self, spec: LocatorSpec) -> None:
        await retry_stale(lambda: self._resolve(spec).click(), self.stale_retries, spec.name)

    async def _count(self, spec: LocatorSpec) -> int:
        return await retry_stale(lambda: self._resolve(spec).count(), self.stale_retries, spec.name)

    async def _read_label(self, spec: LocatorSpec) -> str | None:
        async def read() -> str | None:
            handle = self._resolve(spec)
            if await handle.count() == 0:
                return None
            return collapse_whitespace(await handle.read_text())

        return await retry_stale(read, self.stale_retries, spec.name)

    async def _enabled(self, spec: LocatorSpec) -> bool | None:
        async def read() -> bool | None:
            handle = self._resolve(spec)
            if await handle.count() == 0:
                return None
            return await is_control_enabled(handle)

        return await retry_stale(read, self.stale_retries, spec.name)

    async def snapshot(self, spec: LocatorSpec) -> tuple[int, tuple[str, ...]]:
        async def take() -> tuple[int, tuple[str, ...]]:
            handle = self._resolve(spec)
            total = await handle.count()
            texts = []
            for index in range(min(total, SNAPSHOT_SAMPLE)):
                texts.append(collapse_whitespace(await handle.nth(index).read_text()))
            return total, tuple(texts)

        return await retry_stale(take, self.stale_retries, spec.name)

    async def settle(self, spec: LocatorSpec) -> tuple[int, tuple[str, ...]]:
        """Wait until the rows under ``spec`` stop changing for the quiet window."""
        return await wait_for_quiescence(
            lambda: self.snapshot(spec),
            quiet_ms=self.quiet_ms,
            timeout_ms=self.settle_timeout_ms,
            poll_ms=self.poll_ms,
            description=spec.name,
        )

    async def open(self, dialog: Dialog) -> NavResult:
        name = dialog.name
        if await self._visible(dialog.container):
            if self.phase(name) not in (WidgetPhase.OPEN, WidgetPhase.STABLE):
                self._set_phase(name, WidgetPhase.OPEN)
            return NavResult(NavOutcome.OPEN, name, detail="already open")
        self._set_phase(name, WidgetPhase.OPENING)
        try:
            await self._click(dialog.trigger)
            await self._resolve(dialog.container).wait_for("visible", self.action_timeout_ms)
            self._set_phase(name, WidgetPhase.OPEN)
            await self.settle(dialog.content or dialog.container)
        except WaitTimeout as e:
            self._set_phase(name, WidgetPhase.TIMED_OUT)
            return NavResult(NavOutcome.TIMED_OUT, name, clicked=True, detail=str(e))
        self._set_phase(name, WidgetPhase.STABLE)
        return NavResult(NavOutcome.OPEN, name, clicked=True)

    async def close(self, dialog: Dialog) -> NavResult:
        name = dialog.name
        if not await self._visible(dialog.container):
            self._set_phase(name, WidgetPhase.CLOSED)
            return NavResult(NavOutcome.CLOSED, name, detail="already closed")
        self._set_phase(name, WidgetPhase.CLOSING)
        try:
            await self._click(dialog.close_button)
            await self._resolve(dialog.container).wait_for("hidden", self.action_timeout_ms)
        except WaitTimeout as e:
            self._set_phase(name, WidgetPhase.TIMED_OUT)
            return NavResult(NavOutcome.TIMED_OUT, name, clicked=True, detail=str(e))
        self._set_phase(name, WidgetPhase.CLOSED)
        return NavResult(NavOutcome.CLOSED, name, clicked=True)

    async def read_state(self, paginator: Paginator) -> WidgetState:
        rows = await self._count(paginator.rows) if paginator.rows is not None else 0
        return WidgetState(
            visible_rows=rows,
            range_label=await self._read_label(paginator.range_label),
            next_enabled=await self._enabled(paginator.next_button),
            prev_enabled=await self._enabled(paginator.prev_button),
            empty_state=rows == 0,
        )

    async def paginate(self, paginator: Paginator, direction: Direction = Direction.FORWARD) -> NavResult:
        name = paginator.name
        button = paginator.next_button if direction == Direction.FORWARD else paginator.prev_button
        try:
            enabled = await self._enabled(button)
            if enabled is None:
                raise ElementNotFound(f"{name} has no {direction.value} control", target=button.name)
            before = await self._read_label(paginator.range_label)
            if not enabled:
                logger.info("%s: %s control disabled", name, direction.value)
                return NavResult(NavOutcome.NO_OP, name, range_label=before)
            await self._click(button)
        except WaitTimeout as e:
            return NavResult(NavOutcome.TIMED_OUT, name, detail=str(e))

        async def label_changed() -> bool:
            return await self._read_label(paginator.range_label) != before

        try:
            await wait_until(label_changed, self.settle_timeout_ms, self.poll_ms, f"{name} range change")
        except WaitTimeout:
            logger.warning("%s: range stayed at %r after %s click", name, before, direction.value)
            return NavResult(NavOutcome.STALLED, name, range_label=before, clicked=True, detail=f"range stayed at {before!r}")
        after = await self._read_label(paginator.range_label)
        if paginator.rows is not None:
            try:
                await self.settle(paginator.rows)
            except WaitTimeout as e:
                return NavResult(NavOutcome.TIMED_OUT, name, range_label=after, clicked=True, detail=str(e))
        return NavResult(NavOutcome.ADVANCED, name, range_label=after, clicked=True)

    async def _filter_state(self, box: FilterBox) -> WidgetState:
        rows = await self._count(box.rows)
        empty = False
        if rows == 0 and box.empty_state is not None:
            empty = await self._visible(box.empty_state)
        return WidgetState(visible_rows=rows, empty_state=empty)

    async def apply_filter(self, box: FilterBox, criteria: str) -> NavResult:
        try:
            await retry_stale(lambda: self._resolve(box.input).fill(criteria), self.stale_retries, box.input.name)
            if box.submit_key:
                await retry_stale(lambda: self._resolve(box.input).press(box.submit_key), self.stale_retries, box.input.name)
            await self.settle(box.rows)
        except WaitTimeout as e:
            return NavResult(NavOutcome.TIMED_OUT, box.name, detail=str(e))
        return NavResult(NavOutcome.APPLIED, box.name, state=await self._filter_state(box))

    async def clear_filter(self, box: FilterBox) -> NavResult:
        try:
            if box.clear_button is not None and await self._visible(box.clear_button) and await self._enabled(box.clear_button):
                await self._click(box.clear_button)
            else:
                await retry_stale(lambda: self._resolve(box.input).fill(""), self.stale_retries, box.input.name)
                if box.submit_key:
                    await retry_stale(lambda: self._resolve(box.input).press(box.submit_key), self.stale_retries, box.input.name)
            await self.settle(box.rows)
        except WaitTimeout as e:
            return NavResult(NavOutcome.TIMED_OUT, box.name, detail=str(e))
        return NavResult(NavOutcome.APPLIED, box.name, state=await self._filter_state(box))
