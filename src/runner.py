import asyncio
import re
import time
from pathlib import Path

from playwright.async_api import Error as PlaywrightError

from auth import ensure_authenticated
from config import Settings
from errors import DashboardCheckError
from scenarios import SCENARIOS, Scenario
from session import SessionContext, open_session


def sanitize_for_filename(text: str, max_len: int = 60) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", text).strip("_")
    return cleaned[:max_len] or "unnamed"


def select_scenarios(names: list[str] | None) -> list[Scenario]:
    if not names:
        return list(SCENARIOS.values())
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        raise SystemExit(f"Unknown scenario(s): {', '.join(unknown)}. Use --list to see available checks.")
    return [SCENARIOS[n] for n in names]


async def capture_failure(ctx: SessionContext, screenshots_dir: Path, name: str, error: str, verbose: bool = False) -> str:
    if ctx.page is None:
        return ""
    error_context = sanitize_for_filename(error.split("(")[0].strip()[:50]) if error else "error"
    shot = screenshots_dir / f"{sanitize_for_filename(name)}_failure_{error_context}.png"
    try:
        await ctx.page.screenshot(path=str(shot), full_page=True)
    except PlaywrightError as e:
        if verbose:
            print(f"⚠️ Could not save failure screenshot: {e}")
        return ""
    if verbose:
        print(f"📸 Failure screenshot saved: {shot.name}")
    return str(shot)


async def run_scenario(scenario: Scenario, settings: Settings, run_dir: Path, via_ui_login: bool = False, session_factory=open_session) -> dict:
    """Run one check in its own browser session and return its result entry."""
    verbose = settings.verbose
    screenshots_dir = run_dir / "screenshots"
    screenshots_dir.mkdir(parents=True, exist_ok=True)
    if verbose:
        print(f"\n===== Running Check: {scenario.name} =====")
    status = "passed"
    error = ""
    error_kind = ""
    screenshot = ""
    details: dict = {}
    started = time.monotonic()

    async with session_factory(settings, scenario.name) as ctx:
        try:
            await ensure_authenticated(ctx, via_ui=via_ui_login)
            details = await scenario.run(ctx)
        except DashboardCheckError as e:
            status, error, error_kind = "failed", str(e), e.kind.value
            report = getattr(e, "report", None)
            if report is not None:
                details = {"comparison": report.to_dict()}
        except AssertionError as e:
            status, error, error_kind = "failed", str(e), "assertion_mismatch"
        except Exception as e:
            status, error, error_kind = "failed", f"{type(e).__name__}: {e}", "unexpected"
        if status == "failed":
            current_url = ctx.page.url if ctx.page is not None else ""
            first_line = error.splitlines()[0] if error else ""
            print(f"✖ Check failed: {scenario.name} — {first_line} (url={current_url})")
            screenshot = await capture_failure(ctx, screenshots_dir, scenario.name, error, verbose)

    if status == "passed":
        print(f"✓ Passed: {scenario.name}")
    else:
        err_excerpt = error if len(error) < 300 else (error[:297] + "...")
        print(f"✖ Failed: {scenario.name} — {err_excerpt}")
    return {
        "name": scenario.name,
        "description": scenario.description,
        "status": status,
        "error": error,
        "error_kind": error_kind,
        "screenshot": screenshot,
        "duration_s": round(time.monotonic() - started, 2),
        "details": details,
    }


async def run_suite(settings: Settings, names: list[str] | None, run_dir: Path, parallel: int = 1, via_ui_login: bool = False, session_factory=open_session) -> dict:
    """Run the selected checks, each in an independent session, at most ``parallel`` at a time."""
    scenarios = select_scenarios(names)
    limit = asyncio.Semaphore(max(1, parallel))

    async def guarded(scenario: Scenario) -> dict:
        async with limit:
            return await run_scenario(scenario, settings, run_dir, via_ui_login, session_factory)

    results = await asyncio.gather(*(guarded(s) for s in scenarios))
    return {"environment": settings.environment, "base_url": settings.base_url, "tests": list(results)}
