from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping


class ConfigError(ValueError):
    pass


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Settings:
    base_url: str
    api_base_url: str
    environment: str = "QA"
    username: str = ""
    password: str = ""
    totp_secret: str = ""
    headless: bool = True
    verbose: bool = False
    action_timeout_ms: int = 30000
    navigation_timeout_ms: int = 60000
    settle_timeout_ms: int = 10000
    quiet_window_ms: int = 500
    poll_interval_ms: int = 100
    stale_retries: int = 3
    row_cap: int = 50
    max_pages: int = 20
    dashboard_path: str = "/dashboard/investigator"
    io_dashboard_path: str = "/dashboard/io"
    case_dashboard_path: str = "/case-dashboard"
    case_name: str = ""
    viewport: dict = field(default_factory=lambda: {"width": 1366, "height": 768})

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def url(self, path: str = "/") -> str:
        if path.startswith("http"):
            return path
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    def api_url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return self.api_base_url.rstrip("/") + "/" + path.lstrip("/")


def load_settings(environ: Mapping[str, str] | None = None, **overrides) -> Settings:
    """Build Settings from ENVIRONMENT-prefixed variables (BASE_URL_QA, USERNAME_QA, ...)."""
    env = os.environ if environ is None else environ
    environment = (env.get("ENVIRONMENT") or "QA").strip().upper()

    base_url = overrides.pop("base_url", None) or env.get(f"BASE_URL_{environment}") or env.get("BASE_URL", "")
    if not base_url:
        raise ConfigError(f"Missing required environment variables: BASE_URL_{environment} (or pass --base-url)")
    api_base_url = (
        overrides.pop("api_base_url", None)
        or env.get(f"BASE_URL_API_{environment}")
        or env.get("BASE_URL_API")
        or base_url
    )

    settings = Settings(
        base_url=base_url,
        api_base_url=api_base_url,
        environment=environment,
        username=env.get(f"USERNAME_{environment}") or env.get("LOGIN_USERNAME", ""),
        password=env.get(f"PASSWORD_{environment}") or env.get("LOGIN_PASSWORD", ""),
        totp_secret=env.get("TOTP_SECRET", ""),
        action_timeout_ms=_int(env, "ACTION_TIMEOUT_MS", 30000),
        navigation_timeout_ms=_int(env, "NAVIGATION_TIMEOUT_MS", 60000),
        settle_timeout_ms=_int(env, "SETTLE_TIMEOUT_MS", 10000),
        quiet_window_ms=_int(env, "QUIET_WINDOW_MS", 500),
        poll_interval_ms=_int(env, "POLL_INTERVAL_MS", 100),
        stale_retries=_int(env, "STALE_RETRIES", 3),
        row_cap=_int(env, "ROW_CAP", 50),
        max_pages=_int(env, "MAX_PAGES", 20),
        dashboard_path=env.get("DASHBOARD_PATH") or "/dashboard/investigator",
        io_dashboard_path=env.get("IO_DASHBOARD_PATH") or "/dashboard/io",
        case_dashboard_path=env.get("CASE_DASHBOARD_PATH") or "/case-dashboard",
        case_name=env.get("CASE_NAME", ""),
    )
    for name, value in overrides.items():
        if not hasattr(settings, name):
            raise ConfigError(f"Unknown setting: {name}")
        if value is not None:
            setattr(settings, name, value)
    return settings
