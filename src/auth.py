from __future__ import annotations

import base64
import json
import logging
import time

import pyotp

from api_gateway import HttpClient, PlaywrightHttp
from errors import AuthFailure, WaitTimeout
from locators import LOGIN_OTP, LOGIN_PASSWORD, LOGIN_SUBMIT, LOGIN_USERNAME, resolve
from session import SessionContext
from waits import wait_until

logger = logging.getLogger(__name__)

LOGIN_PATH = "/authentication/api/v1/user/authenticate"

STORAGE_SCRIPT = """
(() => {
  window.sessionStorage.setItem('authToken', %s);
  window.sessionStorage.setItem('userData', %s);
})();
"""


def decode_jwt_payload(token: str) -> dict:
    parts = token.split(".")
    if len(parts) != 3:
        raise ValueError("not a JWT")
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
    if not isinstance(claims, dict):
        raise ValueError("JWT payload is not an object")
    return claims


def is_token_expired(token: str | None, now: float | None = None, leeway_s: int = 0) -> bool:
    """True for a missing, unparseable or expired JWT. Tokens without ``exp`` never expire."""
    if not token:
        return True
    try:
        claims = decode_jwt_payload(token)
    except ValueError:
        logger.warning("could not parse auth token")
        return True
    exp = claims.get("exp")
    if exp is None:
        return False
    current = time.time() if now is None else now
    return current + leeway_s > float(exp)


def reject_expired(token: str, target: str | None = None) -> None:
    """Refuse a JWT whose ``exp`` has already passed. Opaque tokens are taken as issued."""
    if token.count(".") == 2 and is_token_expired(token):
        raise AuthFailure("Login returned an expired token", target=target)


async def login_by_api(ctx: SessionContext, http: HttpClient | None = None) -> str:
    """Authenticate once per session and store the token on ``ctx``."""
    if ctx.has_token:
        return ctx.token  # type: ignore[return-value]
    settings = ctx.settings
    if not settings.has_credentials:
        raise AuthFailure(
            f"Missing required environment variables: USERNAME_{settings.environment}, PASSWORD_{settings.environment}",
            target=ctx.scenario,
        )
    client = http or PlaywrightHttp(ctx.api, settings.action_timeout_ms)
    url = settings.api_url(LOGIN_PATH)
    headers = {"Accept": "application/json", "Content-Type": "application/json"}
    resp = await client.post_json(url, headers, {"username": settings.username, "password": settings.password})
    if not 200 <= resp.status < 300:
        raise AuthFailure(f"Login failed with HTTP {resp.status}", target=url, status=resp.status)
    try:
        body = json.loads(resp.body)
    except ValueError:
        raise AuthFailure("Login response is not JSON", target=url, status=resp.status) from None
    data = body.get("data") if isinstance(body, dict) else None
    if not isinstance(body, dict) or not body.get("success") or not isinstance(data, dict) or not data.get("token"):
        raise AuthFailure(f"Login rejected: {str(body)[:200]}", target=url, status=resp.status)
    reject_expired(data["token"], url)
    ctx.token = data["token"]
    ctx.user = {"userName": data.get("userName") or settings.username, "roles": data.get("roles") or []}
    if ctx.verbose:
        print(f"✓ Logged in via API as {ctx.user['userName']}")
    return ctx.token  # type: ignore[return-value]


async def inject_session_storage(ctx: SessionContext) -> None:
    """Seed sessionStorage on every page of the context so the app starts logged in."""
    if not ctx.has_token:
        raise AuthFailure("No token to inject", target=ctx.scenario)
    script = STORAGE_SCRIPT % (json.dumps(ctx.token), json.dumps(json.dumps(ctx.user)))
    await ctx.browser_context.add_init_script(script=script)


async def login_via_ui(ctx: SessionContext) -> str:
    """Fill the login form (plus a TOTP step when the form asks for one) and read the token back."""
    settings = ctx.settings
    if not settings.has_credentials:
        raise AuthFailure(f"Missing credentials for {settings.environment}", target=ctx.scenario)
    await ctx.goto("/login")
    root = ctx.root()
    await resolve(root, LOGIN_USERNAME).fill(settings.username)
    await resolve(root, LOGIN_PASSWORD).fill(settings.password)
    await resolve(root, LOGIN_SUBMIT).click()
    if ctx.verbose:
        print("→ Submitted login form")

    otp = resolve(root, LOGIN_OTP)
    if await otp.count() and await otp.is_visible():
        if not settings.totp_secret:
            raise AuthFailure("Login asked for a one-time code but TOTP_SECRET is not set", target=ctx.scenario)
        code = pyotp.TOTP(settings.totp_secret).now()
        await otp.fill(code)
        await resolve(root, LOGIN_SUBMIT).click()
        if ctx.verbose:
            print("✓ OTP submitted")

    async def token_present() -> bool:
        return bool(await ctx.page.evaluate("() => window.sessionStorage.getItem('authToken')"))

    try:
        await wait_until(token_present, settings.navigation_timeout_ms, settings.poll_interval_ms, "auth token after login")
    except WaitTimeout as e:
        raise AuthFailure(f"UI login did not produce a token: {e}", target=ctx.scenario) from e
    token = await ctx.page.evaluate("() => window.sessionStorage.getItem('authToken')")
    reject_expired(token, ctx.scenario)
    ctx.token = token
    ctx.user = {"userName": settings.username, "roles": []}
    return ctx.token  # type: ignore[return-value]


async def ensure_authenticated(ctx: SessionContext, via_ui: bool = False, http: HttpClient | None = None) -> str:
    if ctx.has_token:
        return ctx.token  # type: ignore[return-value]
    if via_ui:
        return await login_via_ui(ctx)
    token = await login_by_api(ctx, http)
    if ctx.browser_context is not None:
        await inject_session_storage(ctx)
    return token
