from __future__ import annotations

import json
import logging
import urllib.parse
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from playwright.async_api import Error as PlaywrightError

from errors import AuthFailure, DashboardCheckError, EndpointFailure, Result
from records import CanonicalRecord, FieldRule, RecordSet, apply_rule, sentinel_for
from session import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_COUNT_FIELDS = ("count", "total", "value", "cases", "active", "closed", "totalCases")


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: str
    url: str = ""


class HttpClient(Protocol):
    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse: ...

    async def post_json(self, url: str, headers: Mapping[str, str], data: Mapping[str, Any]) -> HttpResponse: ...


class PlaywrightHttp:
    """HttpClient over a Playwright APIRequestContext."""

    def __init__(self, request_context, timeout_ms: int = 30000) -> None:
        self.request = request_context
        self.timeout_ms = timeout_ms

    async def get(self, url: str, headers: Mapping[str, str]) -> HttpResponse:
        try:
            resp = await self.request.get(url, headers=dict(headers), timeout=self.timeout_ms)
            return HttpResponse(resp.status, await resp.text(), resp.url)
        except PlaywrightError as e:
            raise EndpointFailure(f"GET {url} failed: {e}", target=url) from e

    async def post_json(self, url: str, headers: Mapping[str, str], data: Mapping[str, Any]) -> HttpResponse:
        try:
            resp = await self.request.post(url, headers=dict(headers), data=json.dumps(data), timeout=self.timeout_ms)
            return HttpResponse(resp.status, await resp.text(), resp.url)
        except PlaywrightError as e:
            raise EndpointFailure(f"POST {url} failed: {e}", target=url) from e


@dataclass(frozen=True)
class FieldMap:
    source: str
    name: str
    rule: FieldRule = FieldRule.TRIMMED_TEXT


@dataclass(frozen=True)
class Endpoint:
    label: str
    path: str
    params: Mapping[str, str] = field(default_factory=dict)
    count_fields: tuple[str, ...] = ()
    list_path: str = ""
    fields: tuple[FieldMap, ...] = ()
    key_field: str = ""


def unwrap(payload: Any) -> Any:
    """Strip the ``{"success": ..., "data": ...}`` envelope most endpoints use."""
    if isinstance(payload, dict) and "data" in payload and payload["data"] is not None:
        return payload["data"]
    return payload


def dig(payload: Any, path: str, label: str = "") -> Any:
    if not path:
        return unwrap(payload)
    node = payload
    for part in path.split("."):
        if isinstance(node, dict) and part in node:
            node = node[part]
            continue
        if isinstance(node, dict) and "data" in node and isinstance(node["data"], dict) and part in node["data"]:
            node = node["data"][part]
            continue
        raise EndpointFailure(f"{label or 'response'} has no '{path}'", target=label or None)
    return node


def _as_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().replace(",", "").isdigit():
        return int(value.strip().replace(",", ""))
    return None


def extract_count(payload: Any, count_fields: Iterable[str] = (), label: str = "") -> int:
    """Pull a count out of a count endpoint's payload. Never defaults to zero."""
    body = unwrap(payload)
    count = _as_count(body)
    if count is None and isinstance(body, dict):
        for name in list(count_fields) + [f for f in DEFAULT_COUNT_FIELDS if f not in count_fields]:
            if name in body:
                count = _as_count(body[name])
                if count is not None:
                    break
        if count is None:
            numeric = [v for v in body.values() if _as_count(v) is not None and not isinstance(v, str)]
            if len(numeric) == 1:
                count = _as_count(numeric[0])
    if count is None:
        raise EndpointFailure(f"{label or 'count endpoint'} returned no count: {json.dumps(payload)[:200]}", target=label or None)
    if count < 0:
        raise EndpointFailure(f"{label or 'count endpoint'} returned negative count {count}", target=label or None)
    return count


def coerce_value(value: Any, rule: FieldRule) -> Any:
    if value is None:
        return sentinel_for(rule)
    if rule == FieldRule.BOOLEAN_FROM_ATTRIBUTE and isinstance(value, bool):
        return value
    if rule in (FieldRule.INTEGER, FieldRule.CURRENCY_DECIMAL):
        return apply_rule(rule, value)
    return apply_rule(rule, str(value))


def map_item(item: Mapping[str, Any], fields: Iterable[FieldMap]) -> CanonicalRecord:
    fields = list(fields)
    if not fields:
        return CanonicalRecord({k: v for k, v in item.items() if not isinstance(v, (dict, list))})
    return CanonicalRecord({f.name: coerce_value(item.get(f.source), f.rule) for f in fields})


class ApiGateway:
    """Authenticated reads from the application's count and list endpoints.

    Failures surface as AuthFailure or EndpointFailure. A successful zero is
    returned as 0 and is never confused with a failed call.
    """

    def __init__(self, ctx: SessionContext, http: HttpClient | None = None) -> None:
        self.ctx = ctx
        self.http = http or PlaywrightHttp(ctx.api, ctx.settings.action_timeout_ms)

    def url_for(self, endpoint: Endpoint) -> str:
        url = self.ctx.settings.api_url(endpoint.path)
        if endpoint.params:
            values = {
                "username": self.ctx.user.get("userName") or self.ctx.settings.username,
                "case_name": self.ctx.settings.case_name,
            }
            query = {k: v.format(**values) for k, v in endpoint.params.items()}
            url += ("&" if "?" in url else "?") + urllib.parse.urlencode(query)
        return url

    async def get_json(self, endpoint: Endpoint) -> Any:
        url = self.url_for(endpoint)
        resp = await self.http.get(url, self.ctx.auth_headers())
        logger.debug("GET %s -> %s", url, resp.status)
        if resp.status in (401, 403):
            raise AuthFailure(f"{endpoint.label}: HTTP {resp.status} from {url}", target=endpoint.label, status=resp.status)
        if not 200 <= resp.status < 300:
            raise EndpointFailure(f"{endpoint.label}: HTTP {resp.status} from {url}", target=endpoint.label, status=resp.status)
        try:
            payload = json.loads(resp.body)
        except ValueError:
            raise EndpointFailure(f"{endpoint.label}: response is not JSON", target=endpoint.label, status=resp.status) from None
        if isinstance(payload, dict) and payload.get("success") is False:
            raise EndpointFailure(f"{endpoint.label}: {payload.get('message') or 'success=false'}", target=endpoint.label, status=resp.status)
        return payload

    async def fetch_count(self, endpoint: Endpoint) -> int:
        payload = await self.get_json(endpoint)
        count = extract_count(payload, endpoint.count_fields, endpoint.label)
        if self.ctx.verbose:
            print(f"→ API {endpoint.label}: {count}")
        return count

    async def fetch_counts(self, endpoints: Iterable[Endpoint]) -> dict[str, Result[int]]:
        outcomes: dict[str, Result[int]] = {}
        for endpoint in endpoints:
            try:
                outcomes[endpoint.label] = Result.success(await self.fetch_count(endpoint))
            except DashboardCheckError as e:
                logger.warning("%s: %s", endpoint.label, e)
                outcomes[endpoint.label] = Result.failure(e)
        return outcomes

    async def fetch_list(self, endpoint: Endpoint) -> RecordSet:
        payload = await self.get_json(endpoint)
        items = dig(payload, endpoint.list_path, endpoint.label)
        if not isinstance(items, list):
            raise EndpointFailure(f"{endpoint.label}: expected a list, got {type(items).__name__}", target=endpoint.label)
        records = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise EndpointFailure(f"{endpoint.label}: item {index} is not an object", target=endpoint.label)
            records.append(map_item(item, endpoint.fields))
        key = endpoint.key_field or (endpoint.fields[0].name if endpoint.fields else "id")
        return RecordSet(records, key)

    async def fetch_record(self, endpoint: Endpoint) -> CanonicalRecord:
        payload = await self.get_json(endpoint)
        body = dig(payload, endpoint.list_path, endpoint.label)
        if not isinstance(body, dict):
            raise EndpointFailure(f"{endpoint.label}: expected an object, got {type(body).__name__}", target=endpoint.label)
        return map_item(body, endpoint.fields)


CASE_MANAGEMENT = "/ncrp-casemanagement/api/v1/caseManagement"

ACTIVE_CASES = Endpoint("Active Cases", f"{CASE_MANAGEMENT}/active/count")
REOPENED_CASES = Endpoint("Re-Opened Cases", f"{CASE_MANAGEMENT}/reopened/count")
CLOSED_CASES = Endpoint("Closed Cases", f"{CASE_MANAGEMENT}/closed/count")
TOTAL_CASES = Endpoint("Total Cases", f"{CASE_MANAGEMENT}/count", count_fields=("totalCases", "count", "total"))
CASE_COUNT_ENDPOINTS = (ACTIVE_CASES, REOPENED_CASES, CLOSED_CASES, TOTAL_CASES)

IO_DASHBOARD_SUMMARY = Endpoint(
    "IO dashboard summary",
    "/ncrp-casemanagement/api/v1/io/dashboard/summary",
    fields=(
        FieldMap("activeCases", "Active Cases", FieldRule.INTEGER),
        FieldMap("closedCases", "Closed Cases", FieldRule.INTEGER),
        FieldMap("totalCases", "Total Cases", FieldRule.INTEGER),
    ),
)

TOP_SUSPECTS = Endpoint(
    "top suspects",
    "/ncrpbase/api/v1/casedashboard/top/suspect",
    params={"userName": "{username}", "caseName": "{case_name}"},
    list_path="summaryList",
    fields=(
        FieldMap("accNo", "account", FieldRule.TRIMMED_TEXT),
        FieldMap("bankName", "bank", FieldRule.TRIMMED_TEXT),
        FieldMap("txAmount", "amount", FieldRule.CURRENCY_DECIMAL),
        FieldMap("txCount", "tx_count", FieldRule.INTEGER),
    ),
    key_field="account",
)

EXIT_MODE_INSIGHT = Endpoint(
    "exit mode insight",
    "/ncrpbase/api/v1/exit-mode-insight/exit-chart-data-all",
    params={"username": "{username}"},
    fields=(
        FieldMap("category", "category", FieldRule.TRIMMED_TEXT),
        FieldMap("count", "count", FieldRule.INTEGER),
        FieldMap("totalTxnAmount", "amount", FieldRule.CURRENCY_DECIMAL),
        FieldMap("totalDisputedAmount", "disputed", FieldRule.CURRENCY_DECIMAL),
    ),
    key_field="category",
)
