from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from api_gateway import CASE_COUNT_ENDPOINTS, EXIT_MODE_INSIGHT, IO_DASHBOARD_SUMMARY, TOP_SUSPECTS, ApiGateway
from consistency import ConsistencyReport, assert_consistent, check_sum_identity, compare
from errors import AssertionMismatch, WaitTimeout
from extractor import FieldSpec, Schema, extract_pairs, extract_rows, extract_texts
from locators import (
    CASE_CARD,
    CASE_CARD_LABEL,
    CASE_CARD_VALUE,
    CASE_GRID,
    EXIT_MODE_LEGEND,
    EXIT_MODE_LEGEND_ITEM,
    FUND_STATUS_FILTER,
    FUND_STATUS_PAGER,
    FUND_STATUS_SECTION,
    FUND_STATUS_TABLE,
    IO_SUMMARY,
    IO_SUMMARY_CARD,
    IO_SUMMARY_LABEL,
    IO_SUMMARY_VALUE,
    RELATED_DIALOG,
    TOP_SUSPECT_ITEM,
    TOP_SUSPECTS_PANEL,
    URGENT_FREEZES_FILTER,
    URGENT_FREEZES_PAGER,
    URGENT_FREEZES_PANEL,
    VIZ_DIALOG,
    LocatorSpec,
    resolve,
)
from navigator import Direction, NavOutcome, Navigator
from records import CanonicalRecord, FieldRule, RecordSet, RenderStatus, format_compact_inr
from session import SessionContext

logger = logging.getLogger(__name__)

INVALID_SEARCH_TERM = "INVALID_$$$###@@@"

CASE_CARD_LABELS = {
    "ACTIVE CASES": "Active Cases",
    "RE-OPENED CASES": "Re-Opened Cases",
    "REOPENED CASES": "Re-Opened Cases",
    "CLOSED CASES": "Closed Cases",
    "TOTAL CASES": "Total Cases",
}
CASE_PARTS = ("Active Cases", "Re-Opened Cases", "Closed Cases")
COUNT_RULES = {"value": FieldRule.INTEGER}

IO_CARD_LABELS = {
    "Active": "Active Cases",
    "Active Cases": "Active Cases",
    "Closed": "Closed Cases",
    "Closed Cases": "Closed Cases",
    "Total": "Total Cases",
    "Total Cases": "Total Cases",
}

URGENT_FREEZES_SCHEMA = Schema(
    fields=(
        FieldSpec("account", "td:nth-child(1)", FieldRule.TRIMMED_TEXT),
        FieldSpec("bank", "td:nth-child(2)", FieldRule.TRIMMED_TEXT),
        FieldSpec("amount", "td:nth-child(3)", FieldRule.CURRENCY_DECIMAL),
    ),
    key_field="account",
    row_selector=".panel__table table tbody tr:not(.mat-mdc-no-data-row)",
    empty_state_selector="tr.mat-mdc-no-data-row, .panel__empty",
)

RELATED_CASE_SCHEMA = Schema(
    fields=(
        FieldSpec("caseId", "td.cdk-column-caseId", FieldRule.TRIMMED_TEXT),
        FieldSpec("caseName", "td.cdk-column-caseName", FieldRule.TRIMMED_TEXT),
        FieldSpec("createdAt", "td.cdk-column-createdAt", FieldRule.TRIMMED_TEXT),
        FieldSpec("category", "td.cdk-column-category", FieldRule.TRIMMED_TEXT),
        FieldSpec("priority", "td.cdk-column-priority [class*='priority--']", FieldRule.CLASS_VARIANT),
        FieldSpec("status", "td.cdk-column-status", FieldRule.TRIMMED_TEXT),
    ),
    key_field="caseId",
    row_selector="tr.mat-mdc-row",
)

TOP_SUSPECT_SCHEMA = Schema(
    fields=(
        FieldSpec("rank", ".suspect-list__rank", FieldRule.INTEGER),
        FieldSpec("name", ".suspect-list__name", FieldRule.TRIMMED_TEXT),
        FieldSpec("amount_display", ".suspect-list__amount", FieldRule.TRIMMED_TEXT),
        FieldSpec("bank", ".suspect-pill", FieldRule.TRIMMED_TEXT),
        FieldSpec("tx_count", ".suspect-list__count", FieldRule.INTEGER),
    ),
    key_field="rank",
    row_selector=TOP_SUSPECT_ITEM,
)

# D = A - B - C for every case row.
FUND_COLUMNS = ("A", "B", "C", "D")

FUND_STATUS_SCHEMA = Schema(
    fields=(
        FieldSpec("case_name", "td:nth-child(1)", FieldRule.TRIMMED_TEXT),
        FieldSpec("A", "td:nth-child(2)", FieldRule.CURRENCY_DECIMAL),
        FieldSpec("B", "td:nth-child(3)", FieldRule.CURRENCY_DECIMAL),
        FieldSpec("C", "td:nth-child(4)", FieldRule.CURRENCY_DECIMAL),
        FieldSpec("D", "td:nth-child(5)", FieldRule.CURRENCY_DECIMAL),
        FieldSpec("status", "td:last-child", FieldRule.TRIMMED_TEXT),
    ),
    key_field="case_name",
    row_selector="tbody tr",
)


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    run: Callable[[SessionContext], Awaitable[dict]]


async def _ready(ctx: SessionContext, nav: Navigator, widget: LocatorSpec, items: LocatorSpec | None = None) -> None:
    """Wait for a widget to be visible and its items to stop changing."""
    await resolve(nav.root, widget).wait_for("visible", ctx.settings.navigation_timeout_ms)
    await nav.settle(items or widget)


async def case_counts_match_api(ctx: SessionContext) -> dict:
    await ctx.goto(ctx.settings.dashboard_path)
    nav = Navigator(ctx)
    await _ready(ctx, nav, CASE_GRID, CASE_GRID.child("case cards", CASE_CARD))
    grid = resolve(nav.root, CASE_GRID)
    ui = (await extract_pairs(grid, CASE_CARD, CASE_CARD_LABEL, CASE_CARD_VALUE)).relabel(CASE_CARD_LABELS)

    outcomes = await ApiGateway(ctx).fetch_counts(CASE_COUNT_ENDPOINTS)
    api = RecordSet.from_mapping({label: outcome.unwrap() for label, outcome in outcomes.items()})

    report = compare(ui, api, "label", ("value",), field_rules=COUNT_RULES)
    identity = check_sum_identity(ui, CASE_PARTS, "Total Cases")
    if ctx.verbose:
        print(f"→ {report.summary}")
        print(f"→ {identity.summary}")
    assert_consistent(report, "case count cards vs API")
    assert_consistent(identity, "case count total")
    return {"comparison": report.to_dict(), "sum_identity": identity.to_dict()}


async def io_summary_matches_api(ctx: SessionContext) -> dict:
    await ctx.goto(ctx.settings.io_dashboard_path)
    nav = Navigator(ctx)
    await _ready(ctx, nav, IO_SUMMARY, IO_SUMMARY.child("io summary card", IO_SUMMARY_CARD))
    cards = resolve(nav.root, IO_SUMMARY)
    ui = (await extract_pairs(cards, IO_SUMMARY_CARD, IO_SUMMARY_LABEL, IO_SUMMARY_VALUE)).relabel(IO_CARD_LABELS)

    summary = await ApiGateway(ctx).fetch_record(IO_DASHBOARD_SUMMARY)
    api = RecordSet.from_mapping(summary)

    report = compare(ui, api, "label", ("value",), field_rules=COUNT_RULES)
    identity = check_sum_identity(ui, ("Active Cases", "Closed Cases"), "Total Cases")
    assert_consistent(report, "IO summary cards vs API")
    assert_consistent(identity, "IO summary total")
    return {"comparison": report.to_dict(), "sum_identity": identity.to_dict()}


async def urgent_freezes_pagination(ctx: SessionContext) -> dict:
    await ctx.goto(ctx.settings.dashboard_path)
    nav = Navigator(ctx)
    await _ready(ctx, nav, URGENT_FREEZES_PANEL, URGENT_FREEZES_PAGER.rows)
    start = await nav.read_state(URGENT_FREEZES_PAGER)
    labels = [start.range_label]
    final = None
    for _ in range(ctx.settings.max_pages):
        result = await nav.paginate(URGENT_FREEZES_PAGER, Direction.FORWARD)
        if ctx.verbose:
            print(f"→ paginate: {result.outcome.value} {result.range_label or ''}")
        if result.outcome == NavOutcome.ADVANCED:
            if result.range_label in labels:
                raise AssertionMismatch(f"Range label {result.range_label!r} repeated after {labels}", target=URGENT_FREEZES_PAGER.name)
            labels.append(result.range_label)
            continue
        if result.outcome == NavOutcome.NO_OP:
            final = result
            break
        if result.outcome == NavOutcome.STALLED:
            raise AssertionMismatch(f"Pagination stalled at {result.range_label!r}: {result.detail}", target=URGENT_FREEZES_PAGER.name)
        raise WaitTimeout(result.detail or "pagination timed out", target=URGENT_FREEZES_PAGER.name)
    if final is None:
        logger.info("stopped after %d pages without reaching the last page", ctx.settings.max_pages)
    else:
        after = await nav.read_state(URGENT_FREEZES_PAGER)
        if after.range_label != final.range_label:
            raise AssertionMismatch(
                f"Disabled next button changed the range from {final.range_label!r} to {after.range_label!r}",
                target=URGENT_FREEZES_PAGER.name,
            )
    return {"pages": labels, "reached_last_page": final is not None}


async def urgent_freezes_empty_search(ctx: SessionContext) -> dict:
    await ctx.goto(ctx.settings.dashboard_path)
    nav = Navigator(ctx)
    await _ready(ctx, nav, URGENT_FREEZES_PANEL, URGENT_FREEZES_PAGER.rows)
    applied = await nav.apply_filter(URGENT_FREEZES_FILTER, INVALID_SEARCH_TERM)
    if applied.timed_out:
        raise WaitTimeout(applied.detail, target=URGENT_FREEZES_FILTER.name)
    rows = await extract_rows(resolve(nav.root, URGENT_FREEZES_PANEL), URGENT_FREEZES_SCHEMA)
    if len(rows):
        raise AssertionMismatch(f"Search {INVALID_SEARCH_TERM!r} returned {len(rows)} rows", target=URGENT_FREEZES_FILTER.name)
    if rows.status != RenderStatus.EMPTY:
        raise AssertionMismatch(f"Grid shows no rows and no empty-state message (status={rows.status.value})", target=URGENT_FREEZES_FILTER.name)
    cleared = await nav.clear_filter(URGENT_FREEZES_FILTER)
    return {
        "rows": len(rows),
        "status": rows.status.value,
        "rows_after_clear": cleared.state.visible_rows if cleared.state else None,
    }


async def related_cases_dialog(ctx: SessionContext) -> dict:
    await ctx.goto(ctx.settings.dashboard_path)
    nav = Navigator(ctx)
    opened = await nav.open(RELATED_DIALOG)
    if opened.outcome != NavOutcome.OPEN:
        raise WaitTimeout(opened.detail or "related cases dialog did not open", target=RELATED_DIALOG.name)
    again = await nav.open(RELATED_DIALOG)
    if again.clicked:
        raise AssertionMismatch("Opening an open dialog clicked the trigger again", target=RELATED_DIALOG.name)

    rows = await extract_rows(resolve(nav.root, VIZ_DIALOG), RELATED_CASE_SCHEMA.capped(ctx.settings.row_cap))
    if rows.duplicate_keys:
        raise AssertionMismatch(f"Duplicate case ids in dialog: {rows.duplicate_keys}", target=RELATED_DIALOG.name)
    priorities: dict[str, int] = {}
    for record in rows:
        key = record["priority"].value if record["priority"] is not None else "missing"
        priorities[key] = priorities.get(key, 0) + 1

    closed = await nav.close(RELATED_DIALOG)
    if closed.outcome != NavOutcome.CLOSED:
        raise WaitTimeout(closed.detail or "related cases dialog did not close", target=RELATED_DIALOG.name)
    await nav.close(RELATED_DIALOG)
    return {"rows": rows.to_list(), "truncated": rows.truncated, "priorities": priorities}


async def top_suspects_match_api(ctx: SessionContext) -> dict:
    path = ctx.settings.case_dashboard_path
    if ctx.settings.case_name:
        path = f"{path.rstrip('/')}/{ctx.settings.case_name}"
    await ctx.goto(path)
    nav = Navigator(ctx)
    await _ready(ctx, nav, TOP_SUSPECTS_PANEL, TOP_SUSPECTS_PANEL.child("suspect rows", TOP_SUSPECT_ITEM))
    ui = await extract_rows(resolve(nav.root, TOP_SUSPECTS_PANEL), TOP_SUSPECT_SCHEMA)

    suspects = await ApiGateway(ctx).fetch_list(TOP_SUSPECTS)
    ranked = [
        CanonicalRecord(
            rank=index + 1,
            account=record["account"],
            amount_display=format_compact_inr(record["amount"]),
            bank=record["bank"] or "—",
            tx_count=record["tx_count"],
        )
        for index, record in enumerate(suspects.records[: len(ui)])
    ]
    api = RecordSet(ranked, "rank")

    report = compare(ui, api, "rank", ("amount_display", "bank", "tx_count"), field_rules=TOP_SUSPECT_SCHEMA.rules)
    unmatched = [
        f"#{r['rank']}: {r['account']!r} not in {ui.get(r['rank'])['name']!r}"
        for r in api
        if ui.get(r["rank"]) is not None and r["account"] not in ui.get(r["rank"])["name"]
    ]
    assert_consistent(report, "top suspects vs API")
    if unmatched:
        raise AssertionMismatch("Account numbers differ: " + "; ".join(unmatched), target="top suspects")
    return {"comparison": report.to_dict()}


async def exit_mode_legend_matches_api(ctx: SessionContext) -> dict:
    await ctx.goto(ctx.settings.dashboard_path)
    nav = Navigator(ctx)
    await _ready(ctx, nav, EXIT_MODE_LEGEND, EXIT_MODE_LEGEND.child("legend item", EXIT_MODE_LEGEND_ITEM))
    labels = await extract_texts(resolve(nav.root, EXIT_MODE_LEGEND), EXIT_MODE_LEGEND_ITEM)
    ui = RecordSet((CanonicalRecord(category=label) for label in labels), "category")

    api = await ApiGateway(ctx).fetch_list(EXIT_MODE_INSIGHT)
    report = compare(ui, api, "category", ())
    assert_consistent(report, "exit mode legend vs API")
    return {"legend": labels, "comparison": report.to_dict()}


def fund_formula_failures(rows: RecordSet) -> tuple[list[str], ConsistencyReport | None]:
    """Rows where an amount is unreadable or D != A - B - C, with the first failing report."""
    failures = []
    first = None
    for record in rows:
        missing = [column for column in FUND_COLUMNS if record[column] is None]
        if missing:
            failures.append(f"{record['case_name']}: no amount in {', '.join(missing)}")
            continue
        identity = check_sum_identity(RecordSet.from_mapping({c: record[c] for c in FUND_COLUMNS}), ("B", "C", "D"), "A")
        if not identity.overall_consistent:
            failures.append(f"{record['case_name']}: D = A - B - C does not hold ({identity.summary})")
            first = first or identity
    return failures, first


async def fund_status_table(ctx: SessionContext) -> dict:
    await ctx.goto(ctx.settings.io_dashboard_path)
    nav = Navigator(ctx)
    await _ready(ctx, nav, FUND_STATUS_SECTION, FUND_STATUS_PAGER.rows)
    table = resolve(nav.root, FUND_STATUS_TABLE)
    schema = FUND_STATUS_SCHEMA.capped(ctx.settings.row_cap)
    rows = await extract_rows(table, schema)
    if not len(rows):
        raise AssertionMismatch(f"Fund status table has no rows (status={rows.status.value})", target=FUND_STATUS_SECTION.name)

    failures, report = fund_formula_failures(rows)
    if failures:
        raise AssertionMismatch("Fund status amounts:\n" + "\n".join(failures), report, target=FUND_STATUS_SECTION.name)

    before = await nav.read_state(FUND_STATUS_PAGER)
    term = rows[0]["case_name"]
    applied = await nav.apply_filter(FUND_STATUS_FILTER, term)
    if applied.timed_out:
        raise WaitTimeout(applied.detail, target=FUND_STATUS_FILTER.name)
    found = await extract_rows(table, schema)
    if not found.has_key(term):
        raise AssertionMismatch(f"Searching {term!r} did not list that case ({len(found)} rows)", target=FUND_STATUS_FILTER.name)

    cleared = await nav.clear_filter(FUND_STATUS_FILTER)
    if cleared.timed_out:
        raise WaitTimeout(cleared.detail, target=FUND_STATUS_FILTER.name)
    if cleared.state.visible_rows != before.visible_rows:
        raise AssertionMismatch(
            f"Clearing the search shows {cleared.state.visible_rows} rows, expected {before.visible_rows}",
            target=FUND_STATUS_FILTER.name,
        )

    pages = [before.range_label]
    if before.next_enabled:
        result = await nav.paginate(FUND_STATUS_PAGER)
        if result.outcome != NavOutcome.ADVANCED:
            raise AssertionMismatch(f"Fund status next page: {result.outcome.value} {result.detail}", target=FUND_STATUS_PAGER.name)
        pages.append(result.range_label)
    if ctx.verbose:
        print(f"→ fund status: {len(rows)} rows, search {term!r} -> {len(found)} rows, pages {pages}")
    return {
        "rows": rows.to_list(),
        "truncated": rows.truncated,
        "search": {"term": term, "rows": len(found)},
        "rows_after_clear": cleared.state.visible_rows,
        "pages": pages,
    }


SCENARIOS: dict[str, Scenario] = {
    s.name: s
    for s in (
        Scenario("case_counts_match_api", "Dashboard case-count cards equal the caseManagement count APIs", case_counts_match_api),
        Scenario("io_summary_matches_api", "IO dashboard summary cards equal the IO summary API", io_summary_matches_api),
        Scenario("urgent_freezes_pagination", "Urgent freezes paginator advances to a new range until disabled", urgent_freezes_pagination),
        Scenario("urgent_freezes_empty_search", "A search with no matches shows the empty state", urgent_freezes_empty_search),
        Scenario("related_cases_dialog", "Related cases dialog opens, lists cases and closes idempotently", related_cases_dialog),
        Scenario("top_suspects_match_api", "Top suspect rows equal the top suspect API", top_suspects_match_api),
        Scenario("exit_mode_legend_matches_api", "Exit mode legend lists the API's categories", exit_mode_legend_matches_api),
        Scenario("fund_status_table", "Fund status amounts satisfy D = A - B - C and the table search and clear work", fund_status_table),
    )
}
