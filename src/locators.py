from __future__ import annotations

from dataclasses import dataclass

from handles import WidgetHandle


@dataclass(frozen=True)
class LocatorSpec:
    """A named query for one semantic UI element, optionally scoped within another."""

    name: str
    selector: str
    within: "LocatorSpec | None" = None
    has_text: str | None = None
    nth: int | None = None

    def child(self, name: str, selector: str, has_text: str | None = None, nth: int | None = None) -> "LocatorSpec":
        return LocatorSpec(name, selector, within=self, has_text=has_text, nth=nth)


def resolve(root: WidgetHandle, spec: LocatorSpec) -> WidgetHandle:
    """Resolve ``spec`` from the document root. May match zero elements."""
    scope = resolve(root, spec.within) if spec.within is not None else root
    handle = scope.locate(spec.selector, has_text=spec.has_text)
    if spec.nth is not None:
        handle = handle.nth(spec.nth)
    return handle


@dataclass(frozen=True)
class Dialog:
    name: str
    trigger: LocatorSpec
    container: LocatorSpec
    close_button: LocatorSpec
    content: LocatorSpec | None = None


@dataclass(frozen=True)
class Paginator:
    name: str
    range_label: LocatorSpec
    next_button: LocatorSpec
    prev_button: LocatorSpec
    rows: LocatorSpec | None = None


@dataclass(frozen=True)
class FilterBox:
    name: str
    input: LocatorSpec
    rows: LocatorSpec
    submit_key: str | None = None
    clear_button: LocatorSpec | None = None
    empty_state: LocatorSpec | None = None


# Login page
LOGIN_USERNAME = LocatorSpec("login username", 'input[name="username"]')
LOGIN_PASSWORD = LocatorSpec("login password", 'input[name="password"]')
LOGIN_SUBMIT = LocatorSpec("login submit", 'button[type="submit"]')
LOGIN_OTP = LocatorSpec("login otp", "input[name*='otp'], input[id*='otp'], input[autocomplete='one-time-code']")

# Dashboard case-count cards
CASE_GRID = LocatorSpec("case grid", ".card-grid:not(.card-grid--compact)")
CASE_CARD = ".highlight-card"
CASE_CARD_LABEL = ".card-label"
CASE_CARD_VALUE = ".card-value"

# IO dashboard summary cards
IO_SUMMARY = LocatorSpec("io summary cards", "app-io-dashboard .io-summary-cards")
IO_SUMMARY_CARD = ".io-summary-card"
IO_SUMMARY_LABEL = ".io-summary-label"
IO_SUMMARY_VALUE = ".io-summary-value"

# Urgent freezes panel
URGENT_FREEZES_PANEL = LocatorSpec("urgent freezes panel", "app-urgent-freezes-panel")
URGENT_FREEZES_TABLE = URGENT_FREEZES_PANEL.child("urgent freezes table", ".panel__table table", nth=0)
URGENT_FREEZES_ROWS = URGENT_FREEZES_TABLE.child("urgent freezes rows", "tbody tr:not(.mat-mdc-no-data-row)")
URGENT_FREEZES_EMPTY = URGENT_FREEZES_PANEL.child("urgent freezes empty state", "tr.mat-mdc-no-data-row, .panel__empty")
URGENT_FREEZES_SEARCH = LocatorSpec("urgent freezes search", 'input[placeholder="Accounts, banks, amounts"]', nth=0)
URGENT_FREEZES_PAGINATOR = URGENT_FREEZES_PANEL.child("urgent freezes paginator", "mat-paginator", nth=0)

URGENT_FREEZES_PAGER = Paginator(
    name="urgent freezes paginator",
    range_label=URGENT_FREEZES_PAGINATOR.child("range", ".mat-mdc-paginator-range-label", nth=0),
    next_button=URGENT_FREEZES_PAGINATOR.child("next", "button.mat-mdc-paginator-navigation-next"),
    prev_button=URGENT_FREEZES_PAGINATOR.child("previous", "button.mat-mdc-paginator-navigation-previous"),
    rows=URGENT_FREEZES_ROWS,
)

URGENT_FREEZES_FILTER = FilterBox(
    name="urgent freezes search",
    input=URGENT_FREEZES_SEARCH,
    rows=URGENT_FREEZES_ROWS,
    submit_key="Enter",
    empty_state=URGENT_FREEZES_EMPTY,
)

# Related cases panel and its maximized dialog
RELATED_PANEL = LocatorSpec("related cases panel", 'article[data-area="related"]')
RELATED_MAXIMIZE = RELATED_PANEL.child("maximize related cases", 'button[aria-label="Maximize related cases"]')

VIZ_DIALOG = LocatorSpec("visualization dialog", "section.viz-dialog")
VIZ_DIALOG_ROWS = VIZ_DIALOG.child("dialog case rows", "tr.mat-mdc-row")

RELATED_DIALOG = Dialog(
    name="related cases dialog",
    trigger=RELATED_MAXIMIZE,
    container=VIZ_DIALOG,
    close_button=VIZ_DIALOG.child("close visualization", 'button[aria-label="Close visualization"]'),
    content=VIZ_DIALOG_ROWS,
)

# Top suspects list
TOP_SUSPECTS_PANEL = LocatorSpec("top suspects panel", 'article:has(h3:text("Top Suspect Account Names"))')
TOP_SUSPECT_ITEM = ".suspect-list__item"

# Exit mode insights chart
FUND_WIDGET = LocatorSpec("fund widget", 'article[data-area="fund"]')
EXIT_MODE_LEGEND = FUND_WIDGET.child("exit mode legend", "ngx-charts-legend ul.legend-labels")
EXIT_MODE_LEGEND_ITEM = "li.legend-label"

# Case-wise fund status table (IO dashboard)
FUND_STATUS_SECTION = LocatorSpec("fund status section", ".io-case-list-section", nth=0)
FUND_STATUS_TABLE = FUND_STATUS_SECTION.child("fund status table", "table", nth=0)
FUND_STATUS_ROWS = FUND_STATUS_TABLE.child("fund status rows", "tbody tr")
FUND_STATUS_EMPTY = FUND_STATUS_SECTION.child("fund status empty state", ".no-data, .empty-state")
FUND_STATUS_PAGINATION = FUND_STATUS_SECTION.child("fund status pagination", ".io-pagination-wrapper", nth=0)

FUND_STATUS_PAGER = Paginator(
    name="fund status paginator",
    range_label=FUND_STATUS_PAGINATION.child("active page", "button.active", nth=0),
    next_button=FUND_STATUS_PAGINATION.child("next", "button", has_text="Next", nth=0),
    prev_button=FUND_STATUS_PAGINATION.child("previous", "button", has_text="Previous", nth=0),
    rows=FUND_STATUS_ROWS,
)

FUND_STATUS_FILTER = FilterBox(
    name="fund status search",
    input=FUND_STATUS_SECTION.child("fund status search", 'input[placeholder="Search all columns"]', nth=0),
    rows=FUND_STATUS_ROWS,
    clear_button=FUND_STATUS_SECTION.child("clear fund filters", "button", has_text="Clear", nth=0),
    empty_state=FUND_STATUS_EMPTY,
)
