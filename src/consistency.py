"""Reconciliation of UI-extracted records against API-reported records.

Everything here is pure: no I/O and no clock, so a report depends only on the
two record sets it was given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from errors import AssertionMismatch
from records import CanonicalRecord, FieldRule, RecordSet, as_number, collapse_whitespace, jsonable


class Reason(str, Enum):
    EXACT_MATCH = "exact_match"
    NUMERIC_MISMATCH = "numeric_mismatch"
    TEXT_MISMATCH = "text_mismatch"
    MISSING_IN_UI = "missing_in_ui"
    MISSING_IN_API = "missing_in_api"
    UNVALIDATED_FIELD = "unvalidated_field"


@dataclass(frozen=True)
class FieldDiff:
    field: str
    ui_value: Any
    api_value: Any
    matches: bool
    reason: Reason

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "ui_value": jsonable(self.ui_value),
            "api_value": jsonable(self.api_value),
            "matches": self.matches,
            "reason": self.reason.value,
        }


@dataclass(frozen=True)
class ComparisonResult:
    """Verdict for one key. ``field`` names the validated field the verdict is about."""

    key: Any
    ui_value: Any
    api_value: Any
    matches: bool
    reason: Reason
    field: str | None = None
    field_diffs: tuple[FieldDiff, ...] = ()

    def describe(self) -> str:
        where = f"{self.key}" + (f".{self.field}" if self.field else "")
        return f"{where}: {self.reason.value} (ui={jsonable(self.ui_value)!r}, api={jsonable(self.api_value)!r})"

    def to_dict(self) -> dict:
        return {
            "key": jsonable(self.key),
            "ui_value": jsonable(self.ui_value),
            "api_value": jsonable(self.api_value),
            "matches": self.matches,
            "reason": self.reason.value,
            "field": self.field,
            "field_diffs": [d.to_dict() for d in self.field_diffs],
        }


@dataclass(frozen=True)
class ConsistencyReport:
    overall_consistent: bool
    results: tuple[ComparisonResult, ...]
    summary: str
    key_field: str = ""
    duplicate_keys: dict = field(default_factory=dict)

    @property
    def mismatches(self) -> list[ComparisonResult]:
        return [r for r in self.results if not r.matches]

    def result_for(self, key: Any) -> ComparisonResult | None:
        for result in self.results:
            if result.key == key:
                return result
        return None

    def diff_lines(self) -> list[str]:
        lines = []
        for result in self.mismatches:
            lines.append(result.describe())
            for diff in result.field_diffs:
                if not diff.matches and diff.field != result.field:
                    lines.append(f"  {diff.field}: {diff.reason.value} (ui={jsonable(diff.ui_value)!r}, api={jsonable(diff.api_value)!r})")
        for side, keys in self.duplicate_keys.items():
            if keys:
                lines.append(f"duplicate keys in {side}: {', '.join(str(k) for k in keys)}")
        return lines

    def to_dict(self) -> dict:
        return {
            "overall_consistent": self.overall_consistent,
            "summary": self.summary,
            "key_field": self.key_field,
            "duplicate_keys": {side: [jsonable(k) for k in keys] for side, keys in self.duplicate_keys.items()},
            "results": [r.to_dict() for r in self.results],
        }


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    return collapse_whitespace(str(value))


NUMERIC_RULES = (FieldRule.INTEGER, FieldRule.CURRENCY_DECIMAL)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def values_equal(ui_value: Any, api_value: Any, rule: FieldRule | None = None) -> tuple[bool, Reason]:
    """Compare one field by its type.

    INTEGER and CURRENCY_DECIMAL fields compare by value, so "1,500" == 1500.
    Other rules compare as whitespace-collapsed text, so "00123" != "123". A field
    without a rule is numeric only when one side already holds a number.
    """
    numeric = rule in NUMERIC_RULES if rule is not None else _is_number(ui_value) or _is_number(api_value)
    if numeric:
        ui_num = as_number(ui_value)
        api_num = as_number(api_value)
        if ui_num is not None and api_num is not None:
            return (ui_num == api_num, Reason.EXACT_MATCH if ui_num == api_num else Reason.NUMERIC_MISMATCH)
        if ui_num is not None or api_num is not None:
            return False, Reason.NUMERIC_MISMATCH
    same = _as_text(ui_value) == _as_text(api_value)
    return same, Reason.EXACT_MATCH if same else Reason.TEXT_MISMATCH


def _index(records: Iterable[CanonicalRecord], key_field: str) -> tuple[dict, list]:
    index: dict = {}
    duplicates: list = []
    for record in records:
        key = record.get(key_field)
        if key in index:
            if key not in duplicates:
                duplicates.append(key)
            continue
        index[key] = record
    return index, duplicates


def _first_value(record: CanonicalRecord | None, fields: Sequence[str]) -> Any:
    if record is None or not fields:
        return None
    return record.get(fields[0])


def _summarize(results: Sequence[ComparisonResult], duplicates: dict) -> str:
    counts = {reason: 0 for reason in Reason}
    for result in results:
        counts[result.reason] += 1
    matched = sum(1 for r in results if r.matches)
    summary = (
        f"{len(results)} keys compared: {matched} matched, "
        f"{counts[Reason.NUMERIC_MISMATCH] + counts[Reason.TEXT_MISMATCH]} value mismatches, "
        f"{counts[Reason.MISSING_IN_API]} missing in API, {counts[Reason.MISSING_IN_UI]} missing in UI, "
        f"{counts[Reason.UNVALIDATED_FIELD]} informational"
    )
    dupes = sum(len(keys) for keys in duplicates.values())
    if dupes:
        summary += f"; {dupes} duplicate keys"
    return summary


def compare(
    ui_records: RecordSet,
    api_records: RecordSet,
    key_field: str | None = None,
    fields_to_validate: Sequence[str] = ("value",),
    informational_keys: Iterable[Any] = (),
    field_rules: Mapping[str, FieldRule] | None = None,
) -> ConsistencyReport:
    """Full outer join of two record sets on ``key_field``; one result per distinct key.

    Keys found on one side only are MISSING_IN_API / MISSING_IN_UI, unless listed in
    ``informational_keys``, in which case they are reported as UNVALIDATED_FIELD and
    do not affect the verdict. Duplicate keys on either side make the report
    inconsistent. ``field_rules`` gives the rule each field was extracted with,
    which decides numeric or text equality (see ``values_equal``).
    """
    key_field = key_field or ui_records.key_field
    fields = list(fields_to_validate)
    informational = set(informational_keys)
    rules = dict(field_rules or {})

    ui_index, ui_dupes = _index(ui_records, key_field)
    api_index, api_dupes = _index(api_records, key_field)
    keys = list(ui_index) + [k for k in api_index if k not in ui_index]

    results = []
    for key in keys:
        ui = ui_index.get(key)
        api = api_index.get(key)
        if ui is None or api is None:
            ui_value = _first_value(ui, fields)
            api_value = _first_value(api, fields)
            if key in informational:
                results.append(ComparisonResult(key, ui_value, api_value, True, Reason.UNVALIDATED_FIELD))
            else:
                reason = Reason.MISSING_IN_UI if ui is None else Reason.MISSING_IN_API
                results.append(ComparisonResult(key, ui_value, api_value, False, reason))
            continue
        if not fields:
            results.append(ComparisonResult(key, None, None, True, Reason.EXACT_MATCH))
            continue
        diffs = []
        for name in fields:
            matches, reason = values_equal(ui.get(name), api.get(name), rules.get(name))
            diffs.append(FieldDiff(name, ui.get(name), api.get(name), matches, reason))
        failing = [d for d in diffs if not d.matches]
        decisive = failing[0] if failing else diffs[0]
        results.append(
            ComparisonResult(key, decisive.ui_value, decisive.api_value, not failing, decisive.reason, decisive.field, tuple(diffs))
        )

    duplicates = {"ui": tuple(ui_dupes), "api": tuple(api_dupes)}
    overall = all(r.matches for r in results) and not ui_dupes and not api_dupes
    return ConsistencyReport(overall, tuple(results), _summarize(results, duplicates), key_field, duplicates)


def assert_consistent(report: ConsistencyReport, context: str = "") -> ConsistencyReport:
    if report.overall_consistent:
        return report
    header = f"{context}: {report.summary}" if context else report.summary
    raise AssertionMismatch("\n".join([header] + report.diff_lines()), report, target=context or None)


def check_sum_identity(
    records: RecordSet,
    part_keys: Sequence[Any],
    total_key: Any,
    value_field: str = "value",
    key_field: str | None = None,
) -> ConsistencyReport:
    """Check that the parts add up to the total, e.g. active + reopened + closed == total."""
    key_field = key_field or records.key_field
    index, duplicates = _index(records, key_field)
    results = []
    missing = [k for k in list(part_keys) + [total_key] if k not in index]
    for key in missing:
        results.append(ComparisonResult(key, None, None, False, Reason.MISSING_IN_UI, value_field))
    if not missing:
        parts = [as_number(index[k].get(value_field)) for k in part_keys]
        total = as_number(index[total_key].get(value_field))
        if total is None or any(p is None for p in parts):
            parts_sum = None
            matches, reason = False, Reason.NUMERIC_MISMATCH
        else:
            parts_sum = sum(parts, Decimal(0))
            matches = parts_sum == total
            reason = Reason.EXACT_MATCH if matches else Reason.NUMERIC_MISMATCH
        results.append(ComparisonResult(total_key, parts_sum, total, matches, reason, value_field))
        breakdown = " + ".join(f"{k} ({jsonable(index[k].get(value_field))})" for k in part_keys)
        summary = f"{breakdown} = {jsonable(parts_sum)}; {total_key} = {jsonable(total)}"
    else:
        summary = f"cannot check {total_key}: missing {', '.join(str(k) for k in missing)}"
    dupes = {"records": tuple(duplicates)}
    overall = all(r.matches for r in results) and not duplicates
    return ConsistencyReport(overall, tuple(results), summary, key_field, dupes)
