"""Tests for the check runner and the CLI report writers.

Tests cover:
- Typed failures recorded on result entries
- One independent session per check, closed on every path
- Scenario selection
- HTML report, archive and CSV log output
- CLI exit codes
"""

from __future__ import annotations

import csv
import json
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

import run_dashboard_checks
import runner
from consistency import compare
from errors import AssertionMismatch, EndpointFailure
from records import RecordSet
from runner import run_scenario, run_suite, sanitize_for_filename, select_scenarios
from scenarios import SCENARIOS, Scenario
from session import SessionContext
from tests.fakes import fast_settings


class SessionFactory:
    """Records every session it hands out and whether it was closed."""

    def __init__(self) -> None:
        self.opened: list[SessionContext] = []
        self.closed: list[str] = []

    @asynccontextmanager
    async def __call__(self, settings, scenario=""):
        ctx = SessionContext(settings=settings, scenario=scenario)
        ctx.token = f"token-{scenario}"
        self.opened.append(ctx)
        try:
            yield ctx
        finally:
            self.closed.append(scenario)


def mismatch_report():
    return compare(RecordSet.from_mapping({"Active Cases": 41}), RecordSet.from_mapping({"Active Cases": 42}), "label")


class TestRunScenario:
    """Tests for run_scenario."""

    @pytest.mark.asyncio
    async def test_passed_check(self, tmp_path) -> None:
        """A returning check is recorded as passed with its details."""
        factory = SessionFactory()
        check = Scenario("ok_check", "always passes", AsyncMock(return_value={"rows": 3}))

        result = await run_scenario(check, fast_settings(), tmp_path, session_factory=factory)

        assert result["status"] == "passed"
        assert result["details"] == {"rows": 3}
        assert result["error_kind"] == ""
        assert factory.closed == ["ok_check"]

    @pytest.mark.asyncio
    async def test_mismatch_keeps_comparison(self, tmp_path) -> None:
        """An assertion mismatch carries its report into the result entry."""
        report = mismatch_report()
        factory = SessionFactory()
        check = Scenario("cards", "mismatch", AsyncMock(side_effect=AssertionMismatch("cards differ", report)))

        result = await run_scenario(check, fast_settings(), tmp_path, session_factory=factory)

        assert result["status"] == "failed"
        assert result["error_kind"] == "assertion_mismatch"
        assert result["details"]["comparison"]["results"][0]["reason"] == "numeric_mismatch"
        assert factory.closed == ["cards"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (EndpointFailure("HTTP 500"), "endpoint_failure"),
            (AssertionError("plain assert"), "assertion_mismatch"),
            (ValueError("boom"), "unexpected"),
        ],
    )
    async def test_failures_are_typed(self, tmp_path, error: Exception, kind: str) -> None:
        """Every failure becomes a failed entry and the session is still closed."""
        factory = SessionFactory()
        check = Scenario("broken", "fails", AsyncMock(side_effect=error))

        result = await run_scenario(check, fast_settings(), tmp_path, session_factory=factory)

        assert result["status"] == "failed"
        assert result["error_kind"] == kind
        assert result["screenshot"] == ""
        assert factory.closed == ["broken"]


class TestRunSuite:
    """Tests for run_suite."""

    @pytest.mark.asyncio
    async def test_each_check_gets_its_own_session(self, tmp_path, monkeypatch) -> None:
        """Parallel checks never share a session or token."""
        checks = {
            "first": Scenario("first", "one", AsyncMock(return_value={})),
            "second": Scenario("second", "two", AsyncMock(return_value={})),
        }
        monkeypatch.setattr(runner, "SCENARIOS", checks)
        factory = SessionFactory()

        results = await run_suite(fast_settings(), None, tmp_path, parallel=2, session_factory=factory)

        assert [t["name"] for t in results["tests"]] == ["first", "second"]
        assert len({id(ctx) for ctx in factory.opened}) == 2
        assert {ctx.token for ctx in factory.opened} == {"token-first", "token-second"}
        assert sorted(factory.closed) == ["first", "second"]
        assert results["environment"] == "QA"

    def test_select_scenarios(self) -> None:
        """Unknown names stop the run; no names selects everything."""
        assert len(select_scenarios(None)) == len(SCENARIOS)
        assert [s.name for s in select_scenarios(["case_counts_match_api"])] == ["case_counts_match_api"]
        with pytest.raises(SystemExit):
            select_scenarios(["no_such_check"])

    def test_sanitize_for_filename(self) -> None:
        """Names become safe file names."""
        assert sanitize_for_filename("Check: cards / API") == "Check_cards_API"
        assert sanitize_for_filename("***") == "unnamed"


RESULTS = {
    "environment": "QA",
    "base_url": "https://dash.test",
    "tests": [
        {"name": "ok_check", "description": "passes", "status": "passed", "error": "", "details": {}},
        {
            "name": "cards",
            "description": "cards vs API",
            "status": "failed",
            "error": "Active Cases <41 vs 42>",
            "details": {"comparison": mismatch_report().to_dict()},
        },
    ],
}


class TestReports:
    """Tests for the report writers."""

    def test_html_report(self, tmp_path) -> None:
        """The report shows totals, escaped errors and the comparison table."""
        path = tmp_path / "report.html"
        run_dashboard_checks.write_html_report(RESULTS, path)
        html = path.read_text(encoding="utf-8")
        assert "<strong>Total:</strong> 2" in html
        assert "Active Cases &lt;41 vs 42&gt;" in html
        assert "<td>numeric_mismatch</td>" in html

    def test_csv_log_appends(self, tmp_path) -> None:
        """The header is written once and each run adds a row."""
        log = tmp_path / "run_log.csv"
        artifacts = {"results": tmp_path / "results.json"}
        run_dashboard_checks.log_to_csv(log, "20250101_000000", artifacts, RESULTS)
        run_dashboard_checks.log_to_csv(log, "20250101_000100", artifacts, RESULTS)
        with open(log, newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0][0] == "Timestamp"
        assert len(rows) == 3
        assert rows[1][2:4] == ["2", "1"]


class TestMain:
    """Tests for the CLI entry point."""

    def test_list(self, capsys) -> None:
        """--list prints every check name."""
        assert run_dashboard_checks.main(["--list"]) == 0
        out = capsys.readouterr().out
        for name in SCENARIOS:
            assert name in out

    def test_missing_configuration(self, monkeypatch, capsys) -> None:
        """A missing base URL exits with code 2."""
        for name in ("ENVIRONMENT", "BASE_URL", "BASE_URL_QA"):
            monkeypatch.delenv(name, raising=False)
        assert run_dashboard_checks.main([]) == 2
        assert "BASE_URL_QA" in capsys.readouterr().out

    def test_run_writes_artifacts(self, tmp_path, monkeypatch) -> None:
        """A run with a failed check writes its artifacts and exits 1."""
        captured = {}

        async def fake_suite(**kwargs):
            captured.update(kwargs)
            return RESULTS

        monkeypatch.setattr(run_dashboard_checks, "run_suite", fake_suite)
        runs = tmp_path / "runs"

        code = run_dashboard_checks.main(
            ["--base-url", "https://dash.test", "--runs-dir", str(runs), "--scenario", "cards", "--parallel", "2"]
        )

        assert code == 1
        assert captured["names"] == ["cards"]
        assert captured["parallel"] == 2
        assert captured["settings"].base_url == "https://dash.test"
        run_dir = next(p for p in runs.iterdir() if p.is_dir())
        assert json.loads((run_dir / "results.json").read_text()) == RESULTS
        assert (run_dir / "report.html").exists()
        assert (run_dir / "archive.zip").exists()
        assert (runs / "run_log.csv").exists()
