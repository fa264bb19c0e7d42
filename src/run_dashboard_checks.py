#!/usr/bin/env python3

import argparse
import asyncio
import csv
import html
import json
import logging
import sys
import zipfile
from datetime import datetime
from pathlib import Path

from config import ConfigError, load_settings
from runner import run_suite
from scenarios import SCENARIOS


def write_html_report(results_json: dict, html_path: Path):
    tests = results_json.get("tests", [])
    passed = sum(1 for r in tests if r.get("status") == "passed")
    failed = sum(1 for r in tests if r.get("status") == "failed")
    total = len(tests)

    report = f"""
<html><head><title>Dashboard Consistency Report</title>
<style>
body {{ font-family: Arial, sans-serif; padding: 20px; }}
.summary {{ margin-bottom: 16px; }}
.pass {{ color: #0a7b44; }}
.fail {{ color: #b00020; }}
table.diff {{ border-collapse: collapse; margin: 8px 0; }}
table.diff td, table.diff th {{ border: 1px solid #ddd; padding: 4px 8px; }}
pre {{ background: #f6f8fa; padding: 12px; border-radius: 6px; overflow: auto; }}
</style>
</head><body>
  <h1>Dashboard Consistency Report</h1>
  <div class="summary">
    <strong>Environment:</strong> {html.escape(str(results_json.get('environment', '')))} &nbsp;
    <strong>Total:</strong> {total} &nbsp; <strong class="pass">Passed:</strong> {passed} &nbsp; <strong class="fail">Failed:</strong> {failed}
  </div>
  <hr />
  {''.join(render_test_result(tr) for tr in tests)}
</body></html>
"""
    with open(html_path, "w", encoding="utf-8") as f:
        f.write(report)


def render_comparison(comparison: dict) -> str:
    rows = []
    for result in comparison.get("results", []):
        status_class = "pass" if result.get("matches") else "fail"
        rows.append(
            f"<tr class=\"{status_class}\"><td>{html.escape(str(result.get('key')))}</td>"
            f"<td>{html.escape(str(result.get('field') or ''))}</td>"
            f"<td>{html.escape(str(result.get('ui_value')))}</td>"
            f"<td>{html.escape(str(result.get('api_value')))}</td>"
            f"<td>{html.escape(str(result.get('reason')))}</td></tr>"
        )
    return (
        f"<p>{html.escape(comparison.get('summary', ''))}</p>"
        "<table class=\"diff\"><tr><th>Key</th><th>Field</th><th>UI</th><th>API</th><th>Reason</th></tr>"
        + "".join(rows)
        + "</table>"
    )


def render_test_result(test_result: dict) -> str:
    status_class = "pass" if test_result.get("status") == "passed" else "fail"
    name = html.escape(test_result.get("name", "Unnamed Check"))
    error = test_result.get("error", "")
    screenshot = test_result.get("screenshot", "")
    details = test_result.get("details", {}) or {}
    comparison = details.get("comparison")
    comparison_block = render_comparison(comparison) if comparison else ""
    details_rendered = html.escape(json.dumps(details, indent=2))
    img_tag = f"<div><img src=\"{html.escape(screenshot)}\" style=\"max-width: 100%; border: 1px solid #ddd;\" /></div>" if screenshot else ""
    error_block = f"<pre>{html.escape(error)}</pre>" if error else ""
    return f"""
  <section>
    <h3 class="{status_class}">{name} — {test_result.get('status', 'unknown').upper()}</h3>
    <p>{html.escape(test_result.get('description', ''))}</p>
    {comparison_block}
    <details>
      <summary>Details</summary>
      <pre>{details_rendered}</pre>
    </details>
    {img_tag}
    {error_block}
  </section>
  <hr />
"""


def archive_files(zip_path: Path, files: list[Path]):
    with zipfile.ZipFile(zip_path, "w") as zf:
        for f in files:
            if f.exists():
                zf.write(f, arcname=f.name)


def log_to_csv(log_path: Path, timestamp: str, artifacts: dict, results_json: dict):
    csv_exists = log_path.exists()
    tests = results_json.get("tests", [])
    with open(log_path, "a", newline="") as csvfile:
        writer = csv.writer(csvfile)
        if not csv_exists:
            writer.writerow(["Timestamp", "Environment", "Total", "Failed", "Results", "Report", "Archive"])
        writer.writerow([
            timestamp,
            results_json.get("environment", ""),
            len(tests),
            sum(1 for r in tests if r.get("status") == "failed"),
            str(artifacts.get("results")),
            str(artifacts.get("report")),
            str(artifacts.get("archive")),
        ])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dashboard UI ↔ API consistency checks")
    parser.add_argument("--base-url", help="Base URL under test (defaults to BASE_URL_<ENVIRONMENT>)")
    parser.add_argument("--api-base-url", help="API base URL (defaults to BASE_URL_API_<ENVIRONMENT>)")
    parser.add_argument("--scenario", action="append", dest="scenarios", help="Check to run; repeat for several (default: all)")
    parser.add_argument("--list", action="store_true", help="List available checks and exit")
    parser.add_argument("--parallel", type=int, default=1, help="Checks to run at once, each in its own browser")
    parser.add_argument("--ui-login", action="store_true", help="Log in through the login form instead of the auth API")
    parser.add_argument("--runs-dir", default="data/runs", help="Where run folders are created")
    parser.add_argument("--headful", action="store_true", help="Run browser headful for debugging")
    parser.add_argument("--verbose", action="store_true", help="Print step logs and debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.list:
        for scenario in SCENARIOS.values():
            print(f"{scenario.name:32} {scenario.description}")
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = load_settings(
            base_url=args.base_url,
            api_base_url=args.api_base_url,
            headless=(not args.headful),
            verbose=args.verbose,
        )
    except ConfigError as e:
        print(f"✖ {e}")
        return 2

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    run_dir = Path(args.runs_dir) / f"run_{timestamp}"
    run_dir.mkdir(parents=True, exist_ok=True)
    (run_dir / "screenshots").mkdir(parents=True, exist_ok=True)

    print(f"🏃 Running dashboard checks against {settings.base_url} ({settings.environment})...")
    results_json = asyncio.run(run_suite(
        settings=settings,
        names=args.scenarios,
        run_dir=run_dir,
        parallel=args.parallel,
        via_ui_login=args.ui_login,
    ))

    results_path = run_dir / "results.json"
    with open(results_path, "w", encoding="utf-8") as f:
        json.dump(results_json, f, indent=2)
    print(f"📊 Results written: {results_path}")
    artifacts = {"results": results_path}

    report_path = run_dir / "report.html"
    write_html_report(results_json, report_path)
    artifacts["report"] = report_path
    print(f"📝 HTML report: {report_path}")

    archive_path = run_dir / "archive.zip"
    archive_files(archive_path, [results_path, report_path])
    artifacts["archive"] = archive_path
    print(f"📦 Archive: {archive_path}")

    log_to_csv(Path(args.runs_dir) / "run_log.csv", timestamp, artifacts, results_json)

    tests = results_json.get("tests", [])
    total = len(tests)
    passed = sum(1 for r in tests if r.get("status") == "passed")
    failed = total - passed
    if total:
        print(f"✅ Done. Total: {total}, Passed: {passed}, Failed: {failed}")
    else:
        print("✅ Done. No checks executed.")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
