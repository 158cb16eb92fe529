"""
Validate Locust CSV output against a run profile's thresholds.

After a headless Locust run with ``--csv``, CI invokes this script to
decide whether the build passes.  It reads the ``*_stats.csv`` file,
extracts the **Aggregated** row, and evaluates the profile's
``http_req_failed`` and ``http_req_duration`` thresholds against it.
Custom per-operation metrics are not in the CSV; they are checked in
process when the run quits.

Exit codes follow a three-state convention so that CI can distinguish
"thresholds breached" from "script crashed":

- ``0`` -- all thresholds passed
- ``1`` -- at least one threshold was breached
- ``2`` -- the script itself failed (missing file, bad YAML, etc.)
"""

from __future__ import annotations

import argparse
import csv
import sys
from pathlib import Path
from typing import Any

from loadtest.errors import ThresholdError
from loadtest.profile import load_profile
from loadtest.thresholds import (
    HTTP_REQ_DURATION,
    HTTP_REQ_FAILED,
    Threshold,
    all_passed,
    evaluate,
    format_results,
)

# Three-state exit codes so CI can tell "test failed" from "script crashed".
EXIT_PASS = 0
EXIT_THRESHOLD_BREACH = 1
EXIT_SCRIPT_ERROR = 2

_AGGREGATE_COLUMNS = {
    "avg": "Average Response Time",
    "med": "Median Response Time",
    "min": "Min Response Time",
    "max": "Max Response Time",
    "count": "Request Count",
}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the threshold checker."""
    parser = argparse.ArgumentParser(
        description="Check Locust stats CSV against a load profile's thresholds."
    )
    parser.add_argument(
        "--stats",
        required=True,
        type=Path,
        help="Path to Locust *_stats.csv file",
    )
    parser.add_argument(
        "--profile",
        default="load",
        help="Bundled profile name or path to a profile YAML file",
    )
    return parser.parse_args(argv)


def _load_aggregated_row(stats_path: Path) -> dict[str, str]:
    """
    Find and return the ``Aggregated`` summary row from a Locust stats CSV.

    Checks both the ``Name`` and ``Type`` columns, since the column layout
    varies between Locust versions.

    Raises:
        ValueError: If no ``Aggregated`` row is found.
    """
    with stats_path.open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))

    for row in rows:
        if row.get("Name") == "Aggregated" or row.get("Type") == "Aggregated":
            return row

    raise ValueError("Could not find 'Aggregated' row in stats CSV")


def _parse_float(value: Any, field_name: str) -> float:
    """
    Coerce ``value`` to ``float``, stripping ``%`` suffixes if present.

    Raises:
        ValueError: If the value is missing, empty, or non-numeric.
    """
    if value is None:
        raise ValueError(f"Missing field: {field_name}")

    text = str(value).strip().replace("%", "")
    if text == "" or text == "N/A":
        raise ValueError(f"Empty value for field: {field_name}")

    try:
        return float(text)
    except ValueError as exc:
        raise ValueError(f"Non-numeric value for {field_name}: {value}") from exc


def _percentile_column(row: dict[str, str], percentile: float) -> str:
    """Return the CSV column holding ``percentile`` (e.g. ``95%``, ``99.9%``)."""
    label = f"{percentile:g}%"
    for candidate in (label, f"{percentile:g}%ile", f"p{percentile:g}"):
        if candidate in row and row[candidate] not in (None, ""):
            return candidate
    raise ValueError(f"Could not find {label} column in stats CSV")


def csv_resolver(row: dict[str, str]):
    """Resolve ``http_req_*`` thresholds from an Aggregated CSV row."""

    def resolve(threshold: Threshold) -> float | None:
        request_count = _parse_float(row.get("Request Count"), "Request Count")
        if request_count <= 0:
            raise ValueError("Request Count must be > 0 for threshold checks")

        if threshold.metric == HTTP_REQ_FAILED:
            failure_count = _parse_float(row.get("Failure Count"), "Failure Count")
            if threshold.aggregate == "rate":
                return failure_count / request_count
            if threshold.aggregate == "count":
                return failure_count
            raise ThresholdError(f"{HTTP_REQ_FAILED} supports rate and count only")

        if threshold.aggregate == "percentile":
            column = _percentile_column(row, threshold.percentile or 0.0)
            return _parse_float(row[column], column)
        column = _AGGREGATE_COLUMNS.get(threshold.aggregate)
        if column is None:
            raise ThresholdError(f"{HTTP_REQ_DURATION} does not support {threshold.expression!r}")
        return _parse_float(row.get(column), column)

    return resolve


def main(argv: list[str] | None = None) -> int:
    """
    Entry point: load the profile, parse the CSV, compare, and print results.

    Returns:
        ``EXIT_PASS`` (0) if all thresholds are met,
        ``EXIT_THRESHOLD_BREACH`` (1) if any are exceeded, or
        ``EXIT_SCRIPT_ERROR`` (2) on unexpected failures.
    """
    args = parse_args(argv)

    try:
        profile = load_profile(args.profile)
        thresholds = [
            threshold
            for threshold in profile.thresholds
            if threshold.metric in (HTTP_REQ_FAILED, HTTP_REQ_DURATION)
        ]
        if not thresholds:
            raise ValueError(f"Profile {profile.name} has no http_req_* thresholds")

        row = _load_aggregated_row(args.stats)
        results = evaluate(thresholds, csv_resolver(row))
        passed = all_passed(results)

        print("Performance Threshold Check")
        print(format_results(results))
        print("-" * 60)
        print(f"Overall: {'PASS' if passed else 'FAIL'}")
        return EXIT_PASS if passed else EXIT_THRESHOLD_BREACH
    except Exception as exc:  # pragma: no cover - defensive CLI guard
        print(f"Threshold check failed: {exc}", file=sys.stderr)
        return EXIT_SCRIPT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
