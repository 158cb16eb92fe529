"""
Pass/fail thresholds on aggregated metrics.

Thresholds are written the way k6 writes them, one or more expressions
per metric::

    post_list_duration: ["p(50)<200", "p(95)<400"]
    like_errors: ["rate<0.05"]

Supported aggregates are ``p(N)``, ``avg``, ``med``, ``min``, ``max``,
``count`` and ``rate``.  The two built-in metric names
``http_req_duration`` and ``http_req_failed`` refer to Locust's
aggregated request statistics rather than a custom metric.

Evaluation is decoupled from where the numbers come from: callers pass
a *resolver* that returns the actual value for a threshold, so the same
code checks the in-process :class:`~loadtest.metrics.MetricsRegistry`
at test stop and a Locust stats CSV after the run.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from loadtest.errors import ThresholdError
from loadtest.metrics import MetricsRegistry, Rate, Trend

HTTP_REQ_DURATION = "http_req_duration"
HTTP_REQ_FAILED = "http_req_failed"

_EXPRESSION = re.compile(
    r"^\s*(?P<aggregate>p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\)|avg|med|min|max|count|rate)"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*(?P<limit>-?\d+(?:\.\d+)?)\s*$"
)

# Aggregates that make sense for each kind of metric
_AGGREGATES_BY_KIND = {
    "rate": ("rate", "count"),
    "trend": ("percentile", "avg", "med", "min", "max", "count"),
}

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class Threshold:
    """One parsed threshold expression bound to a metric."""

    metric: str
    expression: str
    aggregate: str
    op: str
    limit: float
    percentile: float | None = None

    def check(self, actual: float) -> bool:
        return _OPERATORS[self.op](actual, self.limit)


@dataclass(frozen=True)
class ThresholdResult:
    """
    Outcome of one threshold.

    ``actual`` is ``None`` when the metric has no samples; such a
    threshold passes.
    """

    threshold: Threshold
    actual: float | None
    passed: bool


def metric_kind(metric: str) -> str | None:
    """
    Infer whether ``metric`` is a ``"rate"`` or a ``"trend"`` from its name.

    Error metrics end in ``_errors`` and durations in ``_duration``; the
    two built-in ``http_req_*`` names follow the same split.  Returns
    ``None`` for any other name.
    """
    if metric == HTTP_REQ_FAILED or metric.endswith("_errors"):
        return "rate"
    if metric == HTTP_REQ_DURATION or metric.endswith("_duration"):
        return "trend"
    return None


def parse_threshold(metric: str, expression: str) -> Threshold:
    """
    Parse a single expression such as ``p(95)<400`` or ``rate<0.01``.

    Raises:
        ThresholdError: If the expression is not understood, or its
            aggregate does not apply to the kind of metric.
    """
    match = _EXPRESSION.match(str(expression))
    if match is None:
        raise ThresholdError(f"Invalid threshold for {metric}: {expression!r}")

    pct = match.group("pct")
    aggregate = "percentile" if pct is not None else match.group("aggregate")
    percentile = float(pct) if pct is not None else None
    if percentile is not None and not 0 <= percentile <= 100:
        raise ThresholdError(f"Percentile out of range for {metric}: {expression!r}")

    kind = metric_kind(metric)
    if kind is not None and aggregate not in _AGGREGATES_BY_KIND[kind]:
        raise ThresholdError(f"{metric} is a {kind}; {expression!r} does not apply")

    return Threshold(
        metric=metric,
        expression=str(expression).strip(),
        aggregate=aggregate,
        op=match.group("op"),
        limit=float(match.group("limit")),
        percentile=percentile,
    )


def parse_thresholds(data: Mapping[str, Any] | None) -> tuple[Threshold, ...]:
    """
    Parse the ``thresholds`` mapping of a run profile.

    Each value may be a single expression or a list of expressions.
    """
    thresholds: list[Threshold] = []
    for metric, expressions in (data or {}).items():
        if isinstance(expressions, str):
            expressions = [expressions]
        if not isinstance(expressions, list):
            raise ThresholdError(f"Thresholds for {metric} must be a string or a list")
        thresholds.extend(parse_threshold(metric, expression) for expression in expressions)
    return tuple(thresholds)


def metric_value(metric: Trend | Rate | None, threshold: Threshold) -> float | None:
    """Extract the aggregate a threshold asks for from a registry metric."""
    if metric is None or metric.count == 0:
        return None

    if isinstance(metric, Rate):
        if threshold.aggregate == "count":
            return float(metric.count)
        if threshold.aggregate != "rate":
            raise ThresholdError(
                f"{threshold.metric} is a rate; {threshold.expression!r} does not apply"
            )
        return metric.rate

    if threshold.aggregate == "percentile":
        return metric.percentile(threshold.percentile or 0.0)
    if threshold.aggregate == "count":
        return float(metric.count)
    if threshold.aggregate == "rate":
        raise ThresholdError(
            f"{threshold.metric} is a trend; {threshold.expression!r} does not apply"
        )
    return getattr(metric, threshold.aggregate)


def registry_resolver(registry: MetricsRegistry) -> Callable[[Threshold], float | None]:
    """Resolve thresholds against custom metrics recorded during the run."""

    def resolve(threshold: Threshold) -> float | None:
        return metric_value(registry.get(threshold.metric), threshold)

    return resolve


def evaluate(
    thresholds: Iterable[Threshold],
    resolve: Callable[[Threshold], float | None],
) -> list[ThresholdResult]:
    """Evaluate each threshold with the actual value from ``resolve``."""
    results = []
    for threshold in thresholds:
        actual = resolve(threshold)
        passed = True if actual is None else threshold.check(actual)
        results.append(ThresholdResult(threshold=threshold, actual=actual, passed=passed))
    return results


def all_passed(results: Iterable[ThresholdResult]) -> bool:
    return all(result.passed for result in results)


def format_results(results: Iterable[ThresholdResult]) -> str:
    """Render results as a fixed-width table for logs and CI output."""
    lines = [
        f"{'Metric':<24}{'Threshold':<14}{'Actual':>12}{'Status':>10}",
        "-" * 60,
    ]
    for result in results:
        actual = "n/a" if result.actual is None else f"{result.actual:.4g}"
        status = "PASS" if result.passed else "FAIL"
        lines.append(
            f"{result.threshold.metric:<24}{result.threshold.expression:<14}{actual:>12}{status:>10}"
        )
    return "\n".join(lines)


def locust_stats_resolver(
    total: Any,
    fallback: Callable[[Threshold], float | None] | None = None,
) -> Callable[[Threshold], float | None]:
    """
    Resolve ``http_req_*`` thresholds from Locust's aggregated stats entry.

    Args:
        total: ``environment.stats.total`` (a Locust ``StatsEntry``).
        fallback: Resolver for every other metric name.
    """

    def resolve(threshold: Threshold) -> float | None:
        if threshold.metric not in (HTTP_REQ_FAILED, HTTP_REQ_DURATION):
            return fallback(threshold) if fallback else None
        if total.num_requests == 0:
            return None

        if threshold.metric == HTTP_REQ_FAILED:
            if threshold.aggregate == "rate":
                return total.fail_ratio
            if threshold.aggregate == "count":
                return float(total.num_failures)
            raise ThresholdError(f"{HTTP_REQ_FAILED} supports rate and count only")

        if threshold.aggregate == "percentile":
            return float(total.get_response_time_percentile((threshold.percentile or 0.0) / 100.0))
        if threshold.aggregate == "avg":
            return float(total.avg_response_time)
        if threshold.aggregate == "med":
            return float(total.median_response_time)
        if threshold.aggregate == "min":
            return float(total.min_response_time or 0)
        if threshold.aggregate == "max":
            return float(total.max_response_time)
        if threshold.aggregate == "count":
            return float(total.num_requests)
        raise ThresholdError(f"{HTTP_REQ_DURATION} does not support {threshold.expression!r}")

    return resolve
