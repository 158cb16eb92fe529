"""
Custom metric sink for API actions.

Locust already records one request statistic per HTTP call.  The actions
additionally emit named *trends* (durations in milliseconds) and *rates*
(boolean error samples) so that thresholds can be set per operation,
e.g. ``post_list_duration: p(95)<400`` or ``like_errors: rate<0.05``.

The sink is passed into :class:`~loadtest.actions.ApiActions` rather than
held in module-level globals, so the action library can be exercised in
tests with a fresh :class:`MetricsRegistry`.

In a distributed run the registries live on the workers.  Each worker
sends what it recorded since its last report (:meth:`MetricsRegistry.drain`)
along with Locust's own stats report, and the master folds it into its
registry (:meth:`MetricsRegistry.merge`) so thresholds are judged on the
whole run.

Key Concepts Demonstrated:
- ``typing.Protocol`` for an injected capability
- Bounded, mergeable histograms instead of raw sample lists
"""

from __future__ import annotations

from typing import Any, Protocol

from locust.stats import calculate_response_time_percentile

# Metric names shared by the actions, the profiles, and the tests.
LOGIN_DURATION = "login_duration"
LOGIN_ERRORS = "login_errors"
POST_LIST_DURATION = "post_list_duration"
POST_LIST_ERRORS = "post_list_errors"
POST_DETAIL_DURATION = "post_detail_duration"
POST_DETAIL_ERRORS = "post_detail_errors"
COMMENT_LIST_DURATION = "comment_list_duration"
COMMENT_LIST_ERRORS = "comment_list_errors"
LIKE_DURATION = "like_duration"
LIKE_ERRORS = "like_errors"
COMMENT_DURATION = "comment_duration"
COMMENT_ERRORS = "comment_errors"
POST_CREATE_DURATION = "post_create_duration"
POST_CREATE_ERRORS = "post_create_errors"
STATUS_DURATION = "status_duration"
STATUS_ERRORS = "status_errors"


class MetricsSink(Protocol):
    """Capability the API actions record their samples into."""

    def add_trend(self, name: str, value: float) -> None: ...

    def add_rate(self, name: str, value: bool) -> None: ...


def _bucket(value: float) -> int:
    """
    Round a duration to the bucket it is counted in.

    Same resolution as Locust's own response-time statistics: exact below
    100 ms, then two significant digits.
    """
    if value < 100:
        return int(round(value))
    if value < 1000:
        return int(round(value, -1))
    if value < 10000:
        return int(round(value, -2))
    return int(round(value, -3))


class Trend:
    """
    Bucketed numeric samples (durations in ms) for one metric.

    Samples are counted per rounded bucket rather than stored, so memory
    stays bounded however long the run lasts.  ``min``, ``max`` and ``avg``
    are exact; percentiles have the bucket resolution.
    """

    def __init__(self, name: str):
        self.name = name
        self.buckets: dict[int, int] = {}
        self.count = 0
        self.total = 0.0
        self.min: float | None = None
        self.max: float | None = None

    def add(self, value: float) -> None:
        value = float(value)
        bucket = _bucket(value)
        self.buckets[bucket] = self.buckets.get(bucket, 0) + 1
        self.count += 1
        self.total += value
        self.min = value if self.min is None else min(self.min, value)
        self.max = value if self.max is None else max(self.max, value)

    @property
    def avg(self) -> float | None:
        if not self.count:
            return None
        return self.total / self.count

    @property
    def med(self) -> float | None:
        return self.percentile(50)

    def percentile(self, pct: float) -> float | None:
        """
        Return the ``pct``-th percentile bucket.

        Returns ``None`` when no samples were recorded.
        """
        if not self.count:
            return None
        return float(calculate_response_time_percentile(self.buckets, self.count, pct / 100.0))

    def merge(self, data: dict[str, Any]) -> None:
        """Fold in a trend serialized by :meth:`serialize` on another process."""
        for bucket, hits in data["buckets"].items():
            bucket = int(bucket)
            self.buckets[bucket] = self.buckets.get(bucket, 0) + hits
        self.count += data["count"]
        self.total += data["total"]
        for attr, pick in (("min", min), ("max", max)):
            other = data[attr]
            if other is not None:
                current = getattr(self, attr)
                setattr(self, attr, other if current is None else pick(current, other))

    def serialize(self) -> dict[str, Any]:
        return {
            "buckets": dict(self.buckets),
            "count": self.count,
            "total": self.total,
            "min": self.min,
            "max": self.max,
        }

    def summary(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "avg": self.avg,
            "min": self.min,
            "med": self.med,
            "p(95)": self.percentile(95),
            "p(99)": self.percentile(99),
            "max": self.max,
        }


class Rate:
    """
    Ratio of true samples to all samples.

    Error rates record ``True`` for a failed call, so ``rate`` is the
    fraction of failed calls.
    """

    def __init__(self, name: str):
        self.name = name
        self.hits = 0
        self.total = 0

    def add(self, value: bool) -> None:
        self.total += 1
        if value:
            self.hits += 1

    @property
    def count(self) -> int:
        return self.total

    @property
    def rate(self) -> float | None:
        if self.total == 0:
            return None
        return self.hits / self.total

    def merge(self, data: dict[str, Any]) -> None:
        self.hits += data["hits"]
        self.total += data["total"]

    def serialize(self) -> dict[str, Any]:
        return {"hits": self.hits, "total": self.total}

    def summary(self) -> dict[str, Any]:
        return {"count": self.total, "hits": self.hits, "rate": self.rate}


class MetricsRegistry:
    """In-process store of trends and rates, created on first use."""

    def __init__(self) -> None:
        self.trends: dict[str, Trend] = {}
        self.rates: dict[str, Rate] = {}

    def trend(self, name: str) -> Trend:
        if name not in self.trends:
            self.trends[name] = Trend(name)
        return self.trends[name]

    def rate(self, name: str) -> Rate:
        if name not in self.rates:
            self.rates[name] = Rate(name)
        return self.rates[name]

    def add_trend(self, name: str, value: float) -> None:
        self.trend(name).add(value)

    def add_rate(self, name: str, value: bool) -> None:
        self.rate(name).add(value)

    def get(self, name: str) -> Trend | Rate | None:
        """Look up a metric by name without creating it."""
        return self.trends.get(name) or self.rates.get(name)

    def summary(self) -> dict[str, dict[str, Any]]:
        """Return every metric's aggregates, keyed by metric name."""
        data: dict[str, dict[str, Any]] = {}
        for name, trend in sorted(self.trends.items()):
            data[name] = trend.summary()
        for name, rate in sorted(self.rates.items()):
            data[name] = rate.summary()
        return data

    def serialize(self) -> dict[str, Any]:
        """Return a plain-data snapshot that survives Locust's RPC encoding."""
        return {
            "trends": {name: trend.serialize() for name, trend in self.trends.items()},
            "rates": {name: rate.serialize() for name, rate in self.rates.items()},
        }

    def drain(self) -> dict[str, Any]:
        """Serialize and forget everything recorded so far."""
        data = self.serialize()
        self.trends = {}
        self.rates = {}
        return data

    def merge(self, data: dict[str, Any] | None) -> None:
        """Fold a snapshot from :meth:`serialize` or :meth:`drain` into this registry."""
        if not data:
            return
        for name, trend in data.get("trends", {}).items():
            self.trend(name).merge(trend)
        for name, rate in data.get("rates", {}).items():
            self.rate(name).merge(rate)
