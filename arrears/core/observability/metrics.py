"""In-process metrics counters and histograms."""

import time
from collections import defaultdict
from typing import Any

from arrears.core.config import settings

# Global metrics storage
_metrics = defaultdict(lambda: {"count": 0, "sum": 0.0, "values": [], "buckets": defaultdict(int)})


def _key(name: str, labels: dict[str, str] | None) -> str:
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in labels.items()) + "}"


def increment_counter(name: str, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
    """Increment a counter metric."""
    if not settings.enable_metrics:
        return
    _metrics[_key(name, labels)]["count"] += value


def record_histogram(name: str, value: float, labels: dict[str, str] | None = None) -> None:
    """Record a histogram measurement."""
    if not settings.enable_metrics:
        return

    metrics = _metrics[_key(name, labels)]
    metrics["count"] += 1
    metrics["sum"] += value
    metrics["values"].append(value)

    if value < 10:
        metrics["buckets"]["<10"] += 1
    elif value < 100:
        metrics["buckets"]["10-100"] += 1
    elif value < 1000:
        metrics["buckets"]["100-1000"] += 1
    elif value < 10000:
        metrics["buckets"]["1000-10000"] += 1
    else:
        metrics["buckets"][">=10000"] += 1


def observe_duration(start_time: float, name: str, labels: dict[str, str] | None = None) -> None:
    """Observe a duration measurement in milliseconds."""
    record_histogram(name, (time.time() - start_time) * 1000, labels)


def get_metrics() -> dict[str, Any]:
    """Get current metrics snapshot."""
    if not settings.enable_metrics:
        return {"note": "metrics disabled"}

    result = {}
    for key, data in _metrics.items():
        metric_result = {"count": data["count"], "sum": data["sum"]}
        if data["values"]:
            values = data["values"]
            metric_result.update(
                {
                    "min": min(values),
                    "max": max(values),
                    "avg": data["sum"] / len(values),
                    "buckets": dict(data["buckets"]),
                }
            )
        result[key] = metric_result
    return result


def get_count(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of a counter (0 when never incremented)."""
    key = _key(name, labels)
    if key not in _metrics:
        return 0
    return _metrics[key]["count"]


def reset_metrics() -> None:
    """Reset all metrics (useful for testing)."""
    _metrics.clear()


# Overdue computation
def increment_data_errors(reason: str) -> None:
    increment_counter("overdue_data_errors_total", labels={"reason": reason})


def increment_contracts_processed(n: float = 1.0) -> None:
    increment_counter("overdue_contracts_processed_total", value=n)


# Reminder dispatch
def increment_reminders_sent(n: float = 1.0) -> None:
    increment_counter("reminders_sent_total", value=n)


def increment_reminders_failed(n: float = 1.0) -> None:
    increment_counter("reminders_failed_total", value=n)


def increment_targets_unresolved(n: float = 1.0) -> None:
    increment_counter("reminder_targets_unresolved_total", value=n)


def record_send_duration(ms: float) -> None:
    record_histogram("reminder_send_duration_ms", ms)
