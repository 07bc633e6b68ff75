"""In-process Prometheus-style metrics for the prompt dispatcher.

Series live in module-level maps guarded by one lock and are rendered in the
text exposition format on ``/metrics``.
"""

import bisect
import threading
from dataclasses import dataclass, field

from fastapi import APIRouter, Response

LabelKey = tuple[tuple[str, str], ...]

# Upstream model calls are slow; the top buckets cover the 45 s timeout.
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)

HELP = {
    "grc_dispatch_requests_total": "Dispatch requests by provider type, tier and outcome",
    "grc_dispatch_duration_seconds": "End-to-end dispatch latency",
    "grc_tokens_total": "Tokens reported by upstream providers",
    "grc_usage_log_failures_total": "Usage records that could not be written",
}


@dataclass
class _Histogram:
    bucket_counts: list[int] = field(default_factory=lambda: [0] * len(LATENCY_BUCKETS))
    total: float = 0.0
    count: int = 0

    def observe(self, value: float) -> None:
        index = bisect.bisect_left(LATENCY_BUCKETS, value)
        if index < len(LATENCY_BUCKETS):
            self.bucket_counts[index] += 1
        self.total += value
        self.count += 1


_lock = threading.Lock()
_counters: dict[str, dict[LabelKey, float]] = {}
_histograms: dict[str, dict[LabelKey, _Histogram]] = {}


def _key(labels: dict[str, str]) -> LabelKey:
    return tuple(sorted(labels.items()))


def inc_counter(name: str, labels: dict[str, str], value: float = 1.0) -> None:
    key = _key(labels)
    with _lock:
        series = _counters.setdefault(name, {})
        series[key] = series.get(key, 0.0) + value


def observe_histogram(name: str, labels: dict[str, str], value: float) -> None:
    key = _key(labels)
    with _lock:
        _histograms.setdefault(name, {}).setdefault(key, _Histogram()).observe(value)


def counter_value(name: str, labels: dict[str, str]) -> float:
    with _lock:
        return _counters.get(name, {}).get(_key(labels), 0.0)


def reset_metrics() -> None:
    with _lock:
        _counters.clear()
        _histograms.clear()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _labels(pairs: LabelKey, **extra: str) -> str:
    merged = sorted({**dict(pairs), **extra}.items())
    if not merged:
        return ""
    return "{" + ",".join(f'{k}="{_escape(v)}"' for k, v in merged) + "}"


def _header(lines: list[str], name: str, kind: str) -> None:
    if name in HELP:
        lines.append(f"# HELP {name} {HELP[name]}")
    lines.append(f"# TYPE {name} {kind}")


def render_metrics() -> str:
    lines: list[str] = []
    with _lock:
        for name in sorted(_counters):
            _header(lines, name, "counter")
            for pairs, value in sorted(_counters[name].items()):
                lines.append(f"{name}{_labels(pairs)} {value}")

        for name in sorted(_histograms):
            _header(lines, name, "histogram")
            for pairs, histogram in sorted(_histograms[name].items()):
                cumulative = 0
                for bound, bucket_count in zip(LATENCY_BUCKETS, histogram.bucket_counts):
                    cumulative += bucket_count
                    lines.append(f"{name}_bucket{_labels(pairs, le=str(bound))} {cumulative}")
                lines.append(f"{name}_bucket{_labels(pairs, le='+Inf')} {histogram.count}")
                lines.append(f"{name}_sum{_labels(pairs)} {histogram.total}")
                lines.append(f"{name}_count{_labels(pairs)} {histogram.count}")

    lines.append("")
    return "\n".join(lines)


def record_dispatch(
    provider_type: str,
    source: str,
    outcome: str,
    latency_s: float,
    tokens_in: int = 0,
    tokens_out: int = 0,
) -> None:
    """Record one finished dispatch, successful or not."""
    tier = {"provider_type": provider_type, "source": source}
    inc_counter("grc_dispatch_requests_total", {**tier, "outcome": outcome})
    observe_histogram("grc_dispatch_duration_seconds", tier, latency_s)
    for direction, tokens in (("input", tokens_in), ("output", tokens_out)):
        if tokens > 0:
            inc_counter("grc_tokens_total", {**tier, "direction": direction}, float(tokens))


metrics_router = APIRouter()


@metrics_router.get("/metrics")
def prometheus_metrics() -> Response:
    return Response(content=render_metrics(), media_type="text/plain; version=0.0.4")
