"""Process-local scan counters and AWS call samples for the ops endpoint."""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import dataclass


@dataclass(frozen=True)
class CallSample:
    at: float
    integration: str
    latency_ms: float
    ok: bool


_MAX_SAMPLES = 10000

_samples: deque[CallSample] = deque(maxlen=_MAX_SAMPLES)
_counters: Counter[str] = Counter()


def record_external_call(*, integration: str, latency_ms: float, success: bool) -> None:
    _samples.append(CallSample(time.time(), integration, latency_ms, success))


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def get_counter(name: str) -> int:
    return _counters[name]


def external_call_summary(window_s: int = 3600) -> dict[str, dict[str, float]]:
    # Per integration over the window: calls, failures and mean latency.
    since = time.time() - window_s
    summary: dict[str, dict[str, float]] = {}
    for sample in _samples:
        if sample.at < since:
            continue
        entry = summary.setdefault(
            sample.integration, {"calls": 0.0, "failures": 0.0, "avg_latency_ms": 0.0}
        )
        entry["calls"] += 1
        if not sample.ok:
            entry["failures"] += 1
        # Running mean avoids a second pass over the samples.
        entry["avg_latency_ms"] += (sample.latency_ms - entry["avg_latency_ms"]) / entry["calls"]
    return summary


def snapshot() -> dict[str, object]:
    return {"counters": dict(_counters), "external_calls": external_call_summary()}


def reset() -> None:
    _samples.clear()
    _counters.clear()
