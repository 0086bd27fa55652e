"""
Prometheus metrics instrumentation for Proyecto Globo.

Tracks:
- Exchanges by mode and outcome
- Exchange time distribution
- Chat-completion, narration and visualization latency
- Errors by type and superseded narrations
- Active session count

Usage:
    from metrics import track_exchange, track_llm_call, track_error

    with track_exchange(mode="standard") as outcome:
        ...
        outcome["status"] = "error"

    with track_llm_call(provider="openai", model="gpt-4o"):
        ...

    track_error("rate_limited")
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Gauge, Histogram

LATENCY_BUCKETS = (0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, float("inf"))

# === COUNTERS ===

exchanges_total = Counter(
    "globo_exchanges_total",
    "Total number of submit/reply exchanges",
    ["mode", "status"],
)

errors_total = Counter(
    "globo_errors_total",
    "Total number of errors encountered",
    ["error_type"],
)

narrations_superseded_total = Counter(
    "globo_narrations_superseded_total",
    "Narration results discarded because a newer playback was requested",
)

# === HISTOGRAMS ===

exchange_time_seconds = Histogram(
    "globo_exchange_time_seconds",
    "Time from submit to assistant reply",
    ["mode"],
    buckets=LATENCY_BUCKETS,
)

llm_latency_seconds = Histogram(
    "globo_llm_latency_seconds",
    "Time taken for chat-completion calls",
    ["provider", "model"],
    buckets=LATENCY_BUCKETS,
)

tts_latency_seconds = Histogram(
    "globo_tts_latency_seconds",
    "Time taken for speech synthesis",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
)

visualization_latency_seconds = Histogram(
    "globo_visualization_latency_seconds",
    "Time taken for visualization queries",
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, float("inf")),
)

# === GAUGES ===

active_sessions_gauge = Gauge(
    "globo_active_sessions",
    "Current number of connected chat sessions",
)

# === CONTEXT MANAGERS ===


@contextmanager
def track_exchange(mode: str) -> Generator[dict[str, str], None, None]:
    """
    Track one exchange. The caller flips ``outcome["status"]`` on failure.

    Example:
        with track_exchange("developer") as outcome:
            if failed:
                outcome["status"] = "error"
    """
    outcome = {"status": "success"}
    start_time = time.time()
    try:
        yield outcome
    finally:
        exchange_time_seconds.labels(mode=mode).observe(time.time() - start_time)
        exchanges_total.labels(mode=mode, status=outcome["status"]).inc()


@contextmanager
def track_llm_call(provider: str, model: str) -> Generator[None, None, None]:
    """Track chat-completion latency for a provider/model pair."""
    start_time = time.time()
    try:
        yield
    finally:
        llm_latency_seconds.labels(provider=provider, model=model).observe(time.time() - start_time)


@contextmanager
def track_tts_call() -> Generator[None, None, None]:
    start_time = time.time()
    try:
        yield
    finally:
        tts_latency_seconds.observe(time.time() - start_time)


@contextmanager
def track_visualization_call() -> Generator[None, None, None]:
    start_time = time.time()
    try:
        yield
    finally:
        visualization_latency_seconds.observe(time.time() - start_time)


def track_error(error_type: str) -> None:
    """
    Track an error occurrence.

    Args:
        error_type: The type of error (e.g., "rate_limited", "audio_service")
    """
    errors_total.labels(error_type=error_type).inc()


def track_superseded_narration() -> None:
    narrations_superseded_total.inc()


def update_active_sessions(delta: int) -> None:
    """Increment (or decrement with a negative delta) the active sessions gauge."""
    active_sessions_gauge.inc(delta)
