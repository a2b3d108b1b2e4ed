"""PostHog telemetry for search requests.

A ``RequestTelemetry`` times the steps of one search (fan-out, history
append, history refresh) and reports them as events. Cache and record store
counters are collected separately in a per-request ``CacheStats`` held in a
ContextVar, so the query cache and the store backends can count without a
reference to the request.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, field
from typing import Any

from posthog import Posthog

logger = logging.getLogger(__name__)

SERVICE_DISTINCT_ID = "music-search-service"


@dataclass
class StepResult:
    duration_ms: float
    error_type: str | None = None

    @property
    def success(self) -> bool:
        return self.error_type is None


@dataclass
class RequestTelemetry:
    """Step timings and store call count for one search.

    Steps may overlap (the history append runs alongside the fan-out), so
    each ``track_step`` block times itself.
    """

    user_id: str | None = None
    steps: dict[str, StepResult] = field(default_factory=dict)
    store_calls: int = 0
    started: float = field(default_factory=time.perf_counter)

    @property
    def distinct_id(self) -> str:
        return self.user_id or SERVICE_DISTINCT_ID

    @contextmanager
    def track_step(self, name: str) -> Iterator[None]:
        """Time the enclosed block as step ``name``, noting the exception type if it raises."""
        began = time.perf_counter()
        result = StepResult(duration_ms=0.0)
        try:
            yield
        except Exception as e:
            result.error_type = type(e).__name__
            raise
        finally:
            result.duration_ms = (time.perf_counter() - began) * 1000
            self.steps[name] = result

    def count_store_calls(self, count: int = 1) -> None:
        self.store_calls += count

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000

    def events(self, extra_properties: dict[str, Any] | None = None) -> Iterator[tuple[str, dict]]:
        """One ``search_<step>`` event per step, then a ``search_completed`` summary."""
        for name, result in self.steps.items():
            yield f"search_{name}", {
                "step": name,
                "duration_ms": round(result.duration_ms, 2),
                "success": result.success,
                "error_type": result.error_type,
            }

        stats = get_cache_stats() or CacheStats()
        yield "search_completed", {
            "total_duration_ms": round(self.elapsed_ms(), 2),
            "steps": {f"{name}_ms": r.duration_ms for name, r in self.steps.items()},
            "store_calls": self.store_calls,
            "cache": stats.as_properties(),
            **(extra_properties or {}),
        }

    def send_to_posthog(
        self,
        posthog_client: Posthog,
        extra_properties: dict[str, Any] | None = None,
    ) -> None:
        """Capture every event of this request with the given PostHog client."""
        sent = 0
        for event, properties in self.events(extra_properties):
            posthog_client.capture(distinct_id=self.distinct_id, event=event, properties=properties)
            sent += 1
        logger.debug(f"Sent {sent} telemetry events, total {self.elapsed_ms():.1f}ms")


# Per-request counters


@dataclass
class CacheStats:
    cache_hits: int = 0
    cache_misses: int = 0
    invalidations: int = 0
    store_calls: int = 0
    store_time_ms: float = 0.0

    def as_properties(self) -> dict[str, Any]:
        props = asdict(self)
        props["store_time_ms"] = round(self.store_time_ms, 2)
        return props


_cache_stats_var: ContextVar[CacheStats | None] = ContextVar("cache_stats", default=None)


def init_cache_stats() -> CacheStats:
    """Start fresh counters for the current request context."""
    stats = CacheStats()
    _cache_stats_var.set(stats)
    return stats


def get_cache_stats() -> CacheStats | None:
    """Counters for the current request context, or None outside a request."""
    return _cache_stats_var.get()


def record_cache_hit() -> None:
    stats = _cache_stats_var.get()
    if stats is not None:
        stats.cache_hits += 1


def record_cache_miss() -> None:
    stats = _cache_stats_var.get()
    if stats is not None:
        stats.cache_misses += 1


def record_cache_invalidation() -> None:
    stats = _cache_stats_var.get()
    if stats is not None:
        stats.invalidations += 1


def record_store_call(ms: float) -> None:
    """Count one record store round trip and its duration."""
    stats = _cache_stats_var.get()
    if stats is not None:
        stats.store_calls += 1
        stats.store_time_ms += ms
