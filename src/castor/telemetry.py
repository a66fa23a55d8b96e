"""Span-level telemetry with pluggable reporters.

Tracers are passed explicitly to the components that use them. A tracer
without reporters hands out a shared no-op span so the hot streaming path pays
nothing when telemetry is off. Reporter failures are logged and never reach
the caller.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
import time
from typing import Any, Protocol, runtime_checkable

log = logging.getLogger(__name__)


@runtime_checkable
class TelemetryReporter(Protocol):
    """Duck-typed protocol for telemetry reporters."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...  # noqa: D102
    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...  # noqa: D102


@dataclass(frozen=True, slots=True)
class _NoOpSpan:
    """An immutable and stateless span, optimized for negligible overhead."""

    @property
    def is_recording(self) -> bool:
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def set_attributes(self, attributes: dict[str, Any]) -> None:
        pass

    def record_error(self, exc: BaseException) -> None:
        pass

    def set_status(self, status: str, description: str | None = None) -> None:
        pass

    def end(self) -> None:
        pass


class Span:
    """A timed unit of work whose attributes are reported when it ends."""

    __slots__ = ("_ended", "_start", "attributes", "name", "reporters", "status")

    def __init__(
        self,
        name: str,
        reporters: tuple[TelemetryReporter, ...],
        attributes: dict[str, Any] | None = None,
    ) -> None:
        self.name = name
        self.reporters = reporters
        self.attributes: dict[str, Any] = dict(attributes or {})
        self.status = "ok"
        self._start = time.perf_counter()
        self._ended = False

    @property
    def is_recording(self) -> bool:
        return not self._ended

    def set_attribute(self, key: str, value: Any) -> None:
        """Set one attribute; later writes win."""
        self.attributes[key] = value

    def set_attributes(self, attributes: dict[str, Any]) -> None:
        """Set several attributes at once."""
        self.attributes.update(attributes)

    def record_error(self, exc: BaseException) -> None:
        """Report an error event on this span."""
        self._report(
            "record_metric",
            f"{self.name}.error",
            type(exc).__name__,
            message=str(exc),
        )

    def set_status(self, status: str, description: str | None = None) -> None:
        """Mark the span outcome (``"ok"`` or ``"error"``)."""
        self.status = status
        if description is not None:
            self.attributes["status_description"] = description

    def end(self) -> None:
        """Finish the span and report it. Safe to call more than once."""
        if self._ended:
            return
        self._ended = True
        duration = time.perf_counter() - self._start
        self._report(
            "record_timing",
            self.name,
            duration,
            status=self.status,
            attributes=dict(self.attributes),
        )

    def _report(self, method: str, scope: str, value: Any, **metadata: Any) -> None:
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(scope, value, **metadata)
            except Exception as e:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )


NO_OP_SPAN = _NoOpSpan()


class Tracer:
    """Create spans that report to the given reporters."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter) -> None:
        self.reporters = reporters

    @property
    def is_enabled(self) -> bool:
        return bool(self.reporters)

    def start_span(self, name: str, **attributes: Any) -> Span | _NoOpSpan:
        """Start a span named *name*; returns the no-op span when disabled."""
        if not self.reporters:
            return NO_OP_SPAN
        if not name or not isinstance(name, str):
            raise ValueError("Span name must be a non-empty string")
        return Span(name, self.reporters, attributes)


class SimpleReporter:
    """Built-in reporter that keeps recent spans and metrics in memory.

    Useful during development and in tests; call ``as_dict()`` to inspect.
    """

    def __init__(self, max_entries_per_scope: int = 1000):
        self.max_entries = max_entries_per_scope
        self.timings: dict[str, deque[tuple[float, dict[str, Any]]]] = {}
        self.metrics: dict[str, deque[tuple[Any, dict[str, Any]]]] = {}

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        if scope not in self.timings:
            self.timings[scope] = deque(maxlen=self.max_entries)
        self.timings[scope].append((duration, metadata))

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        if scope not in self.metrics:
            self.metrics[scope] = deque(maxlen=self.max_entries)
        self.metrics[scope].append((value, metadata))

    def reset(self) -> None:
        """Clear all collected telemetry (testing convenience)."""
        self.timings.clear()
        self.metrics.clear()

    def as_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of collected data (testing)."""
        return {
            "timings": {key: list(values) for key, values in self.timings.items()},
            "metrics": {key: list(values) for key, values in self.metrics.items()},
        }

    def get_report(self) -> str:
        """Summarize span counts and average durations, one line per scope."""
        lines = ["=== Telemetry Report ==="]
        for scope, values in sorted(self.timings.items()):
            durations = [v[0] for v in values]
            avg_time = sum(durations) / len(durations)
            lines.append(f"{scope:<40} | Calls: {len(durations):<4} | Avg: {avg_time:.4f}s")
        for scope, metric_values in sorted(self.metrics.items()):
            lines.append(f"{scope:<40} | Count: {len(metric_values):<4}")
        return "\n".join(lines)


AnySpan = Span | _NoOpSpan
