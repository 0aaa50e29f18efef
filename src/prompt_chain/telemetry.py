"""Scoped timings and counters for chain execution.

Chain runners and services time their steps and count failures through a
telemetry context. When no reporter is configured the context is a shared
no-op instance, so instrumentation costs nothing in normal use.

Enable it either by passing reporters explicitly::

    reporter = InMemoryReporter()
    ctx = TelemetryContext(reporter)

or process-wide with ``PROMPT_CHAIN_TELEMETRY=1``, which routes scopes to
`default_reporter()`.
"""

from collections import deque
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
import logging
import os
import time
from types import TracebackType
from typing import Any, Protocol, Self, runtime_checkable

log = logging.getLogger(__name__)

# Context-aware scope nesting, safe across concurrent chain executions
_scope_stack_var: ContextVar[tuple[str, ...]] = ContextVar(
    "prompt_chain_scope_stack",
    default=(),
)

TELEMETRY_ENV_VAR = "PROMPT_CHAIN_TELEMETRY"


@runtime_checkable
class TelemetryReporter(Protocol):
    """Anything that can receive timings and metrics."""

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None: ...  # noqa: D102
    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None: ...  # noqa: D102


@dataclass(frozen=True, slots=True)
class _NoOpTelemetryContext:
    """Context returned when telemetry is off; every call is a no-op."""

    def __call__(self, name: str, **metadata: Any) -> Self:  # noqa: ARG002
        return self

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        return None

    @property
    def enabled(self) -> bool:
        return False

    def metric(self, name: str, value: Any, **metadata: Any) -> None:
        pass

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        pass


def _current_path(name: str) -> str:
    return ".".join((*_scope_stack_var.get(), name))


class _EnabledTelemetryContext:
    """Telemetry context that forwards to its reporters."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TelemetryReporter):
        self.reporters = reporters

    def __call__(
        self, name: str, **metadata: Any
    ) -> AbstractContextManager["_EnabledTelemetryContext"]:
        if not isinstance(name, str) or not name:
            raise ValueError("Scope name must be a non-empty string")
        return self._timed(name, metadata)

    @property
    def enabled(self) -> bool:
        return True

    def _fan_out(self, method: str, *args: Any, **metadata: Any) -> None:
        # A broken reporter must never break the chain being measured
        for reporter in self.reporters:
            try:
                getattr(reporter, method)(*args, **metadata)
            except Exception as exc:
                log.error(
                    "Telemetry reporter '%s' failed: %s",
                    type(reporter).__name__,
                    exc,
                    exc_info=True,
                )

    @contextmanager
    def _timed(
        self, name: str, metadata: dict[str, Any]
    ) -> Iterator["_EnabledTelemetryContext"]:
        parents = _scope_stack_var.get()
        path = _current_path(name)
        token = _scope_stack_var.set((*parents, name))
        started = time.perf_counter()
        try:
            yield self
        finally:
            elapsed = time.perf_counter() - started
            _scope_stack_var.reset(token)
            self._fan_out(
                "record_timing",
                path,
                elapsed,
                depth=len(parents),
                parent_scope=".".join(parents) or None,
                **metadata,
            )

    def metric(self, name: str, value: Any, **metadata: Any) -> None:
        """Record `value` under `name`, prefixed by the enclosing scopes."""
        self._fan_out("record_metric", _current_path(name), value, **metadata)

    def count(self, name: str, increment: int = 1, **metadata: Any) -> None:
        self.metric(name, increment, metric_type="counter", **metadata)


type TelemetryContextProtocol = _EnabledTelemetryContext | _NoOpTelemetryContext

_NO_OP_SINGLETON = _NoOpTelemetryContext()


class InMemoryReporter:
    """Reporter that keeps recent timings and metrics in memory."""

    def __init__(self, max_entries_per_scope: int = 1000):
        self.max_entries = max_entries_per_scope
        self.timings: dict[str, deque[tuple[float, dict[str, Any]]]] = {}
        self.metrics: dict[str, deque[tuple[Any, dict[str, Any]]]] = {}

    def record_timing(self, scope: str, duration: float, **metadata: Any) -> None:
        self.timings.setdefault(scope, deque(maxlen=self.max_entries)).append(
            (duration, metadata)
        )

    def record_metric(self, scope: str, value: Any, **metadata: Any) -> None:
        self.metrics.setdefault(scope, deque(maxlen=self.max_entries)).append(
            (value, metadata)
        )

    def total(self, scope: str) -> float:
        """Sum of numeric metric values recorded under `scope`."""
        return sum(
            v for v, _ in self.metrics.get(scope, ()) if isinstance(v, int | float)
        )

    def get_report(self) -> str:
        lines = ["=== Telemetry Report ===", "", "--- Timings ---"]
        for scope, values in sorted(self.timings.items()):
            durations = [d for d, _ in values]
            lines.append(
                f"{scope:<40} | Calls: {len(durations):<4} | "
                f"Avg: {sum(durations) / len(durations):.4f}s | "
                f"Total: {sum(durations):.4f}s"
            )
        if self.metrics:
            lines.extend(["", "--- Metrics ---"])
            for scope, values in sorted(self.metrics.items()):
                lines.append(
                    f"{scope:<40} | Count: {len(values):<4} | "
                    f"Total: {self.total(scope):,.0f}"
                )
        return "\n".join(lines)


_DEFAULT_REPORTER = InMemoryReporter()


def default_reporter() -> InMemoryReporter:
    """Process-wide reporter used when telemetry is enabled by environment."""
    return _DEFAULT_REPORTER


def TelemetryContext(*reporters: TelemetryReporter) -> TelemetryContextProtocol:  # noqa: N802
    """Return a telemetry context.

    Explicit reporters always enable telemetry. Without reporters, telemetry
    is enabled only when ``PROMPT_CHAIN_TELEMETRY=1``; otherwise the shared
    no-op instance is returned.
    """
    if reporters:
        return _EnabledTelemetryContext(*reporters)
    if os.getenv(TELEMETRY_ENV_VAR) == "1":
        return _EnabledTelemetryContext(_DEFAULT_REPORTER)
    return _NO_OP_SINGLETON
