"""Verbose-mode timing for audit, fix, list, and schema calls.

``-v`` switches span collection on for the calling thread.  A service
entry point decorated with :func:`traced` owns the root span and its
phases (``scan``, ``index``, ``select``, ``check``, ``apply``) nest
beneath it through :func:`trace_span`.

Audit and fix work runs on a thread pool, where the caller's ContextVar
is not visible.  Per-document work reports into a :class:`StageTally`
instead (one stage per audit check, one per fixed issue code) and
:func:`trace_stages` folds the totals into the phase span once the pool
has drained.  The finished tree is returned as
``ServiceResult.meta["telemetry"]``.
"""

from __future__ import annotations

import functools
import threading
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, ParamSpec, TypeVar

import structlog

from vaultctl.services.result import ServiceResult

_verbose_enabled: ContextVar[bool] = ContextVar("_verbose_enabled", default=False)
_current_span: ContextVar[Span | None] = ContextVar("_current_span", default=None)

log = structlog.get_logger("vaultctl.telemetry")


@dataclass
class Span:
    name: str
    started: float = field(default_factory=time.perf_counter)
    elapsed: float | None = None  # seconds; None while open
    annotations: dict[str, Any] = field(default_factory=dict)
    children: list[Span] = field(default_factory=list)

    @property
    def duration_ms(self) -> float:
        return 0.0 if self.elapsed is None else self.elapsed * 1000

    def close(self) -> None:
        self.elapsed = time.perf_counter() - self.started

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.annotations:
            data["annotations"] = self.annotations
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@contextmanager
def trace_span(name: str) -> Generator[Span | None]:
    """Open a phase span under the current one; yields None when not tracing."""
    parent = _current_span.get() if _verbose_enabled.get() else None
    if parent is None:
        yield None
        return
    span = Span(name=name)
    parent.children.append(span)
    token = _current_span.set(span)
    try:
        yield span
    finally:
        span.close()
        _current_span.reset(token)


def annotate(key: str, value: Any) -> None:
    """Attach *key* to the innermost open span; no-op when not tracing."""
    span = _current_span.get() if _verbose_enabled.get() else None
    if span is not None:
        span.annotations[key] = value


# ---------------------------------------------------------------------------
# Worker-thread totals
# ---------------------------------------------------------------------------


class StageTally:
    """Elapsed time and counts per stage, summed across worker threads.

    Stages keep first-seen order, so audit checks appear in the order
    :func:`~vaultctl.services.rules.audit_document` runs them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seconds: dict[str, float] = {}
        self._counts: dict[str, dict[str, int]] = {}

    def add(self, stage: str, seconds: float, counts: dict[str, int]) -> None:
        with self._lock:
            self._seconds[stage] = self._seconds.get(stage, 0.0) + seconds
            totals = self._counts.setdefault(stage, {"runs": 0})
            totals["runs"] += 1
            for key, value in counts.items():
                totals[key] = totals.get(key, 0) + value

    def spans(self) -> list[Span]:
        with self._lock:
            return [
                Span(name=stage, started=0.0, elapsed=seconds, annotations=dict(self._counts[stage]))
                for stage, seconds in self._seconds.items()
            ]


@contextmanager
def measure(tally: StageTally | None, stage: str) -> Generator[dict[str, int]]:
    """Time one unit of work for *stage*; fill the yielded dict with counts."""
    counts: dict[str, int] = {}
    if tally is None:
        yield counts
        return
    started = time.perf_counter()
    try:
        yield counts
    finally:
        tally.add(stage, time.perf_counter() - started, counts)


@contextmanager
def trace_stages(name: str) -> Generator[StageTally | None]:
    """A phase span whose children are the stage totals gathered inside it."""
    with trace_span(name) as span:
        if span is None:
            yield None
            return
        tally = StageTally()
        yield tally
        span.children.extend(tally.spans())


# ---------------------------------------------------------------------------
# Service entry points
# ---------------------------------------------------------------------------

_P = ParamSpec("_P")


def traced(func: Callable[_P, ServiceResult]) -> Callable[_P, ServiceResult]:
    """Give a service method a root span and return it in ``meta``."""

    @functools.wraps(func)
    def wrapper(*args: _P.args, **kwargs: _P.kwargs) -> ServiceResult:
        if not _verbose_enabled.get():
            return func(*args, **kwargs)
        span = Span(name=func.__qualname__)
        token = _current_span.set(span)
        try:
            result = func(*args, **kwargs)
        except Exception:
            log.debug("operation.failed", span_name=span.name, exc_info=True)
            raise
        finally:
            span.close()
            _current_span.reset(token)
        log.debug(
            "operation.complete",
            span_name=span.name,
            op=result.op,
            ok=result.ok,
            duration_ms=round(span.duration_ms, 2),
            phases=[child.name for child in span.children],
        )
        return result.with_meta(telemetry=span.to_dict())

    return wrapper


def enable_telemetry() -> None:
    _verbose_enabled.set(True)


def disable_telemetry() -> None:
    _verbose_enabled.set(False)
