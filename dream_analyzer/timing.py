"""Transparent timing for pipeline nodes and stage adapters.

Provides a ``@timed_node`` decorator and a ``collect_metrics()`` context
manager.  Together they let ``pipeline.py`` remain pure orchestration
while every decorated node function records its duration.

Usage in a node module::

    from ..timing import timed_node

    @timed_node("normalize", "core")
    def normalize_bundle(bundle: AnalysisBundle) -> AnalysisBundle:
        ...

Usage in the pipeline::

    with collect_metrics() as metrics:
        bundle = normalize.normalize_bundle(bundle)
    report = build_report(metrics)

Adapter calls are timed with ``record_duration`` because they are plain
callables supplied by the caller.
"""

from __future__ import annotations

import asyncio
import contextvars
import functools
import logging
import time

from .models import NodeMetrics

log = logging.getLogger(__name__)

_current_metrics: contextvars.ContextVar[list[NodeMetrics] | None] = (
    contextvars.ContextVar("_current_metrics", default=None)
)


class collect_metrics:
    """Context manager that activates metric collection for ``@timed_node``.

    Yields a ``list[NodeMetrics]`` that decorated functions append to
    automatically.  Tasks spawned inside the block inherit the list through
    their copied context.
    """

    def __enter__(self) -> list[NodeMetrics]:
        self._metrics: list[NodeMetrics] = []
        self._token = _current_metrics.set(self._metrics)
        return self._metrics

    def __exit__(self, *exc) -> None:
        _current_metrics.reset(self._token)


def timed_node(name: str, node_type: str):
    """Decorator that records duration of a pipeline node.

    Works with both sync and async functions.  If no ``collect_metrics``
    context is active the function executes normally without recording.
    """

    def decorator(fn):
        if asyncio.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def wrapper(*args, **kwargs):
                t0 = time.monotonic_ns()
                result = await fn(*args, **kwargs)
                record_duration(name, node_type, t0)
                return result

        else:

            @functools.wraps(fn)
            def wrapper(*args, **kwargs):
                t0 = time.monotonic_ns()
                result = fn(*args, **kwargs)
                record_duration(name, node_type, t0)
                return result

        return wrapper

    return decorator


def record_duration(name: str, node_type: str, t0: int) -> None:
    """Compute duration since *t0* and append to the active metrics list."""
    duration_ms = (time.monotonic_ns() - t0) // 1_000_000
    log.debug("%s: %d ms", name, duration_ms)
    metrics = _current_metrics.get(None)
    if metrics is not None:
        metrics.append(NodeMetrics(name, node_type, duration_ms))


def build_report(metrics: list[NodeMetrics]) -> dict:
    """Build the structured report dict from collected metrics.

    Adapter calls overlap in time, so ``adapter_duration_ms`` is a sum of
    per-call durations rather than wall-clock time.
    """
    adapter_ms = sum(m.duration_ms for m in metrics if m.node_type == "adapter")
    core_ms = sum(m.duration_ms for m in metrics if m.node_type == "core")

    return {
        "adapter_duration_ms": adapter_ms,
        "core_duration_ms": core_ms,
        "nodes": [
            {
                "node": m.node_name,
                "type": m.node_type,
                "duration_ms": m.duration_ms,
            }
            for m in metrics
        ],
    }
