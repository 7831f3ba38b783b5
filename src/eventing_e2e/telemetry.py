"""Logging and tracing helpers for the harness.

Structured logs go through structlog. Setup and teardown steps emit
OpenTelemetry spans; with no tracer provider configured these are no-ops.
Logs emitted inside an active span carry its trace_id and span_id.

Example:
    >>> from eventing_e2e.telemetry import configure_logging, get_tracer, harness_span
    >>> configure_logging(log_level="DEBUG", json_output=False)
    >>> with harness_span(get_tracer(), "teardown.dump_events", namespace="eventing-e2e0"):
    ...     pass
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.trace import INVALID_SPAN_ID, INVALID_TRACE_ID, Status, StatusCode

TRACER_NAME = "eventing_e2e.harness"

ATTR_OPERATION = "harness.operation"
ATTR_NAMESPACE = "harness.namespace"

# Type alias for structlog EventDict
EventDict = MutableMapping[str, Any]


def get_tracer() -> trace.Tracer:
    """Return the tracer for harness operations."""
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def harness_span(
    tracer: trace.Tracer,
    operation: str,
    *,
    namespace: str | None = None,
    extra_attributes: dict[str, Any] | None = None,
) -> Iterator[trace.Span]:
    """Context manager for creating harness operation spans.

    Args:
        tracer: OpenTelemetry tracer instance.
        operation: Operation name (e.g., "teardown.dump_events").
        namespace: Test namespace the operation acts on.
        extra_attributes: Additional span attributes.

    Yields:
        The active span for adding custom attributes.
    """
    attributes: dict[str, Any] = {ATTR_OPERATION: operation}
    if namespace is not None:
        attributes[ATTR_NAMESPACE] = namespace
    if extra_attributes:
        attributes.update(extra_attributes)

    with tracer.start_as_current_span(
        f"eventing_e2e.{operation}",
        attributes=attributes,
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, type(e).__name__))
            span.set_attribute("exception.type", type(e).__name__)
            raise


def add_trace_context(
    logger: Any,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor adding trace_id and span_id of the active span."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.trace_id != INVALID_TRACE_ID and ctx.span_id != INVALID_SPAN_ID:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = False,
) -> None:
    """Configure structlog for harness output.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, render JSON lines. If False, use console format.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        msg = f"Unknown log level: {log_level}"
        raise ValueError(msg)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_trace_context,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


__all__ = [
    "TRACER_NAME",
    "add_trace_context",
    "configure_logging",
    "get_tracer",
    "harness_span",
]
