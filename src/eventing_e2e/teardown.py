"""Teardown pipeline for test sessions.

Teardown is a fixed sequence of independent steps. A failing step is logged
and recorded, never raised, and never stops the steps after it: by the time
teardown runs the test outcome is already decided, and a cleanup error must
not hide it.

Steps, in order:
    1. dump_events: log every event in the namespace, oldest first
    2. export_logs: on CI, for failed tests, export pod logs to the artifacts dir
    3. run_cleanup: run the session's custom cleanup hooks
    4. clean_tracker: delete every tracked object
    5. delete_namespace: delete the namespace (skipped in reuse mode)

Example:
    >>> report = tear_down(session, config)
    >>> [r.name for r in report.failures]
    []
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from eventing_e2e.ci import is_ci, local_artifacts_dir
from eventing_e2e.config import HarnessConfig
from eventing_e2e.namespaces import is_not_found
from eventing_e2e.session import TestSession
from eventing_e2e.telemetry import get_tracer, harness_span

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


# =============================================================================
# Step sequencing
# =============================================================================


@dataclass(frozen=True)
class TeardownStep:
    """A named, independently fallible teardown action."""

    name: str
    action: Callable[[], Any]


@dataclass(frozen=True)
class StepResult:
    """Outcome of one teardown step.

    Attributes:
        name: Step name.
        error: Exception raised by the step, or None on success.
        skipped: True when the step had nothing to do.
    """

    name: str
    error: Exception | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TeardownReport:
    """Results of a teardown run, in step order."""

    namespace: str
    results: list[StepResult] = field(default_factory=list)
    ran: bool = True

    @property
    def failures(self) -> list[StepResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failures


SKIPPED = object()
"""Returned by a step action that had nothing to do."""


def run_steps(
    steps: Sequence[TeardownStep],
    *,
    namespace: str,
    log: Callable[[str], None] | None = None,
) -> list[StepResult]:
    """Run every step in order, whatever the outcome of the previous ones.

    Args:
        steps: Steps to run.
        namespace: Namespace recorded on spans and log lines.
        log: Test-attributed log sink for step failures.

    Returns:
        One StepResult per step.
    """
    tracer = get_tracer()
    results: list[StepResult] = []
    for step in steps:
        try:
            with harness_span(tracer, f"teardown.{step.name}", namespace=namespace):
                outcome = step.action()
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "teardown_step_failed",
                step=step.name,
                namespace=namespace,
                error=str(e),
                error_type=type(e).__name__,
            )
            if log is not None:
                log(f"Teardown step {step.name} failed in {namespace!r}: {e}")
            results.append(StepResult(step.name, error=e))
        else:
            results.append(StepResult(step.name, skipped=outcome is SKIPPED))
    return results


# =============================================================================
# Event diagnostics
# =============================================================================


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def effective_timestamp(event: Any) -> datetime:
    """Return last_timestamp if set, else event_time, else the earliest datetime."""
    last = _aware(getattr(event, "last_timestamp", None))
    if last is not None:
        return last
    event_time = _aware(getattr(event, "event_time", None))
    if event_time is not None:
        return event_time
    return _EPOCH


def sort_events(events: Iterable[Any]) -> list[Any]:
    """Stable sort of events by effective timestamp, oldest first."""
    return sorted(events, key=effective_timestamp)


def _render(value: Any) -> str:
    if value is None:
        return "nil"
    if isinstance(value, datetime):
        return value.isoformat()
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return str({k: v for k, v in to_dict().items() if v is not None})
    return str(value)


def format_event(event: Any) -> str:
    """Render every field of an event on its own line."""
    fields = [
        ("ObjectMeta", event.metadata),
        ("InvolvedObject", event.involved_object),
        ("Reason", event.reason),
        ("Message", event.message),
        ("Source", event.source),
        ("FirstTimestamp", event.first_timestamp),
        ("LastTimestamp", event.last_timestamp),
        ("Count", event.count),
        ("Type", event.type),
        ("EventTime", event.event_time),
        ("Series", event.series),
        ("Action", event.action),
        ("Related", event.related),
        ("ReportingController", event.reporting_component),
        ("ReportingInstance", event.reporting_instance),
    ]
    lines = ["Event{"]
    lines.extend(f"{label}:{_render(value)}" for label, value in fields)
    lines.append("}")
    return "\n".join(lines)


def dump_events(session: TestSession) -> int:
    """Log every event in the session namespace, oldest first.

    Returns:
        Number of events logged.

    Raises:
        ApiException: If the events cannot be listed.
    """
    event_list = session.core.list_namespaced_event(namespace=session.namespace)
    events = sort_events(event_list.items or [])
    for event in events:
        session.reporter.log(format_event(event))
    return len(events)


# =============================================================================
# Steps
# =============================================================================


def export_logs_on_failure(session: TestSession, config: HarnessConfig) -> Any:
    """Export pod logs to the CI artifacts directory if a CI test failed."""
    if not (is_ci() and session.reporter.failed()):
        return SKIPPED
    directory = local_artifacts_dir() / config.pod_logs_dir
    session.reporter.log(f"Export logs in {session.namespace!r} to {str(directory)!r}")
    session.export_logs(directory)


def delete_namespace(session: TestSession) -> None:
    """Delete the session namespace.

    The namespace is read first. A 404 from the read is raised to the caller
    and no delete is issued. A successful read, or a read failing for any other
    reason, is followed by the delete call.

    Raises:
        ApiException: The 404 from the read, or any error from the delete.
    """
    try:
        session.core.read_namespace(name=session.namespace)
    except Exception as e:
        if is_not_found(e):
            raise
        logger.debug("namespace_read_failed", namespace=session.namespace, error=str(e))
    session.core.delete_namespace(name=session.namespace)
    logger.info("namespace_deleted", namespace=session.namespace)


def _skip_namespace_deletion() -> Any:
    return SKIPPED


def _clean_tracker(session: TestSession) -> None:
    failures = session.tracker.clean(await_deletion=True)
    for resource, error in failures:
        session.reporter.log(f"Could not delete {resource}: {error}")


def build_steps(session: TestSession, config: HarnessConfig) -> list[TeardownStep]:
    """Return the teardown steps for session, in execution order."""
    return [
        TeardownStep("dump_events", lambda: dump_events(session)),
        TeardownStep("export_logs", lambda: export_logs_on_failure(session, config)),
        TeardownStep("run_cleanup", session.run_cleanup),
        TeardownStep("clean_tracker", lambda: _clean_tracker(session)),
        TeardownStep(
            "delete_namespace",
            _skip_namespace_deletion
            if config.reuse_namespace
            else lambda: delete_namespace(session),
        ),
    ]


def tear_down(session: TestSession, config: HarnessConfig) -> TeardownReport:
    """Tear a session down, best-effort.

    Runs at most once per session; later calls return a report with
    ``ran=False`` and do nothing.

    Args:
        session: Session to tear down.
        config: Harness configuration (reuse mode, pod log directory).

    Returns:
        TeardownReport with one result per step.
    """
    report = TeardownReport(namespace=session.namespace)
    if not session.claim_teardown():
        logger.debug("teardown_already_done", namespace=session.namespace)
        report.ran = False
        return report

    log = logger.bind(namespace=session.namespace)
    log.info("teardown_started", reuse_namespace=config.reuse_namespace)
    report.results = run_steps(
        build_steps(session, config),
        namespace=session.namespace,
        log=session.reporter.log,
    )
    log.info(
        "teardown_finished",
        failed_steps=[r.name for r in report.failures],
    )
    return report


__all__ = [
    "SKIPPED",
    "StepResult",
    "TeardownReport",
    "TeardownStep",
    "build_steps",
    "delete_namespace",
    "dump_events",
    "effective_timestamp",
    "export_logs_on_failure",
    "format_event",
    "run_steps",
    "sort_events",
    "tear_down",
]
