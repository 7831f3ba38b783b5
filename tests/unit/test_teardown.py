"""Unit tests for the teardown pipeline."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import (
    ApiException,
    CoreV1Event,
    CoreV1EventList,
    V1ObjectMeta,
    V1ObjectReference,
)

from eventing_e2e.config import HarnessConfig
from eventing_e2e.errors import CleanupError
from eventing_e2e.session import TestSession
from eventing_e2e.teardown import (
    SKIPPED,
    TeardownStep,
    delete_namespace,
    dump_events,
    effective_timestamp,
    export_logs_on_failure,
    format_event,
    run_steps,
    sort_events,
    tear_down,
)

T1 = datetime(2024, 1, 1, 12, 0, 1, tzinfo=timezone.utc)
T3 = datetime(2024, 1, 1, 12, 0, 3, tzinfo=timezone.utc)


def make_event(
    name: str,
    *,
    last_timestamp: datetime | None = None,
    event_time: datetime | None = None,
) -> CoreV1Event:
    return CoreV1Event(
        metadata=V1ObjectMeta(name=name, namespace="eventing-e2e0"),
        involved_object=V1ObjectReference(kind="Pod", name="sender"),
        reason="Started",
        message=f"message of {name}",
        last_timestamp=last_timestamp,
        event_time=event_time,
    )


class TestEventOrdering:
    """Tests for effective_timestamp() and sort_events()."""

    @pytest.mark.requirement("e2e-TD-001")
    def test_last_timestamp_preferred(self) -> None:
        event = make_event("a", last_timestamp=T3, event_time=T1)
        assert effective_timestamp(event) == T3

    @pytest.mark.requirement("e2e-TD-001")
    def test_event_time_fallback(self) -> None:
        assert effective_timestamp(make_event("a", event_time=T1)) == T1

    @pytest.mark.requirement("e2e-TD-001")
    def test_missing_timestamps_sort_first(self) -> None:
        bare = make_event("bare")
        timed = make_event("timed", last_timestamp=T1)
        assert sort_events([timed, bare]) == [bare, timed]

    @pytest.mark.requirement("e2e-TD-001")
    def test_mixed_timestamps(self) -> None:
        """Test LastTimestamp [T3, unset] with EventTime [_, T1] orders T1 first."""
        late = make_event("late", last_timestamp=T3)
        early = make_event("early", event_time=T1)
        assert [e.metadata.name for e in sort_events([late, early])] == ["early", "late"]

    @pytest.mark.requirement("e2e-TD-001")
    def test_sort_is_stable(self) -> None:
        events = [make_event(str(i), last_timestamp=T1) for i in range(5)]
        assert sort_events(events) == events

    @pytest.mark.requirement("e2e-TD-001")
    def test_naive_datetimes_compare_as_utc(self) -> None:
        naive = make_event("naive", last_timestamp=datetime(2024, 1, 1, 12, 0, 2))
        aware = make_event("aware", last_timestamp=T1)
        assert sort_events([naive, aware]) == [aware, naive]


class TestFormatEvent:
    """Tests for format_event()."""

    @pytest.mark.requirement("e2e-TD-002")
    def test_every_field_on_its_own_line(self) -> None:
        lines = format_event(make_event("a", last_timestamp=T3)).splitlines()

        assert lines[0] == "Event{"
        assert lines[-1] == "}"
        labels = [line.split(":", 1)[0] for line in lines[1:-1]]
        assert labels == [
            "ObjectMeta",
            "InvolvedObject",
            "Reason",
            "Message",
            "Source",
            "FirstTimestamp",
            "LastTimestamp",
            "Count",
            "Type",
            "EventTime",
            "Series",
            "Action",
            "Related",
            "ReportingController",
            "ReportingInstance",
        ]
        assert "Reason:Started" in lines
        assert f"LastTimestamp:{T3.isoformat()}" in lines
        assert "Count:nil" in lines


class TestDumpEvents:
    """Tests for dump_events()."""

    @pytest.mark.requirement("e2e-TD-002")
    def test_logs_oldest_first(self, session: TestSession, reporter: Any) -> None:
        session.core.list_namespaced_event.return_value = CoreV1EventList(
            items=[make_event("late", last_timestamp=T3), make_event("early", event_time=T1)]
        )

        assert dump_events(session) == 2

        session.core.list_namespaced_event.assert_called_once_with(namespace="eventing-e2e0")
        assert "message of early" in reporter.messages[0]
        assert "message of late" in reporter.messages[1]

    @pytest.mark.requirement("e2e-TD-002")
    def test_list_failure_raises(self, session: TestSession) -> None:
        session.core.list_namespaced_event.side_effect = ApiException(status=403)
        with pytest.raises(ApiException):
            dump_events(session)


class TestExportLogsOnFailure:
    """Tests for export_logs_on_failure()."""

    @pytest.mark.requirement("e2e-TD-003")
    def test_skipped_outside_ci(self, session: TestSession, reporter: Any) -> None:
        reporter.is_failed = True
        with patch.object(TestSession, "export_logs") as export:
            assert export_logs_on_failure(session, HarnessConfig()) is SKIPPED
        export.assert_not_called()

    @pytest.mark.requirement("e2e-TD-003")
    def test_skipped_for_passing_ci_test(
        self, session: TestSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CI", "true")
        with patch.object(TestSession, "export_logs") as export:
            assert export_logs_on_failure(session, HarnessConfig()) is SKIPPED
        export.assert_not_called()

    @pytest.mark.requirement("e2e-TD-003")
    def test_exports_failed_ci_test(
        self,
        session: TestSession,
        reporter: Any,
        monkeypatch: pytest.MonkeyPatch,
        tmp_path: Path,
    ) -> None:
        monkeypatch.setenv("PROW_JOB_ID", "1234")
        monkeypatch.setenv("ARTIFACTS", str(tmp_path))
        reporter.is_failed = True

        with patch.object(TestSession, "export_logs") as export:
            result = export_logs_on_failure(session, HarnessConfig())

        assert result is not SKIPPED
        export.assert_called_once_with(tmp_path / "pod-logs")


class TestDeleteNamespace:
    """Tests for delete_namespace()."""

    @pytest.mark.requirement("e2e-TD-004")
    def test_deletes_existing_namespace(self, session: TestSession) -> None:
        delete_namespace(session)
        session.core.read_namespace.assert_called_once_with(name="eventing-e2e0")
        session.core.delete_namespace.assert_called_once_with(name="eventing-e2e0")

    @pytest.mark.requirement("e2e-TD-004")
    def test_missing_namespace_raises_without_delete(self, session: TestSession) -> None:
        session.core.read_namespace.side_effect = ApiException(status=404)

        with pytest.raises(ApiException) as exc_info:
            delete_namespace(session)

        assert exc_info.value.status == 404
        session.core.delete_namespace.assert_not_called()

    @pytest.mark.requirement("e2e-TD-004")
    def test_read_error_still_deletes(self, session: TestSession) -> None:
        session.core.read_namespace.side_effect = ApiException(status=500)
        delete_namespace(session)
        session.core.delete_namespace.assert_called_once_with(name="eventing-e2e0")


class TestRunSteps:
    """Tests for run_steps()."""

    @pytest.mark.requirement("e2e-TD-005")
    def test_failures_do_not_stop_pipeline(self) -> None:
        calls: list[str] = []
        logged: list[str] = []

        def fail() -> None:
            calls.append("fail")
            raise RuntimeError("boom")

        results = run_steps(
            [
                TeardownStep("one", fail),
                TeardownStep("two", lambda: calls.append("two")),
                TeardownStep("three", lambda: SKIPPED),
            ],
            namespace="ns",
            log=logged.append,
        )

        assert calls == ["fail", "two"]
        assert [r.name for r in results] == ["one", "two", "three"]
        assert str(results[0].error) == "boom"
        assert results[1].ok and not results[1].skipped
        assert results[2].ok and results[2].skipped
        assert len(logged) == 1
        assert "one" in logged[0]


class TestTearDown:
    """Tests for tear_down()."""

    @pytest.mark.requirement("e2e-TD-005")
    def test_runs_all_steps(self, session: TestSession) -> None:
        session.core.list_namespaced_event.return_value = CoreV1EventList(items=[])
        session.tracker.add("v1", "ConfigMap", "settings", namespace="eventing-e2e0")

        report = tear_down(session, HarnessConfig())

        assert report.ran is True
        assert report.ok is True
        assert [r.name for r in report.results] == [
            "dump_events",
            "export_logs",
            "run_cleanup",
            "clean_tracker",
            "delete_namespace",
        ]
        session.dynamic.resources.get.return_value.delete.assert_called_once_with(
            name="settings", namespace="eventing-e2e0"
        )
        session.core.delete_namespace.assert_called_once_with(name="eventing-e2e0")

    @pytest.mark.requirement("e2e-TD-005")
    def test_event_failure_continues(self, session: TestSession, reporter: Any) -> None:
        session.core.list_namespaced_event.side_effect = ApiException(status=500)
        hook = MagicMock()
        session.add_cleanup(hook)

        report = tear_down(session, HarnessConfig())

        assert [r.name for r in report.failures] == ["dump_events"]
        hook.assert_called_once_with()
        session.core.delete_namespace.assert_called_once()
        assert any("dump_events" in m for m in reporter.messages)

    @pytest.mark.requirement("e2e-TD-005")
    def test_cleanup_failure_recorded(self, session: TestSession) -> None:
        session.core.list_namespaced_event.return_value = CoreV1EventList(items=[])

        def broken() -> None:
            raise ValueError("cleanup broke")

        session.add_cleanup(broken)

        report = tear_down(session, HarnessConfig())

        failure = report.failures[0]
        assert failure.name == "run_cleanup"
        assert isinstance(failure.error, CleanupError)
        session.core.delete_namespace.assert_called_once()

    @pytest.mark.requirement("e2e-TD-006")
    def test_reuse_mode_keeps_namespace(self, session: TestSession) -> None:
        session.core.list_namespaced_event.return_value = CoreV1EventList(items=[])

        report = tear_down(session, HarnessConfig(reuse_namespace=True))

        session.core.delete_namespace.assert_not_called()
        session.core.read_namespace.assert_not_called()
        assert report.results[-1].skipped is True

    @pytest.mark.requirement("e2e-TD-006")
    def test_missing_namespace_reported(self, session: TestSession) -> None:
        session.core.list_namespaced_event.return_value = CoreV1EventList(items=[])
        session.core.read_namespace.side_effect = ApiException(status=404)

        report = tear_down(session, HarnessConfig())

        assert [r.name for r in report.failures] == ["delete_namespace"]
        session.core.delete_namespace.assert_not_called()

    @pytest.mark.requirement("e2e-TD-007")
    def test_runs_once(self, session: TestSession) -> None:
        session.core.list_namespaced_event.return_value = CoreV1EventList(items=[])

        first = tear_down(session, HarnessConfig())
        second = tear_down(session, HarnessConfig())

        assert first.ran is True
        assert second.ran is False
        assert second.results == []
        session.core.delete_namespace.assert_called_once()
        assert session.torn_down is True

    @pytest.mark.requirement("e2e-TD-001")
    def test_missing_timestamps_use_earliest_datetime(self) -> None:
        event = make_event("x")
        assert effective_timestamp(event) < T1 - timedelta(days=365 * 1000)
