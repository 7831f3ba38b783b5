"""Unit tests for the pytest-backed reporter."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from eventing_e2e.reporting import OUTCOME_KEY, PytestReporter, Reporter


@pytest.fixture
def node() -> MagicMock:
    item = MagicMock()
    item.nodeid = "tests/e2e/test_channel.py::test_basic"
    item.stash = pytest.Stash()
    return item


class TestPytestReporter:
    """Tests for PytestReporter."""

    @pytest.mark.requirement("e2e-REP-001")
    def test_satisfies_protocol(self, node: MagicMock) -> None:
        reporter = PytestReporter(node)
        assert isinstance(reporter, Reporter)
        assert reporter.name == "tests/e2e/test_channel.py::test_basic"

    @pytest.mark.requirement("e2e-REP-001")
    def test_failed_reads_stashed_reports(self, node: MagicMock) -> None:
        reporter = PytestReporter(node)
        assert reporter.failed() is False

        node.stash[OUTCOME_KEY] = {"setup": MagicMock(failed=False)}
        assert reporter.failed() is False

        node.stash[OUTCOME_KEY]["call"] = MagicMock(failed=True)
        assert reporter.failed() is True

    @pytest.mark.requirement("e2e-REP-001")
    def test_parallel_marks_item(self, node: MagicMock) -> None:
        PytestReporter(node).parallel()
        marker = node.add_marker.call_args.args[0]
        assert marker.name == "parallel"

    @pytest.mark.requirement("e2e-REP-002")
    def test_run_uses_subtests(self, node: MagicMock) -> None:
        subtests = MagicMock()
        reporter = PytestReporter(node, subtests)
        received: list[Any] = []

        reporter.run("InMemoryChannel-messaging.knative.dev/v1", received.append)

        subtests.test.assert_called_once_with(msg="InMemoryChannel-messaging.knative.dev/v1")
        assert received[0].name == (
            "tests/e2e/test_channel.py::test_basic/InMemoryChannel-messaging.knative.dev/v1"
        )
        assert reporter.failed() is False

    @pytest.mark.requirement("e2e-REP-002")
    def test_sub_test_failure_marks_parent_failed(self, node: MagicMock) -> None:
        reporter = PytestReporter(node, MagicMock())

        def fail(_: Any) -> None:
            raise AssertionError("component broke")

        with pytest.raises(AssertionError):
            reporter.run("component", fail)

        assert reporter.failed() is True

    @pytest.mark.requirement("e2e-REP-002")
    def test_skip_not_a_failure(self, node: MagicMock) -> None:
        reporter = PytestReporter(node, MagicMock())

        with pytest.raises(pytest.skip.Exception):
            reporter.run("component", lambda st: st.skip("not supported"))

        assert reporter.failed() is False

    @pytest.mark.requirement("e2e-REP-002")
    def test_run_requires_subtests(self, node: MagicMock) -> None:
        with pytest.raises(RuntimeError, match="subtests"):
            PytestReporter(node).run("x", lambda st: None)
