"""Test-reporting handles.

A Reporter is what the harness knows about the running test: its name,
whether it has failed, a log sink, and a way to run named sub-tests. The
surrounding test framework owns it; sessions only reference it.

PytestReporter adapts a pytest test item. Sub-tests run through pytest's
``subtests`` fixture so each component gets its own report entry.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import pytest
import structlog

logger = structlog.get_logger(__name__)

# Stash key holding {phase: report} for an item, filled by the pytest plugin
OUTCOME_KEY = pytest.StashKey[dict[str, pytest.TestReport]]()


@runtime_checkable
class Reporter(Protocol):
    """Test-framework handle referenced by a TestSession."""

    @property
    def name(self) -> str:
        """Test name."""
        ...

    def log(self, message: str, **fields: Any) -> None:
        """Emit a log line attributed to the test."""
        ...

    def failed(self) -> bool:
        """Return True if the test has already failed."""
        ...

    def parallel(self) -> None:
        """Mark the test as eligible to run in parallel with others.

        Informational only. Tests in one process run serially, and the call
        happens while the test is running, after collection, so it cannot
        steer selection or worker scheduling. Under pytest it records a
        parallel marker on the test item for later hooks and reports.
        """
        ...

    def run(self, name: str, func: Callable[[Reporter], None]) -> None:
        """Run func as a named sub-test."""
        ...

    def skip(self, message: str) -> None:
        """Skip the current test or sub-test."""
        ...


class PytestReporter:
    """Reporter backed by a pytest item.

    Args:
        node: The running test item (``request.node``).
        subtests: pytest's ``subtests`` fixture, needed only for run().
        name: Override for the reported name (used for sub-tests).
    """

    def __init__(
        self,
        node: pytest.Item,
        subtests: Any = None,
        *,
        name: str | None = None,
    ) -> None:
        self._node = node
        self._subtests = subtests
        self._name = name or node.nodeid
        self._log = logger.bind(test=self._name)
        self._sub_failed = False

    @property
    def name(self) -> str:
        return self._name

    def log(self, message: str, **fields: Any) -> None:
        self._log.info(message, **fields)

    def failed(self) -> bool:
        if self._sub_failed:
            return True
        reports = self._node.stash.get(OUTCOME_KEY, {})
        return any(report.failed for report in reports.values())

    def parallel(self) -> None:
        """Record an informational parallel marker on the test item."""
        self._node.add_marker(pytest.mark.parallel)

    def run(self, name: str, func: Callable[[Reporter], None]) -> None:
        if self._subtests is None:
            msg = "PytestReporter.run() requires the 'subtests' fixture"
            raise RuntimeError(msg)
        child = PytestReporter(self._node, self._subtests, name=f"{self._name}/{name}")
        with self._subtests.test(msg=name):
            try:
                func(child)
            except pytest.skip.Exception:
                raise
            except BaseException:
                self._sub_failed = True
                raise

    def skip(self, message: str) -> None:
        pytest.skip(message)


__all__ = ["OUTCOME_KEY", "PytestReporter", "Reporter"]
