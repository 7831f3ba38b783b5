"""Fixtures for harness unit tests.

Provides a recording Reporter, mocked cluster clients and a HarnessConfig
with all waits disabled.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from kubernetes.client import ApiException

from eventing_e2e.clients import ClusterClients
from eventing_e2e.config import HarnessConfig
from eventing_e2e.polling import PollingConfig
from eventing_e2e.session import TestSession


class SubTestSkipped(Exception):
    """Raised by RecordingReporter.skip()."""


class RecordingReporter:
    """Reporter that records everything the harness does with it."""

    def __init__(self, name: str = "TestExample", *, failed: bool = False) -> None:
        self.name = name
        self.messages: list[str] = []
        self.is_failed = failed
        self.is_parallel = False
        self.sub_tests: list[str] = []
        self.children: dict[str, RecordingReporter] = {}
        self.skipped: str | None = None

    def log(self, message: str, **fields: Any) -> None:
        self.messages.append(message)

    def failed(self) -> bool:
        return self.is_failed

    def parallel(self) -> None:
        self.is_parallel = True

    def run(self, name: str, func: Callable[[Any], None]) -> None:
        child = RecordingReporter(f"{self.name}/{name}")
        self.sub_tests.append(name)
        self.children[name] = child
        try:
            func(child)
        except SubTestSkipped:
            pass

    def skip(self, message: str) -> None:
        self.skipped = message
        raise SubTestSkipped(message)


def not_found() -> ApiException:
    """Return a Kubernetes 404."""
    return ApiException(status=404, reason="Not Found")


def already_exists() -> ApiException:
    """Return a Kubernetes 409."""
    return ApiException(status=409, reason="AlreadyExists")


@pytest.fixture
def reporter() -> RecordingReporter:
    """Recording reporter for a passing test."""
    return RecordingReporter()


@pytest.fixture
def cluster_clients() -> ClusterClients:
    """Mocked clients; dynamic objects disappear as soon as they are deleted."""
    dynamic = MagicMock()
    dynamic.resources.get.return_value.get.side_effect = not_found()
    return ClusterClients(core=MagicMock(), dynamic=dynamic)


@pytest.fixture
def fast_config() -> HarnessConfig:
    """HarnessConfig that never sleeps or polls."""
    return HarnessConfig(
        retry_sleep_seconds=0.0,
        service_account_poll=PollingConfig(timeout=0.0, interval=0.1),
        tracker_delete_timeout=0.0,
    )


@pytest.fixture
def session(cluster_clients: ClusterClients, reporter: RecordingReporter) -> TestSession:
    """Session bound to namespace eventing-e2e0."""
    return TestSession(cluster_clients, "eventing-e2e0", reporter, delete_timeout=0.0)
