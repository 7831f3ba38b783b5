"""pytest plugin exposing the harness as fixtures.

Registered through the ``pytest11`` entry point, so installing the package is
enough.

Command-line options (override ``EVENTING_E2E_*`` environment variables):
    --kubeconfig PATH     Kubeconfig file to use
    --cluster CONTEXT     Kubeconfig context to use
    --reuse-namespace     Use pre-provisioned namespaces

Fixtures:
    harness_config: HarnessConfig for the run (session scope)
    namespace_allocator: NamespaceAllocator shared by the run (session scope)
    interrupt_cleanup: InterruptCleanup registry (session scope)
    cluster_clients: ClusterClients built from the config (session scope)
    eventing_reporter: PytestReporter for the running test
    eventing_setup: factory creating sessions, all released after the test
    eventing_session: a single session for the running test

Example:
    def test_channel(eventing_session):
        eventing_session.create_object(channel_manifest)
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest
import structlog

from eventing_e2e.clients import ClusterClients, build_cluster_clients
from eventing_e2e.config import HarnessConfig
from eventing_e2e.errors import HarnessError
from eventing_e2e.interrupt import InterruptCleanup
from eventing_e2e.namespaces import NamespaceAllocator
from eventing_e2e.provisioning import release, setup
from eventing_e2e.reporting import OUTCOME_KEY, PytestReporter
from eventing_e2e.session import SetupClientOption, TestSession

logger = structlog.get_logger(__name__)


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register harness command-line options."""
    group = parser.getgroup("eventing-e2e", "eventing end-to-end test harness")
    group.addoption(
        "--kubeconfig",
        action="store",
        default=None,
        help="Path to kubeconfig file.",
    )
    group.addoption(
        "--cluster",
        action="store",
        default=None,
        help="Kubeconfig context to use.",
    )
    group.addoption(
        "--reuse-namespace",
        action="store_true",
        default=None,
        help="Run in pre-provisioned namespaces instead of creating them.",
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register harness markers."""
    config.addinivalue_line(
        "markers",
        "parallel: Informational, set at run time by tests that could run in parallel",
    )


@pytest.hookimpl(wrapper=True, tryfirst=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[Any]) -> Any:  # noqa: ARG001
    """Record each phase's report so teardown can tell if the test failed."""
    report = yield
    item.stash.setdefault(OUTCOME_KEY, {})[report.when] = report
    return report


def config_from_options(pytestconfig: pytest.Config) -> HarnessConfig:
    """Build HarnessConfig from environment plus command-line overrides."""
    overrides: dict[str, Any] = {}
    for option, field in (
        ("kubeconfig", "kubeconfig"),
        ("cluster", "cluster"),
        ("reuse_namespace", "reuse_namespace"),
    ):
        value = pytestconfig.getoption(option, default=None)
        if value is not None:
            overrides[field] = value
    return HarnessConfig(**overrides)


@pytest.fixture(scope="session")
def harness_config(pytestconfig: pytest.Config) -> HarnessConfig:
    """Harness configuration for the run."""
    return config_from_options(pytestconfig)


@pytest.fixture(scope="session")
def namespace_allocator(harness_config: HarnessConfig) -> NamespaceAllocator:
    """Namespace allocator shared by every test in the process."""
    return NamespaceAllocator(harness_config.namespace)


@pytest.fixture(scope="session")
def interrupt_cleanup() -> InterruptCleanup:
    """Registry of teardowns to run if the run is interrupted."""
    return InterruptCleanup()


@pytest.fixture(scope="session")
def cluster_clients(harness_config: HarnessConfig) -> ClusterClients:
    """Cluster API clients; fails the requesting test if none can be built."""
    try:
        return build_cluster_clients(harness_config)
    except Exception as e:  # noqa: BLE001
        pytest.fail(f"Couldn't initialize clients: {e}")


@pytest.fixture
def eventing_reporter(request: pytest.FixtureRequest, subtests: Any) -> PytestReporter:
    """Reporter for the running test."""
    return PytestReporter(request.node, subtests)


@pytest.fixture
def eventing_setup(
    eventing_reporter: PytestReporter,
    cluster_clients: ClusterClients,
    namespace_allocator: NamespaceAllocator,
    harness_config: HarnessConfig,
    interrupt_cleanup: InterruptCleanup,
) -> Iterator[Callable[..., TestSession]]:
    """Factory creating sessions for the running test.

    Every session it creates is torn down after the test, in reverse order.
    """
    sessions: list[TestSession] = []

    def _setup(*options: SetupClientOption, run_in_parallel: bool = False) -> TestSession:
        try:
            session = setup(
                eventing_reporter,
                run_in_parallel,
                *options,
                clients=cluster_clients,
                allocator=namespace_allocator,
                config=harness_config,
                interrupts=interrupt_cleanup,
            )
        except HarnessError as e:
            pytest.fail(f"Couldn't initialize clients: {e}")
        sessions.append(session)
        return session

    yield _setup

    for session in reversed(sessions):
        release(session, harness_config, interrupt_cleanup)


@pytest.fixture
def eventing_session(eventing_setup: Callable[..., TestSession]) -> TestSession:
    """Session with a freshly allocated namespace for the running test."""
    return eventing_setup()


__all__ = [
    "config_from_options",
    "pytest_addoption",
    "pytest_configure",
    "pytest_runtest_makereport",
]
