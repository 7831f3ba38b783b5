"""Root test configuration for eventing-e2e.

Unit tests run without a cluster: Kubernetes clients are mocks and every
harness setting that would make a test wait is set to zero.
"""

from __future__ import annotations

import pytest

pytest_plugins = ["pytester"]

HARNESS_ENV_VARS = (
    "EVENTING_E2E_NAMESPACE",
    "EVENTING_E2E_REUSE_NAMESPACE",
    "EVENTING_E2E_KUBECONFIG",
    "EVENTING_E2E_CLUSTER",
    "CI",
    "PROW_JOB_ID",
    "ARTIFACTS",
)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the caller's CI and harness environment out of the tests."""
    for name in HARNESS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "requirement(id): Mark test as covering a specific requirement",
    )
