"""Configuration for the eventing e2e harness.

Settings are read from environment variables with the ``EVENTING_E2E_``
prefix. The pytest plugin overlays its command-line options on top.

Environment Variables:
    EVENTING_E2E_NAMESPACE: Base name for allocated namespaces (default: eventing-e2e)
    EVENTING_E2E_REUSE_NAMESPACE: Reuse pre-provisioned namespaces instead of
        creating and deleting them
    EVENTING_E2E_KUBECONFIG: Path to kubeconfig file
    EVENTING_E2E_CLUSTER: Kubeconfig context to use

Example:
    >>> from eventing_e2e.config import HarnessConfig
    >>> config = HarnessConfig(reuse_namespace=True)
    >>> config.namespace
    'eventing-e2e'
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from eventing_e2e.polling import PollingConfig

DEFAULT_NAMESPACE_BASE = "eventing-e2e"
TEST_PULL_SECRET_NAME = "kn-eventing-test-pull-secret"
POD_LOGS_DIR = "pod-logs"


class HarnessConfig(BaseSettings):
    """Process-wide settings for namespace allocation, setup and teardown.

    Attributes:
        namespace: Base name; allocated namespaces are this plus a counter.
        reuse_namespace: Namespaces are pre-provisioned externally and are
            neither created, provisioned nor deleted by the harness.
        kubeconfig: Path to kubeconfig. None tries in-cluster config first.
        cluster: Kubeconfig context. None uses the current context.
        max_namespace_skip: Candidate namespaces tried before giving up.
        max_retries: Create attempts per candidate namespace.
        retry_sleep_seconds: Fixed backoff between create attempts.
        service_account_poll: Poll settings for the default service account wait.
        pull_secret_name: Image-pull secret propagated into new namespaces.
        pull_secret_source_namespace: Namespace the pull secret is copied from.
        pod_logs_dir: Subdirectory of the CI artifacts root for pod logs.
        tracker_delete_timeout: Seconds to wait for tracked objects to be gone.
    """

    model_config = SettingsConfigDict(
        env_prefix="EVENTING_E2E_",
        frozen=True,
        extra="ignore",
    )

    namespace: str = Field(
        default=DEFAULT_NAMESPACE_BASE,
        min_length=1,
        max_length=50,
        description="Base name for allocated namespaces",
    )
    reuse_namespace: bool = Field(
        default=False,
        description="Reuse pre-provisioned namespaces",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig file. None tries in-cluster config first.",
    )
    cluster: str | None = Field(
        default=None,
        description="Kubeconfig context to use. None uses current context.",
    )
    max_namespace_skip: int = Field(default=20, ge=1)
    max_retries: int = Field(default=5, ge=1)
    retry_sleep_seconds: float = Field(default=2.0, ge=0.0)
    service_account_poll: PollingConfig = Field(
        default_factory=lambda: PollingConfig(timeout=120.0, interval=1.0),
    )
    pull_secret_name: str = Field(default=TEST_PULL_SECRET_NAME, min_length=1)
    pull_secret_source_namespace: str = Field(default="default", min_length=1)
    pod_logs_dir: str = Field(default=POD_LOGS_DIR, min_length=1)
    tracker_delete_timeout: float = Field(default=60.0, ge=0.0)

    @field_validator("kubeconfig")
    @classmethod
    def expand_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if v is None:
            return None
        return str(Path(v).expanduser())


__all__ = [
    "DEFAULT_NAMESPACE_BASE",
    "HarnessConfig",
    "POD_LOGS_DIR",
    "TEST_PULL_SECRET_NAME",
]
