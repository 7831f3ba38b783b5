"""Test session: one test's isolated footprint in the cluster.

A TestSession bundles the API clients, the namespace allocated to the test, a
resource tracker it owns, and the reporter of the test it belongs to. Setup
creates it, test code acquires resources through it, and teardown drains it.

Example:
    >>> session = TestSession(clients, "eventing-e2e0", reporter)
    >>> session.create_object({
    ...     "apiVersion": "v1",
    ...     "kind": "ConfigMap",
    ...     "metadata": {"name": "settings"},
    ... })
    >>> session.add_cleanup(lambda: print("bye"))
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from eventing_e2e.clients import ClusterClients
from eventing_e2e.errors import CleanupError, TrackerDrainedError
from eventing_e2e.logs import export_pod_logs
from eventing_e2e.reporting import Reporter
from eventing_e2e.tracker import DEFAULT_DELETE_TIMEOUT, ResourceTracker, TrackedResource

logger = structlog.get_logger(__name__)

CleanupHook = Callable[[], None]


class TestSession:
    """Cluster handles and owned state for a single test.

    Attributes:
        clients: Shared API clients.
        namespace: Namespace allocated to the test.
        reporter: Handle of the test this session belongs to (not owned).
        tracker: Objects to delete at teardown (owned).
    """

    __test__ = False

    def __init__(
        self,
        clients: ClusterClients,
        namespace: str,
        reporter: Reporter,
        *,
        delete_timeout: float = DEFAULT_DELETE_TIMEOUT,
    ) -> None:
        self.clients = clients
        self.namespace = namespace
        self.reporter = reporter
        self.tracker = ResourceTracker(clients.dynamic, delete_timeout=delete_timeout)
        self.interrupt_handle: int | None = None
        self._cleanups: list[CleanupHook] = []
        self._teardown_lock = threading.Lock()
        self._torn_down = False

    @property
    def core(self) -> Any:
        """CoreV1Api."""
        return self.clients.core

    @property
    def dynamic(self) -> Any:
        """DynamicClient."""
        return self.clients.dynamic

    @property
    def torn_down(self) -> bool:
        """True once teardown has been claimed for this session."""
        return self._torn_down

    def create_object(self, manifest: dict[str, Any]) -> Any:
        """Create an object in the session namespace and track it.

        Namespaced manifests without metadata.namespace are created in the
        session namespace. The caller's manifest is not modified.

        Returns:
            The created object as returned by the dynamic client.

        Raises:
            TrackerDrainedError: If teardown already drained the tracker. No
                object is created.
        """
        manifest = copy.deepcopy(manifest)
        metadata = manifest.setdefault("metadata", {})
        api = self.dynamic.resources.get(
            api_version=manifest["apiVersion"],
            kind=manifest["kind"],
        )
        if getattr(api, "namespaced", True):
            metadata.setdefault("namespace", self.namespace)
        resource = TrackedResource.from_manifest(manifest)
        if self.tracker.drained:
            raise TrackerDrainedError(str(resource))
        created = api.create(body=manifest, namespace=metadata.get("namespace"))
        self.tracker.add_resource(resource)
        logger.debug(
            "object_created",
            kind=manifest["kind"],
            name=metadata.get("name"),
            namespace=metadata.get("namespace"),
        )
        return created

    def add_cleanup(self, hook: CleanupHook) -> None:
        """Register a custom teardown action.

        Hooks run at teardown in reverse registration order, before the
        tracker is drained.
        """
        self._cleanups.append(hook)

    def run_cleanup(self) -> None:
        """Run every registered cleanup hook once.

        All hooks run even if some fail.

        Raises:
            CleanupError: If any hook raised.
        """
        hooks, self._cleanups = self._cleanups, []
        errors: list[Exception] = []
        for hook in reversed(hooks):
            try:
                hook()
            except Exception as e:  # noqa: BLE001
                errors.append(e)
        if errors:
            raise CleanupError(errors)

    def export_logs(self, directory: Path) -> list[Path]:
        """Export pod logs of the session namespace under directory."""
        return export_pod_logs(self.core, self.namespace, directory)

    def claim_teardown(self) -> bool:
        """Claim the right to tear this session down.

        Returns:
            True exactly once; False on every later call.
        """
        with self._teardown_lock:
            if self._torn_down:
                return False
            self._torn_down = True
            return True


SetupClientOption = Callable[[TestSession], None]
"""Further setup applied to a session after provisioning."""


def setup_client_option_noop(session: TestSession) -> None:  # noqa: ARG001
    """SetupClientOption that does nothing."""


__all__ = [
    "CleanupHook",
    "SetupClientOption",
    "TestSession",
    "setup_client_option_noop",
]
