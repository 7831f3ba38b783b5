"""Resource tracker for objects created during a test.

The tracker is an append-only ledger owned by one TestSession. At teardown it
is drained once: every tracked object is deleted in reverse creation order,
whatever happened to the objects before it. A drained tracker accepts no new
entries.

Example:
    >>> tracker = ResourceTracker(clients.dynamic)
    >>> tracker.add("v1", "ServiceAccount", "eventwatcher", namespace="eventing-e2e0")
    >>> failures = tracker.clean(await_deletion=True)
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from eventing_e2e.errors import TrackerDrainedError
from eventing_e2e.namespaces import is_not_found
from eventing_e2e.polling import PollingConfig, wait_for_condition

logger = structlog.get_logger(__name__)

DEFAULT_DELETE_TIMEOUT = 60.0


class TrackedResource(BaseModel):
    """Identity of one cluster object recorded by the tracker."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    api_version: str = Field(..., min_length=1)
    kind: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    namespace: str | None = Field(default=None)

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any]) -> TrackedResource:
        """Build from a manifest dict with apiVersion, kind and metadata."""
        metadata = manifest.get("metadata", {})
        return cls(
            api_version=manifest["apiVersion"],
            kind=manifest["kind"],
            name=metadata["name"],
            namespace=metadata.get("namespace"),
        )

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


class ResourceTracker:
    """Records created objects and deletes them at teardown.

    Args:
        dynamic_client: kubernetes.dynamic.DynamicClient used for deletion.
        delete_timeout: Seconds to wait for deleted objects to disappear when
            cleaning with await_deletion.
    """

    def __init__(
        self,
        dynamic_client: Any,
        *,
        delete_timeout: float = DEFAULT_DELETE_TIMEOUT,
    ) -> None:
        self._dynamic = dynamic_client
        self._delete_timeout = delete_timeout
        self._resources: list[TrackedResource] = []
        self._drained = False

    @property
    def resources(self) -> tuple[TrackedResource, ...]:
        """Tracked objects in creation order."""
        return tuple(self._resources)

    @property
    def drained(self) -> bool:
        """True once clean() has run."""
        return self._drained

    def add(
        self,
        api_version: str,
        kind: str,
        name: str,
        *,
        namespace: str | None = None,
    ) -> TrackedResource:
        """Track an object for deletion at teardown.

        Raises:
            TrackerDrainedError: If the tracker was already cleaned.
        """
        resource = TrackedResource(
            api_version=api_version,
            kind=kind,
            name=name,
            namespace=namespace,
        )
        return self.add_resource(resource)

    def add_resource(self, resource: TrackedResource) -> TrackedResource:
        """Track an already-built TrackedResource."""
        if self._drained:
            raise TrackerDrainedError(str(resource))
        self._resources.append(resource)
        logger.debug("resource_tracked", resource=str(resource))
        return resource

    def add_manifest(self, manifest: dict[str, Any]) -> TrackedResource:
        """Track the object described by a manifest dict."""
        return self.add_resource(TrackedResource.from_manifest(manifest))

    def clean(self, await_deletion: bool) -> list[tuple[TrackedResource, Exception]]:
        """Delete every tracked object, newest first.

        Failures are logged and collected, never raised, so one stuck object
        cannot keep the rest alive. Objects that are already gone count as
        deleted. Calling clean() a second time is a no-op.

        Args:
            await_deletion: Wait until each deleted object is no longer
                returned by the API server.

        Returns:
            (resource, error) pairs for objects that could not be deleted.
        """
        if self._drained:
            return []
        self._drained = True

        failures: list[tuple[TrackedResource, Exception]] = []
        deleted: list[tuple[TrackedResource, Any]] = []

        for resource in reversed(self._resources):
            try:
                api = self._dynamic.resources.get(
                    api_version=resource.api_version,
                    kind=resource.kind,
                )
                api.delete(name=resource.name, namespace=resource.namespace)
            except Exception as e:
                if is_not_found(e):
                    logger.debug("resource_already_gone", resource=str(resource))
                    continue
                logger.warning("resource_delete_failed", resource=str(resource), error=str(e))
                failures.append((resource, e))
                continue
            deleted.append((resource, api))

        if await_deletion:
            poll = PollingConfig(timeout=self._delete_timeout, interval=1.0)
            for resource, api in deleted:
                gone = wait_for_condition(
                    lambda r=resource, a=api: _is_gone(a, r),
                    config=poll,
                    description=f"deletion of {resource}",
                    raise_on_timeout=False,
                )
                if not gone:
                    failures.append(
                        (resource, TimeoutError(f"{resource} still present after deletion"))
                    )

        logger.info(
            "tracker_cleaned",
            tracked=len(self._resources),
            deleted=len(deleted),
            failed=len(failures),
        )
        return failures


def _is_gone(api: Any, resource: TrackedResource) -> bool:
    try:
        api.get(name=resource.name, namespace=resource.namespace)
    except Exception as e:
        if is_not_found(e):
            return True
        raise
    return False


__all__ = ["DEFAULT_DELETE_TIMEOUT", "ResourceTracker", "TrackedResource"]
