"""Permission sets bound into every test namespace.

A permission set is a ServiceAccount, a Role and a RoleBinding sharing one
name. Setup creates two per namespace:

- ``<namespace>``: read pods, full access to events.
- ``<namespace>-eventwatcher``: read pods and events.

Example:
    >>> perms = pods_get_events_all("eventing-e2e0")
    >>> [m["kind"] for m in perms.to_k8s_manifests()]
    ['ServiceAccount', 'Role', 'RoleBinding']
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from eventing_e2e.session import TestSession

logger = structlog.get_logger(__name__)

EVENT_WATCHER_SUFFIX = "-eventwatcher"
RBAC_API_GROUP = "rbac.authorization.k8s.io"


class RoleRule(BaseModel):
    """One PolicyRule of a Role."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    api_groups: list[str] = Field(default_factory=lambda: [""])
    resources: list[str] = Field(..., min_length=1)
    verbs: list[str] = Field(..., min_length=1)

    def to_k8s(self) -> dict[str, Any]:
        """Convert to a K8s PolicyRule dict."""
        return {
            "apiGroups": list(self.api_groups),
            "resources": list(self.resources),
            "verbs": list(self.verbs),
        }


class PermissionSet(BaseModel):
    """ServiceAccount bound to a Role of the same name.

    Attributes:
        name: Name shared by the ServiceAccount, Role and RoleBinding.
        namespace: Namespace all three objects live in.
        rules: Rules granted by the Role.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, max_length=253)
    namespace: str = Field(..., min_length=1, max_length=63)
    rules: list[RoleRule] = Field(..., min_length=1)

    def to_k8s_manifests(self) -> list[dict[str, Any]]:
        """Return ServiceAccount, Role and RoleBinding manifests, in creation order."""
        metadata = {"name": self.name, "namespace": self.namespace}
        return [
            {
                "apiVersion": "v1",
                "kind": "ServiceAccount",
                "metadata": dict(metadata),
            },
            {
                "apiVersion": f"{RBAC_API_GROUP}/v1",
                "kind": "Role",
                "metadata": dict(metadata),
                "rules": [rule.to_k8s() for rule in self.rules],
            },
            {
                "apiVersion": f"{RBAC_API_GROUP}/v1",
                "kind": "RoleBinding",
                "metadata": dict(metadata),
                "subjects": [
                    {
                        "kind": "ServiceAccount",
                        "name": self.name,
                        "namespace": self.namespace,
                    }
                ],
                "roleRef": {
                    "kind": "Role",
                    "name": self.name,
                    "apiGroup": RBAC_API_GROUP,
                },
            },
        ]


def pods_get_events_all(namespace: str, name: str | None = None) -> PermissionSet:
    """Permission set reading pods and granting every verb on events."""
    return PermissionSet(
        name=name or namespace,
        namespace=namespace,
        rules=[
            RoleRule(resources=["pods"], verbs=["get", "list", "watch"]),
            RoleRule(resources=["events"], verbs=["*"]),
        ],
    )


def event_watcher(namespace: str, name: str | None = None) -> PermissionSet:
    """Permission set reading pods and events, named ``<namespace>-eventwatcher``."""
    return PermissionSet(
        name=name or f"{namespace}{EVENT_WATCHER_SUFFIX}",
        namespace=namespace,
        rules=[
            RoleRule(resources=["pods"], verbs=["get", "list", "watch"]),
            RoleRule(resources=["events"], verbs=["get", "list", "watch"]),
        ],
    )


def create_permission_set(session: TestSession, permission_set: PermissionSet) -> None:
    """Create the objects of a permission set through the session tracker."""
    for manifest in permission_set.to_k8s_manifests():
        session.create_object(manifest)
    logger.info(
        "permission_set_created",
        name=permission_set.name,
        namespace=permission_set.namespace,
    )


__all__ = [
    "EVENT_WATCHER_SUFFIX",
    "PermissionSet",
    "RoleRule",
    "create_permission_set",
    "event_watcher",
    "pods_get_events_all",
]
