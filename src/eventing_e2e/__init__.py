"""eventing-e2e: namespace lifecycle and component matrix harness for eventing e2e tests.

Each test gets its own namespace, allocated from a process-wide counter with
retry past leftovers of earlier runs. Tests fan out over the components under
test according to a capability matrix, and every session is torn down
best-effort: events are dumped, logs exported on CI failures, tracked objects
and the namespace deleted.

Example:
    >>> from eventing_e2e import Component, ComponentsTestRunner, Feature
    >>> runner = ComponentsTestRunner(
    ...     {Component("InMemoryChannel", "messaging.knative.dev/v1"): [Feature.BASIC]},
    ...     [Component("InMemoryChannel", "messaging.knative.dev/v1")],
    ... )
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    "Component",
    "ComponentsTestRunner",
    "Feature",
    "HarnessConfig",
    "NamespaceAllocator",
    "TestSession",
    "session_scope",
    "setup",
    "tear_down",
]

_LAZY = {
    "Component": "eventing_e2e.runner",
    "ComponentsTestRunner": "eventing_e2e.runner",
    "Feature": "eventing_e2e.runner",
    "HarnessConfig": "eventing_e2e.config",
    "NamespaceAllocator": "eventing_e2e.namespaces",
    "TestSession": "eventing_e2e.session",
    "session_scope": "eventing_e2e.provisioning",
    "setup": "eventing_e2e.provisioning",
    "tear_down": "eventing_e2e.teardown",
}


# Lazy imports keep `import eventing_e2e` free of the kubernetes client
def __getattr__(name: str):
    """Lazy import of public names."""
    module_name = _LAZY.get(name)
    if module_name is None:
        msg = f"module {__name__!r} has no attribute {name!r}"
        raise AttributeError(msg)
    import importlib

    return getattr(importlib.import_module(module_name), name)
