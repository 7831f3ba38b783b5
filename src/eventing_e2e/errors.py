"""Custom exceptions for the eventing e2e harness.

Exception Hierarchy:
    HarnessError (base)
    ├── NamespaceUnavailableError
    ├── SetupError
    ├── TrackerDrainedError
    └── CleanupError

Kubernetes API failures are not wrapped; they surface as
``kubernetes.client.ApiException`` so callers can inspect the HTTP status.

Example:
    >>> from eventing_e2e.errors import NamespaceUnavailableError
    >>> raise NamespaceUnavailableError(attempts=20)
    NamespaceUnavailableError: unable to find available namespace after 20 attempts
"""

from __future__ import annotations

from collections.abc import Sequence


class HarnessError(Exception):
    """Base exception for all harness errors.

    Attributes:
        message: Human-readable error message.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NamespaceUnavailableError(HarnessError):
    """Raised when every candidate namespace already exists.

    Attributes:
        attempts: Number of candidate namespaces that were tried.
    """

    def __init__(self, *, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"unable to find available namespace after {attempts} attempts")


class SetupError(HarnessError):
    """Raised when the test environment cannot be provisioned.

    These errors are fatal to the individual test and are not retried.

    Attributes:
        namespace: Namespace being provisioned.
        step: Provisioning step that failed (e.g. "pull-secret").
        reason: Additional context about the failure.
    """

    def __init__(self, namespace: str, *, step: str, reason: str = "") -> None:
        self.namespace = namespace
        self.step = step
        self.reason = reason
        message = f"Setup step '{step}' failed for namespace '{namespace}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TrackerDrainedError(HarnessError):
    """Raised when a resource is added to a tracker that was already cleaned."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Cannot track {resource}: tracker was already drained")


class CleanupError(HarnessError):
    """Raised when one or more custom cleanup hooks fail.

    Every hook runs even if an earlier one failed; the failures are collected.

    Attributes:
        errors: Exceptions raised by the failing hooks, in execution order.
    """

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = list(errors)
        details = "; ".join(f"{type(e).__name__}: {e}" for e in self.errors)
        super().__init__(f"{len(self.errors)} cleanup hook(s) failed: {details}")


__all__ = [
    "CleanupError",
    "HarnessError",
    "NamespaceUnavailableError",
    "SetupError",
    "TrackerDrainedError",
]
