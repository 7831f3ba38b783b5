"""Namespace allocation for eventing e2e tests.

Every test runs in its own namespace named ``<base><n>`` where ``n`` comes
from a counter shared by all tests in the process. Names are shared across
CI runs, and a previous run may have left a namespace behind, so callers
skip candidates that already exist rather than coordinating globally.

Example:
    >>> from eventing_e2e.namespaces import NamespaceAllocator
    >>> allocator = NamespaceAllocator("eventing-e2e")
    >>> allocator.next_namespace()
    'eventing-e2e0'
    >>> allocator.next_namespace()
    'eventing-e2e1'
"""

from __future__ import annotations

import os
import re
import threading
import time
from typing import Any

import structlog
from kubernetes.client import ApiException

from eventing_e2e.config import DEFAULT_NAMESPACE_BASE

logger = structlog.get_logger(__name__)

NAMESPACE_ENV_VAR = "EVENTING_E2E_NAMESPACE"

MAX_NAMESPACE_SKIP = 20
MAX_RETRIES = 5
RETRY_SLEEP_SECONDS = 2.0

# K8s namespace constraints
MAX_NAMESPACE_LENGTH = 63
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


class InvalidNamespaceError(ValueError):
    """Raised when a namespace name is invalid for Kubernetes."""

    def __init__(self, namespace: str, reason: str) -> None:
        self.namespace = namespace
        self.reason = reason
        super().__init__(f"Invalid namespace '{namespace}': {reason}")


def validate_namespace(namespace: str) -> bool:
    """Check if a namespace name is valid for Kubernetes.

    Valid names contain only lowercase alphanumerics and hyphens, start and
    end with an alphanumeric, and are at most 63 characters.

    Example:
        >>> validate_namespace("eventing-e2e0")
        True
        >>> validate_namespace("Eventing_E2E")
        False
    """
    if not namespace or len(namespace) > MAX_NAMESPACE_LENGTH:
        return False
    return bool(NAMESPACE_PATTERN.match(namespace))


def is_not_found(error: BaseException) -> bool:
    """Return True if error is a Kubernetes 404."""
    return isinstance(error, ApiException) and error.status == HTTP_NOT_FOUND


def is_already_exists(error: BaseException) -> bool:
    """Return True if error is a Kubernetes 409 AlreadyExists."""
    return isinstance(error, ApiException) and error.status == HTTP_CONFLICT


class NamespaceAllocator:
    """Hands out namespace names backed by a lock-protected counter.

    The counter starts at zero and is never reset. It is only ever read
    through next_namespace_id(), so concurrent tests never see the same value.

    Args:
        base: Namespace base name. None reads EVENTING_E2E_NAMESPACE on each
            call, falling back to "eventing-e2e".
    """

    def __init__(self, base: str | None = None) -> None:
        self._base = base
        self._lock = threading.Lock()
        self._count = 0

    @property
    def base(self) -> str:
        """Effective base name for the next namespace."""
        if self._base:
            return self._base
        return os.environ.get(NAMESPACE_ENV_VAR) or DEFAULT_NAMESPACE_BASE

    def next_namespace_id(self) -> int:
        """Return the current counter value and advance it."""
        with self._lock:
            current = self._count
            self._count += 1
        return current

    def next_namespace(self) -> str:
        """Return the next unique namespace name.

        Raises:
            InvalidNamespaceError: If base plus counter is not a valid name.
        """
        namespace = f"{self.base}{self.next_namespace_id()}"
        if not validate_namespace(namespace):
            raise InvalidNamespaceError(
                namespace,
                "does not match K8s naming rules",
            )
        return namespace


def create_namespace_with_retry(
    core_api: Any,
    namespace: str,
    *,
    max_retries: int = MAX_RETRIES,
    sleep_seconds: float = RETRY_SLEEP_SECONDS,
) -> None:
    """Create a namespace, retrying on failure.

    Errors are not classified: any failure, permanent ones included, sleeps
    the fixed backoff and tries again, up to max_retries attempts. A 409 from
    a namespace that is still terminating can clear within those attempts.
    Callers classify the error raised after the last attempt.

    Args:
        core_api: Kubernetes CoreV1Api.
        namespace: Namespace to create.
        max_retries: Total create attempts.
        sleep_seconds: Backoff between attempts.

    Raises:
        ApiException: The last error once every attempt has failed.
    """
    body = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": namespace}}
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 1):
        try:
            core_api.create_namespace(body=body)
        except Exception as e:
            last_error = e
            logger.warning(
                "namespace_create_failed",
                namespace=namespace,
                attempt=attempt,
                max_retries=max_retries,
                error=str(e),
            )
            if attempt < max_retries:
                time.sleep(sleep_seconds)
            continue
        logger.info("namespace_created", namespace=namespace, attempt=attempt)
        return

    if last_error is None:
        msg = f"max_retries must be at least 1, got {max_retries}"
        raise ValueError(msg)
    raise last_error


__all__ = [
    "HTTP_CONFLICT",
    "HTTP_NOT_FOUND",
    "InvalidNamespaceError",
    "MAX_NAMESPACE_LENGTH",
    "MAX_NAMESPACE_SKIP",
    "MAX_RETRIES",
    "NAMESPACE_ENV_VAR",
    "NamespaceAllocator",
    "RETRY_SLEEP_SECONDS",
    "create_namespace_with_retry",
    "is_already_exists",
    "is_not_found",
    "validate_namespace",
]
