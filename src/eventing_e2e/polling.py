"""Polling utilities for waiting on cluster state.

Used by the setup pipeline to wait for a namespace's default service account
and by the resource tracker to wait for deleted objects to disappear.

Functions:
    wait_for_condition: Poll until a condition is true or timeout

Example:
    from eventing_e2e.polling import PollingConfig, wait_for_condition

    wait_for_condition(
        lambda: service_account_exists("default"),
        config=PollingConfig(timeout=120.0, interval=1.0),
        description="default service account",
    )
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog
from pydantic import BaseModel, ConfigDict, Field

logger = structlog.get_logger(__name__)


class PollingConfig(BaseModel):
    """Configuration for polling utilities.

    Attributes:
        timeout: Maximum wait time in seconds. Defaults to 120.0.
        interval: Poll interval in seconds. Defaults to 1.0.

    Example:
        config = PollingConfig(timeout=60.0, interval=2.0)
    """

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(
        default=120.0,
        ge=0.0,
        description="Maximum wait time in seconds",
    )
    interval: float = Field(
        default=1.0,
        ge=0.1,
        description="Poll interval in seconds",
    )


class PollingTimeoutError(TimeoutError):
    """Raised when a polling operation times out.

    Attributes:
        description: What was being waited for
        timeout: How long we waited
        last_error: Last exception encountered during polling (if any)
    """

    def __init__(
        self,
        description: str,
        timeout: float,
        last_error: Exception | None = None,
    ) -> None:
        self.description = description
        self.timeout = timeout
        self.last_error = last_error
        message = f"Timeout waiting for {description} after {timeout:.1f}s"
        if last_error:
            message += f" (last error: {last_error})"
        super().__init__(message)


def wait_for_condition(
    condition: Callable[[], bool],
    config: PollingConfig | None = None,
    description: str = "condition",
    *,
    raise_on_timeout: bool = True,
) -> bool:
    """Poll until condition is True or timeout.

    The condition is checked immediately, then once per interval. An exception
    raised by the condition counts as "not yet"; the last one is attached to the
    timeout error.

    Args:
        condition: Callable returning True when the condition is met.
        config: Timeout and interval. Defaults to PollingConfig().
        description: Description for log and error messages.
        raise_on_timeout: If True, raise PollingTimeoutError on timeout.
            If False, return False on timeout. Defaults to True.

    Returns:
        True if condition was met within timeout.
        False if raise_on_timeout=False and timeout occurred.

    Raises:
        PollingTimeoutError: If condition not met within timeout and
            raise_on_timeout=True.
    """
    effective = config or PollingConfig()
    start_time = time.monotonic()
    last_error: Exception | None = None
    polls = 0

    while True:
        polls += 1
        try:
            if condition():
                logger.debug("condition_met", description=description, polls=polls)
                return True
        except Exception as e:  # noqa: BLE001
            last_error = e

        elapsed = time.monotonic() - start_time
        if elapsed >= effective.timeout:
            logger.warning(
                "condition_timeout",
                description=description,
                timeout=effective.timeout,
                polls=polls,
            )
            if raise_on_timeout:
                raise PollingTimeoutError(description, effective.timeout, last_error)
            return False

        # Don't sleep past the deadline
        remaining = effective.timeout - elapsed
        sleep_time = min(effective.interval, remaining)
        if sleep_time > 0:
            time.sleep(sleep_time)


__all__ = [
    "PollingConfig",
    "PollingTimeoutError",
    "wait_for_condition",
]
