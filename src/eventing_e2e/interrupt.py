"""Run cleanup callbacks when the test process is interrupted.

Pytest finalizers do not run when the process is killed by SIGTERM, and a
second Ctrl-C can abort them. Sessions register their teardown here so the
namespaces they created are still removed.

Example:
    >>> interrupts = InterruptCleanup()
    >>> handle = interrupts.register(lambda: tear_down(session))
    >>> ...
    >>> interrupts.unregister(handle)
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable
from types import FrameType
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

Callback = Callable[[], None]

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class InterruptCleanup:
    """Registry of callbacks run once on SIGINT or SIGTERM.

    Signal handlers are installed on the first registration made from the
    main thread. When a signal arrives every registered callback runs (errors
    are logged), then the previously installed handler is invoked. Without
    one, SIGINT raises KeyboardInterrupt and SIGTERM raises SystemExit(1).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callback] = {}
        self._next_handle = 0
        self._previous: dict[int, Any] = {}
        self._installed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def register(self, callback: Callback) -> int:
        """Register callback and return a handle for unregister()."""
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self._callbacks[handle] = callback
        self._install()
        return handle

    def unregister(self, handle: int) -> None:
        """Forget a callback; unknown handles are ignored."""
        with self._lock:
            self._callbacks.pop(handle, None)

    def run_callbacks(self) -> None:
        """Run and clear all registered callbacks."""
        with self._lock:
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("interrupt_cleanup_failed")

    def _install(self) -> None:
        if self._installed or threading.current_thread() is not threading.main_thread():
            return
        for signum in HANDLED_SIGNALS:
            self._previous[signum] = signal.signal(signum, self._handle)
        self._installed = True

    def _handle(self, signum: int, frame: FrameType | None) -> None:
        logger.warning("interrupt_received", signal=signal.Signals(signum).name)
        self.run_callbacks()
        previous = self._previous.get(signum)
        if callable(previous):
            previous(signum, frame)
            return
        if signum == signal.SIGINT:
            raise KeyboardInterrupt
        raise SystemExit(1)


__all__ = ["InterruptCleanup"]
