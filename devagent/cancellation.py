"""Cooperative cancellation for agent runs."""

import threading
from typing import Callable, List

from .logger import get_logger

_log = get_logger(__name__)


class CancellationToken:
    """A one-shot stop signal shared between a run and whoever can stop it.

    The loop polls ``cancelled`` before every model call. The transport
    registers a callback so that an in-flight stream is closed as soon as
    the token fires instead of waiting for the next chunk.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Fire the token. Returns False when it had already fired."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            callbacks = list(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                _log.warning("Cancellation callback failed: %s", e)
        return True

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it.

        If the token has already fired the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return lambda: None

    def _remove(self, callback: Callable[[], None]):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def wait(self, timeout: float = None) -> bool:
        return self._event.wait(timeout)
