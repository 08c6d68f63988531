"""Registry of in-flight runs so a stop request can reach them."""

import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .cancellation import CancellationToken
from .errors import RunConflictError
from .logger import get_logger

_log = get_logger(__name__)


@dataclass
class RunHandle:
    run_id: str
    token: CancellationToken = field(default_factory=CancellationToken)


class RunRegistry:
    """Thread-safe map of run id to cancellation token.

    ``stop()`` without an id cancels the most recently registered run
    that is still active.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._runs: Dict[str, RunHandle] = {}
        self._order: List[str] = []

    def register(self, run_id: Optional[str] = None) -> RunHandle:
        """Add a run. An id that is still active raises RunConflictError."""
        handle = RunHandle(run_id or uuid.uuid4().hex[:12])
        with self._lock:
            if handle.run_id in self._runs:
                raise RunConflictError(handle.run_id)
            self._runs[handle.run_id] = handle
            self._order.append(handle.run_id)
        _log.debug("Registered run %s", handle.run_id)
        return handle

    def get(self, run_id: str) -> Optional[RunHandle]:
        with self._lock:
            return self._runs.get(run_id)

    def stop(self, run_id: Optional[str] = None) -> Optional[str]:
        """Cancel a run. Returns the id that was stopped, or None."""
        with self._lock:
            if run_id is None:
                run_id = self._order[-1] if self._order else None
            handle = self._runs.get(run_id) if run_id else None
        if handle is None:
            return None
        handle.token.cancel()
        _log.info("Stop requested for run %s", handle.run_id)
        return handle.run_id

    def finish(self, run_id: str):
        with self._lock:
            self._runs.pop(run_id, None)
            if run_id in self._order:
                self._order.remove(run_id)

    @property
    def active(self) -> List[str]:
        with self._lock:
            return list(self._order)
