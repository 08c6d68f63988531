"""Cross-turn facts about a run, kept apart from the (prunable) history."""

from dataclasses import dataclass, fields
from typing import Dict


@dataclass
class AgentState:
    """Monotonic flags: each starts False and only ever flips to True.

    Guards consult these instead of scanning the conversation, so pruning
    is free to drop any turn once the fact it proved has been recorded.
    """
    report_saved: bool = False
    review_requested: bool = False
    code_modified: bool = False
    plan_written: bool = False
    report_read: bool = False
    rejection_seen: bool = False

    def mark(self, flag: str) -> bool:
        """Set ``flag``. Returns True only on the first flip."""
        if flag not in self._names():
            raise AttributeError(f"Unknown state flag: {flag}")
        if getattr(self, flag):
            return False
        object.__setattr__(self, flag, True)
        return True

    def __setattr__(self, name, value):
        if name in self._names() and getattr(self, name, False) and not value:
            raise ValueError(f"AgentState.{name} cannot be reset once set")
        object.__setattr__(self, name, value)

    @classmethod
    def _names(cls):
        return {f.name for f in fields(cls)}

    def as_dict(self) -> Dict[str, bool]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
