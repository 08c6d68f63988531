"""Conversation history pruning."""

import re
from typing import Dict, List

from .logger import get_logger

_log = get_logger(__name__)

Turn = Dict[str, str]

HEAD_TURNS = 2  # system prompt + original task
MAX_EVIDENCE_TURNS = 10

_EVIDENCE_RE = re.compile(
    r"\[\s*VERDICT\s*:|REVIEW\s+(?:REJECTED|FAILED)|READY FOR REVIEW|\[SYSTEM DIRECTIVE #",
    re.IGNORECASE,
)


def is_evidence(turn: Turn, extra_markers=()) -> bool:
    """Turns worth keeping even when they fall outside the recent window."""
    content = turn.get("content") or ""
    if _EVIDENCE_RE.search(content):
        return True
    return any(marker and marker in content for marker in extra_markers)


def prune_history(history: List[Turn], max_turns: int = 50, window: int = 30,
                  extra_markers=()) -> List[Turn]:
    """Return a shortened copy of ``history`` once it exceeds ``max_turns``.

    Keeps the first two turns, the last ``window`` turns and up to
    ``MAX_EVIDENCE_TURNS`` evidentiary turns from the middle, in order.
    """
    if len(history) <= max_turns:
        return history
    head = history[:HEAD_TURNS]
    middle = history[HEAD_TURNS:len(history) - window]
    tail = history[len(history) - window:]
    evidence = [t for t in middle if is_evidence(t, extra_markers)][-MAX_EVIDENCE_TURNS:]
    pruned = head + evidence + tail
    _log.info("Pruned history %d → %d turns", len(history), len(pruned))
    return pruned
