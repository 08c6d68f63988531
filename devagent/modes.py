"""Run modes and the tags that select them."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

from .errors import InvalidTargetError

GENERATE = "generate"
REVIEW = "review"

GENERATE_TOOLS = frozenset({
    "read_file", "list_files", "bulk_read",
    "write_file", "replace_in_file", "bulk_write", "apply_blueprint", "scaffold_project",
    "log_handoff", "request_review",
})
# Writes are exposed in review mode for the review report only.
REVIEW_TOOLS = frozenset({
    "read_file", "list_files", "bulk_read",
    "write_file", "replace_in_file",
    "log_handoff",
})

GENERATE_GUARDS = (
    "duplicate", "no_progress", "chain_error", "premature_finish",
    "review_request", "follow_up",
)
REVIEW_GUARDS = (
    "duplicate", "chain_error", "review_write", "report_missing", "verdict_missing",
)


@dataclass(frozen=True)
class Mode:
    """Everything that differs between generate and review runs."""
    name: str
    tools: FrozenSet[str]
    guards: Tuple[str, ...]
    fast: bool = False

    @property
    def review(self) -> bool:
        return self.name == REVIEW

    def allows(self, tool_name: str) -> bool:
        return tool_name in self.tools

    def with_fast(self, fast: bool) -> "Mode":
        return Mode(self.name, self.tools, self.guards, fast)

    def __str__(self):
        return f"{self.name}{' (fast)' if self.fast else ''}"


GENERATE_MODE = Mode(GENERATE, GENERATE_TOOLS, GENERATE_GUARDS)
REVIEW_MODE = Mode(REVIEW, REVIEW_TOOLS, REVIEW_GUARDS)


def mode_for(review: bool = False, fast: bool = False) -> Mode:
    return (REVIEW_MODE if review else GENERATE_MODE).with_fast(fast)


# ── Request tags ──

_MODE_TAG_RE = re.compile(r"\[MODE:\s*(REVIEW|GENERATE)\s*\]", re.IGNORECASE)
_TARGET_TAG_RE = re.compile(r"\[TARGET FOLDER:\s*([^\]\n]+?)\s*\]", re.IGNORECASE)


@dataclass
class RequestTags:
    review: bool = False
    target_folder: Optional[str] = None


def latest_user_text(messages: List[Dict[str, str]]) -> str:
    for message in reversed(messages):
        if message.get("role") == "user":
            return str(message.get("content") or "")
    return ""


def parse_request_tags(text: str) -> RequestTags:
    """Read ``[MODE: ...]`` and ``[TARGET FOLDER: ...]`` from a user turn."""
    tags = RequestTags()
    mode_match = _MODE_TAG_RE.search(text or "")
    if mode_match:
        tags.review = mode_match.group(1).upper() == "REVIEW"
    target_match = _TARGET_TAG_RE.search(text or "")
    if target_match:
        target = target_match.group(1).strip().strip("/\\")
        tags.target_folder = target or None
    return tags


def resolve_target(root: Path, target: Optional[str]) -> Path:
    """Effective workspace for a run: ``root`` or a folder inside it."""
    root = Path(root).resolve()
    if not target:
        return root
    candidate = (root / target).resolve()
    try:
        candidate.relative_to(root)
    except ValueError:
        raise InvalidTargetError(target)
    return candidate
