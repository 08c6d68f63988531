"""Marker tokenizer for the THOUGHT / ACTION / PARAMETERS reply format.

Operates on sanitized text, where every marker starts its own line in
canonical ``NAME:`` form.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

THOUGHT = "THOUGHT"
ACTION = "ACTION"
PARAMETERS = "PARAMETERS"
MARKERS = (THOUGHT, ACTION, PARAMETERS)

_MARKER_LINE_RE = re.compile(r"^(THOUGHT|ACTION|PARAMETERS):[ \t]?", re.MULTILINE)
_ACTION_NAME_RE = re.compile(r"[`*\"'\s]*([A-Za-z_][\w.\-]*)")
_ANY_MARKER_RE = re.compile(r"(?:^|\n)\s*(?:THOUGHT|ACTION|PARAMETERS)\s*:", re.IGNORECASE)
_ACTION_CUT_RE = re.compile(
    r"(?:^|\n)[ \t]*(?:\d+[.)][ \t]*)?(?:[#*_]+[ \t]*)?ACTION[ \t*_]*:", re.IGNORECASE
)
_THOUGHT_LABEL_RE = re.compile(
    r"^[ \t]*(?:\d+[.)][ \t]*)?(?:[#*_]+[ \t]*)?THOUGHT[ \t*_]*:[ \t*_]*",
    re.IGNORECASE | re.MULTILINE,
)


@dataclass
class MarkerBlock:
    """One marker and the text up to the next marker."""
    kind: str
    body: str
    start: int


def tokenize(text: str) -> List[MarkerBlock]:
    """Split sanitized text into marker blocks, in order of appearance.

    Text before the first marker is not part of any block.
    """
    matches = list(_MARKER_LINE_RE.finditer(text))
    blocks = []
    for i, m in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        blocks.append(MarkerBlock(m.group(1), text[m.end():end].strip(), m.start()))
    return blocks


def first_block(blocks: List[MarkerBlock], kind: str,
                after: int = -1) -> Optional[MarkerBlock]:
    for block in blocks:
        if block.kind == kind and block.start > after:
            return block
    return None


def action_name(body: str) -> Optional[str]:
    """First identifier-like token of an ACTION block, decorations stripped."""
    m = _ACTION_NAME_RE.match(body)
    if not m:
        return None
    return m.group(1).strip(".-") or None


def has_markers(text: str) -> bool:
    return bool(_ANY_MARKER_RE.search(text or ""))


def strip_markers(text: str) -> str:
    """Remove the ACTION / PARAMETERS portion and the THOUGHT label.

    Used for the human-readable stream and for implicit finish responses.
    """
    if not text:
        return ""
    cut = _ACTION_CUT_RE.search(text)
    if cut:
        text = text[:cut.start()]
    text = _THOUGHT_LABEL_RE.sub("", text)
    return text.strip()
