"""Recover a JSON object from noisy model output.

Strategies run in order and the first one that yields an object wins:

1. cut a brace-balanced candidate (quote-aware, tolerates truncation)
2. strict JSON
3. relaxed object literal (json5: unquoted keys, single quotes, comments)
4. strict JSON after stripping trailing commas
5. field-by-field recovery of the keys tools care about

Field recovery is lossy; its results carry ``"_partial": True``.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import json5

PARTIAL_KEY = "_partial"
RECOVERABLE_FIELDS = ("path", "content", "search", "replace", "name", "type", "files")

_QUOTES = "\"'`"
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f",
            "\"": "\"", "'": "'", "`": "`", "\\": "\\", "/": "/"}
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
# A closing quote must be followed by the end of the object, of an array,
# of the text, or by a comma that introduces another key.
_STRING_END_RE = re.compile(r"\s*(?:$|[}\]]|,\s*(?:$|[}\]]|[\"'`]?[A-Za-z_]\w*[\"'`]?\s*:))")


def balanced_candidate(text: str, opener: str = "{") -> Optional[str]:
    """Slice from the first ``opener`` to its matching closer.

    Characters inside single, double or backtick quotes are ignored and
    backslash escapes are honored. If the text ends before the structure
    closes, everything from the opener to the end is returned.
    """
    closer = "}" if opener == "{" else "]"
    start = text.find(opener)
    if start < 0:
        return None
    depth = 0
    quote = None
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = None
            continue
        if ch in _QUOTES:
            quote = ch
        elif ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return text[start:]


def parse_strict(candidate: str) -> Any:
    try:
        # strict=False lets raw newlines through inside strings.
        return json.loads(candidate, strict=False)
    except ValueError:
        return None


def parse_relaxed(candidate: str) -> Any:
    try:
        return json5.loads(candidate)
    except (ValueError, TypeError, RecursionError):
        return None


def parse_without_trailing_commas(candidate: str) -> Any:
    cleaned = _TRAILING_COMMA_RE.sub(r"\1", candidate)
    if cleaned == candidate:
        return None
    return parse_strict(cleaned)


STRATEGIES: List[Tuple[str, Callable[[str], Any]]] = [
    ("strict", parse_strict),
    ("relaxed", parse_relaxed),
    ("trailing-commas", parse_without_trailing_commas),
]


def _read_quoted(text: str, pos: int) -> str:
    quote = text[pos]
    out = []
    i = pos + 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\\" and i + 1 < n:
            nxt = text[i + 1]
            if nxt == "u" and re.match(r"[0-9a-fA-F]{4}", text[i + 2:i + 6]):
                out.append(chr(int(text[i + 2:i + 6], 16)))
                i += 6
                continue
            out.append(_ESCAPES.get(nxt, "\\" + nxt))
            i += 2
            continue
        if ch == quote and _STRING_END_RE.match(text, i + 1):
            return "".join(out)
        out.append(ch)
        i += 1
    # Unterminated: the reply was cut off, keep what arrived.
    return "".join(out).rstrip()


def _read_fenced(text: str, pos: int) -> str:
    body_start = text.find("\n", pos)
    if body_start < 0:
        return ""
    end = text.find("```", body_start + 1)
    if end < 0:
        return text[body_start + 1:].rstrip()
    return text[body_start + 1:end].rstrip("\n")


def _read_array(text: str, pos: int) -> Optional[list]:
    candidate = balanced_candidate(text[pos:], opener="[")
    if not candidate:
        return None
    for _name, strategy in STRATEGIES:
        value = strategy(candidate)
        if isinstance(value, list):
            return value
    return None


def _read_bare(text: str, pos: int) -> Optional[str]:
    m = re.match(r"[^,}\n]+", text[pos:])
    if not m:
        return None
    value = m.group(0).strip()
    return value or None


def recover_field(text: str, name: str) -> Any:
    """Recover the value of one key, or None."""
    m = re.search(r"(?<![\w])[\"'`]?" + re.escape(name) + r"[\"'`]?\s*:\s*", text)
    if not m:
        return None
    pos = m.end()
    if pos >= len(text):
        return None
    if text.startswith("```", pos):
        return _read_fenced(text, pos)
    ch = text[pos]
    if ch in _QUOTES:
        return _read_quoted(text, pos)
    if ch == "[":
        return _read_array(text, pos)
    if name == "files":
        return None
    return _read_bare(text, pos)


def recover_fields(text: str) -> Optional[Dict[str, Any]]:
    found: Dict[str, Any] = {}
    for name in RECOVERABLE_FIELDS:
        value = recover_field(text, name)
        if value is not None:
            found[name] = value
    if not found:
        return None
    found[PARTIAL_KEY] = True
    return found


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """Best-effort object extraction. Never raises."""
    if not text or not text.strip():
        return None
    candidate = balanced_candidate(text)
    if candidate is not None:
        for _name, strategy in STRATEGIES:
            value = strategy(candidate)
            if isinstance(value, dict):
                return value
    return recover_fields(candidate if candidate is not None else text)
