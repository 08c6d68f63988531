"""Reply sanitizer: rewrite malformed marker text into canonical form.

After sanitizing, every THOUGHT / ACTION / PARAMETERS marker is uppercase,
begins its own line and is followed by ``": "`` (or a bare ``":"`` at the
end of a line). Running the sanitizer twice gives the same text as running
it once.

Markers are recognized in any letter case. At the start of a line any
case counts; in the middle of a line an all-lowercase marker with no bold
around it is left alone as prose ("two parameters: a and b").
"""

import re
from typing import Callable, List, Tuple

from .markers import MARKERS

_MARKER_ALT = "|".join(MARKERS)

# Fused markers, longest patterns first.
_FUSIONS: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"THOUGHTACTION:"), "THOUGHT:\n\nACTION:"),
    (re.compile(r"THOUGHTPARAMETERS:"), "THOUGHT:\n\nPARAMETERS:"),
    # ACTIONPARAMETERS:, ACTIONAMETERS:, ACTIONXXXETERS:PARAMETERS: ...
    (re.compile(r"ACTION[A-Z]*ETERS:[A-Z:]*"), "ACTION:\n\nPARAMETERS:"),
]

_BOLD = r"(?:\*\*|__)"

# One decorated marker. At a line start the lead may carry a list number,
# a heading and an opening bold run; mid-line it is whitespace plus a bold
# run glued to the name. Every bold run after the colon is consumed.
_MARKER_RE = re.compile(
    r"(?:^[ \t]*(?:\d+[.)][ \t]*)?(?:#{1,6}[ \t]*)?(?:" + _BOLD + r"[ \t]*)*"
    r"|[ \t]*" + _BOLD + r"*)"
    r"(?<![A-Za-z0-9_])(?P<name>" + _MARKER_ALT + r")"
    r"[ \t]*" + _BOLD + r"*[ \t]*:(?:[ \t]*" + _BOLD + r")*[ \t]*",
    re.IGNORECASE | re.MULTILINE,
)

_BARE_MARKER_LINE_RE = re.compile(r"^(" + _MARKER_ALT + r"): +$", re.MULTILINE)
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


def _normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _repair_fusions(text: str) -> str:
    for pattern, replacement in _FUSIONS:
        text = pattern.sub(replacement, text)
    return text


def _canonical_markers(text: str) -> str:
    def repl(m: re.Match) -> str:
        raw_name = m.group("name")
        inline = m.start() > 0 and text[m.start() - 1] != "\n"
        if inline and raw_name.islower() and not re.search(r"[*_]", m.group(0)):
            return m.group(0)
        at_eol = m.end() >= len(text) or text[m.end()] == "\n"
        marker = f"{raw_name.upper()}:" if at_eol else f"{raw_name.upper()}: "
        return "\n\n" + marker if inline else marker

    return _MARKER_RE.sub(repl, text)


def _trim_bare_markers(text: str) -> str:
    # A marker whose value was split off onto the next line.
    return _BARE_MARKER_LINE_RE.sub(r"\1:", text)


def _collapse_newlines(text: str) -> str:
    return _EXCESS_NEWLINES_RE.sub("\n\n", text)


RULES: List[Tuple[str, Callable[[str], str]]] = [
    ("line-endings", _normalize_line_endings),
    ("fused-markers", _repair_fusions),
    ("markers", _canonical_markers),
    ("bare-markers", _trim_bare_markers),
    ("blank-lines", _collapse_newlines),
]


def sanitize(raw: str) -> str:
    """Apply every rewrite rule in order."""
    text = raw or ""
    for _name, rule in RULES:
        text = rule(text)
    return text
