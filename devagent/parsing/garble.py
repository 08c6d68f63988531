"""Detect catastrophically fused marker output.

Some quantized models collapse ``ACTION:`` and ``PARAMETERS:`` into a single
token soup such as ``ACTIONXXXETERS:``. Once that happens the reply is
beyond repair and the model needs to be shown the format again.
"""

import re

FUSED = r"ACTION[A-Z]{3,}ETERS"

_FUSED_RE = re.compile(FUSED)
_LINE_ANCHORED_RE = re.compile(
    r"^[ \t]*(?:\d+[.)][ \t]*)?(?:[#*_>]+[ \t]*)?" + FUSED, re.MULTILINE
)


def is_garbled(raw: str) -> bool:
    """True when ``raw`` carries a fused-marker signature.

    A single fusion in the middle of a line is left to the sanitizer.
    Two or more fusions, or one that opens a line (where nothing valid
    precedes it), mean the reply has no recoverable structure.
    """
    if not raw:
        return False
    if len(_FUSED_RE.findall(raw)) >= 2:
        return True
    return bool(_LINE_ANCHORED_RE.search(raw))
