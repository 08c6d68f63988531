"""Parsing of model replies written in the THOUGHT / ACTION / PARAMETERS format."""

from .garble import is_garbled
from .json_extract import extract_json
from .reply import CHAIN_ERROR, FINISH, ParsedReply, ReplyParser
from .sanitizer import sanitize

__all__ = [
    "CHAIN_ERROR",
    "FINISH",
    "ParsedReply",
    "ReplyParser",
    "extract_json",
    "is_garbled",
    "sanitize",
]
