"""Reply parser: turn one raw model reply into a ParsedReply."""

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple

from .garble import is_garbled
from .json_extract import PARTIAL_KEY, extract_json
from .markers import (ACTION, PARAMETERS, THOUGHT, action_name, first_block,
                      strip_markers, tokenize)
from .sanitizer import sanitize

if TYPE_CHECKING:
    from ..modes import Mode

FINISH = "finish"
CHAIN_ERROR = "chain_error"
FINISH_ALIASES = frozenset({"finish", "final"})

_TOOL_PREFIXES = ("functions.", "function.", "tools.", "tool:", "tool.")
_CHANNEL_RE = re.compile(r"<\|channel\|>\s*(\w+)(?:\s+to=([\w:.\-]+))?", re.IGNORECASE)
_CHANNEL_MESSAGE_RE = re.compile(r"<\|message\|>([\s\S]*?)(?:<\|(?:end|return|call)\|>|$)")
_CONTROL_TOKEN_RE = re.compile(r"<\|[a-z_]+\|>")
_ORPHAN_CODE_RE = re.compile(r"```[\s\S]*?```")

GARBLED_ERROR = ("Your reply fused the ACTION and PARAMETERS markers into one token. "
                 "Write each marker on its own line.")


@dataclass
class ParsedReply:
    action: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    response: str = ""
    thought: str = ""
    error: str = ""
    is_garbled: bool = False
    partial: bool = False

    @property
    def is_finish(self) -> bool:
        return self.action == FINISH

    @property
    def is_chain_error(self) -> bool:
        return self.action == CHAIN_ERROR

    @property
    def is_tool(self) -> bool:
        return bool(self.action) and self.action not in (FINISH, CHAIN_ERROR)


def chain_error(message: str, thought: str = "", garbled: bool = False) -> ParsedReply:
    return ParsedReply(action=CHAIN_ERROR, error=message, thought=thought, is_garbled=garbled)


class ReplyParser:
    """Tolerant parser for the THOUGHT / ACTION / PARAMETERS format.

    ``tool_names`` is the allow-list; any other action name is discarded.
    Mode restrictions are not applied here, the guard bank owns those.
    """

    def __init__(self, tool_names: Iterable[str]):
        self.tool_names = frozenset(tool_names)

    def parse(self, raw: str, mode: "Mode") -> ParsedReply:
        raw = raw or ""
        if is_garbled(raw):
            return chain_error(GARBLED_ERROR, garbled=True)

        text = sanitize(raw)
        blocks = tokenize(text)

        thought_block = first_block(blocks, THOUGHT)
        thought = thought_block.body if thought_block and not mode.fast else ""

        action_block = first_block(blocks, ACTION)
        named = action_name(action_block.body) if action_block else None
        action = self.resolve_action(named)

        params = extract_json(self._parameter_text(text, blocks, action_block))

        if action is None:
            action, params = self._from_channel_tokens(raw, params)
        if action is None:
            action, params = self._from_json_envelope(params)

        if action == FINISH:
            params = _without_partial(params)
            return ParsedReply(action=FINISH, parameters=params,
                               response=self._finish_response(params, text, raw),
                               thought=thought)

        if action:
            if params is None:
                return chain_error(
                    f"ACTION `{action}` was given but its PARAMETERS did not contain "
                    "a valid JSON object.", thought)
            partial = bool(params.pop(PARTIAL_KEY, False))
            return ParsedReply(action=action, parameters=params,
                               thought=thought, partial=partial)

        if named and named.lower() not in self.tool_names:
            available = ", ".join(sorted(self.tool_names | {FINISH}))
            return chain_error(f"Unknown tool `{named}`. Available tools: {available}.", thought)

        if not mode.review and _ORPHAN_CODE_RE.search(text):
            return chain_error(
                "You wrote a code block as plain text. Code only reaches the workspace "
                "through a tool call such as write_file.", thought)

        return ParsedReply(action=FINISH, response=strip_markers(text), thought=thought)

    def resolve_action(self, name: Optional[str]) -> Optional[str]:
        """Map a raw action token onto the allow-list, or None."""
        if not name:
            return None
        name = name.strip().strip("`*\"'").lower()
        for prefix in _TOOL_PREFIXES:
            if name.startswith(prefix):
                name = name[len(prefix):]
        if name in FINISH_ALIASES:
            return FINISH
        if name in self.tool_names:
            return name
        return None

    @staticmethod
    def _parameter_text(text: str, blocks, action_block) -> str:
        # Only the PARAMETERS block that belongs to the first action counts;
        # models sometimes narrate a second, different call afterwards.
        if action_block is not None:
            params_block = first_block(blocks, PARAMETERS, after=action_block.start)
            if params_block is not None:
                return params_block.body
            body = action_block.body
            name = action_name(body)
            if name:
                body = body[body.find(name) + len(name):]
            return body
        params_block = first_block(blocks, PARAMETERS)
        if params_block is not None:
            return params_block.body
        return text

    def _from_channel_tokens(self, raw: str,
                             params: Optional[dict]) -> Tuple[Optional[str], Optional[dict]]:
        m = _CHANNEL_RE.search(raw)
        if not m:
            return None, params
        channel, target = m.group(1).lower(), m.group(2)
        if target:
            action = self.resolve_action(target)
            if action:
                message = _CHANNEL_MESSAGE_RE.search(raw, m.end())
                found = extract_json(message.group(1)) if message else None
                return action, found if found is not None else params
        if channel == "final":
            return FINISH, params
        return None, params

    def _from_json_envelope(self, params: Optional[dict]) -> Tuple[Optional[str], Optional[dict]]:
        if not params:
            return None, params
        for key in ("action", "tool", "tool_name", "name"):
            value = params.get(key)
            if not isinstance(value, str):
                continue
            action = self.resolve_action(value)
            if not action:
                continue
            inner = params.get("parameters", params.get("params", params.get("arguments")))
            if isinstance(inner, dict):
                return action, inner
            if key == "name":
                # {"name": ...} alone is too common in tool params to trust.
                continue
            rest = {k: v for k, v in params.items() if k != key}
            return action, rest
        return None, params

    @staticmethod
    def _finish_response(params: dict, text: str, raw: str) -> str:
        for key in ("response", "message", "summary", "answer"):
            value = params.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        message = _CHANNEL_MESSAGE_RE.findall(raw)
        if message and _CHANNEL_RE.search(raw):
            return _CONTROL_TOKEN_RE.sub("", message[-1]).strip()
        return strip_markers(_CONTROL_TOKEN_RE.sub("", text))


def _without_partial(params: Optional[dict]) -> dict:
    if not params:
        return {}
    return {k: v for k, v in params.items() if k != PARTIAL_KEY}
