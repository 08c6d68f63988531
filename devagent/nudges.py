"""Corrective turns injected into the conversation.

A standard nudge is a pair: a short assistant acknowledgement, then the
numbered directive as a user turn.
"""

from typing import Dict, List

from .prompts import NUDGE_ACK, REJECTED_OUTPUT

Turn = Dict[str, str]


def directive_text(number: int, message: str) -> str:
    return f"[SYSTEM DIRECTIVE #{number}] {message}"


def inject_nudge(history: List[Turn], message: str, number: int,
                 ack: str = NUDGE_ACK) -> None:
    history.append({"role": "assistant", "content": ack})
    history.append({"role": "user", "content": directive_text(number, message)})


def inject_format_recovery(history: List[Turn], example: str) -> None:
    """Blank out the garbled reply and show the format again."""
    for turn in reversed(history):
        if turn.get("role") == "assistant":
            turn["content"] = REJECTED_OUTPUT
            break
    history.append({"role": "user", "content": example})
