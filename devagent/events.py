"""Events emitted by an agent run."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict

STATUS = "status"
CHUNK = "chunk"
THOUGHT = "thought"
TOOL_CALL = "tool_call"
TOOL_RESULT = "tool_result"
TOOL_ERROR = "tool_error"
NUDGE = "nudge"
FORMAT_RECOVERY = "format_recovery"
RESPONSE = "response"
FAILURE = "failure"
ERROR = "error"

TERMINAL_EVENTS = frozenset({RESPONSE, FAILURE, ERROR})


@dataclass
class AgentEvent:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, **self.data}


EventSink = Callable[[AgentEvent], None]


def null_sink(event: AgentEvent) -> None:
    pass


def make_event(kind: str, **data: Any) -> AgentEvent:
    return AgentEvent(kind, {k: v for k, v in data.items() if v is not None})

