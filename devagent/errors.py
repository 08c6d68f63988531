"""Structured error types for the agent system."""


class AgentError(Exception):
    """Base error for all agent operations."""
    pass


class TransportError(AgentError):
    """Raised when the model endpoint cannot produce a reply."""
    pass


class StreamStallError(TransportError):
    """Raised when the stream goes quiet for longer than the stall timeout."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"LM Studio stream stalled: no data for {timeout:g}s")


class AgentStoppedError(TransportError):
    """Raised when a run is cancelled by the user."""

    def __init__(self):
        super().__init__("Agent stopped by user.")


class ToolError(AgentError):
    """Error raised during tool execution."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name} error: {message}")


class InvalidTargetError(AgentError):
    """Raised when a requested target folder escapes the workspace."""

    def __init__(self, target: str):
        self.target = target
        super().__init__(f"Target folder '{target}' is outside the workspace")


class RunConflictError(AgentError):
    """Raised when a run id is already in use by an active run."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run '{run_id}' is already active")
