"""devagent: local-LLM coding agent."""

__version__ = "1.0.0"
