"""Tool registry: dict-based dispatch with per-mode filtering."""
from typing import Any, Callable, Dict, List

from ..errors import ToolError
from ..modes import GENERATE_MODE, Mode
from .file_ops import FileOps, FileOperationError, parse_blueprint
from .handoff import HandoffLog
from .params import ParameterError, matches_file, normalize_params
from .scaffold import Scaffolder


class _ToolEntry:
    """Single tool registration: handler + parameter shape + metadata."""
    __slots__ = ("name", "handler", "params", "description", "writes")

    def __init__(self, name: str, handler: Callable, params: str,
                 description: str = "", writes: bool = False):
        self.name = name
        self.handler = handler
        self.params = params
        self.description = description
        self.writes = writes


class ToolRegistry:
    WRITE_TOOLS = {"write_file", "replace_in_file", "bulk_write", "apply_blueprint", "scaffold_project"}
    READ_TOOLS = {"read_file", "list_files", "bulk_read"}
    LOG_TOOLS = {"log_handoff", "request_review"}

    def __init__(self, workspace_root: str, report_file: str = "REVIEW_REPORT.md",
                 handoff_log: str = ".devagent/handoff.log"):
        self.file_ops = FileOps(workspace_root)
        self.handoff = HandoffLog(self.file_ops, handoff_log)
        self.scaffolder = Scaffolder(self.file_ops)
        self.report_file = report_file
        self.mode: Mode = GENERATE_MODE
        self._tools: Dict[str, _ToolEntry] = {}
        self._register_tools()

    def _register_tools(self):
        """Register all tools; single source of truth for shape and handler."""
        f = self.file_ops
        T = _ToolEntry

        # ── Read tools ──
        self._tools["read_file"] = T(
            "read_file", lambda **a: f.read_file(a["path"]), "{path}",
            "Read one file")
        self._tools["list_files"] = T(
            "list_files", lambda **a: f.list_files(a["path"]), "{path}",
            "List files under a directory")
        self._tools["bulk_read"] = T(
            "bulk_read", lambda **a: f.bulk_read(a["paths"]), "{paths:[]}",
            "Read up to 20 files at once")

        # ── Write tools ──
        self._tools["write_file"] = T(
            "write_file", lambda **a: f.write_file(a["path"], a["content"]), "{path, content}",
            "Create or overwrite a file with its full content", writes=True)
        self._tools["replace_in_file"] = T(
            "replace_in_file", lambda **a: f.replace_in_file(a["path"], a["search"], a["replace"]),
            "{path, search, replace}", "Replace one unique block of text", writes=True)
        self._tools["bulk_write"] = T(
            "bulk_write", lambda **a: f.bulk_write(a["files"]), "{files:[{path,content}]}",
            "Write several files", writes=True)
        self._tools["apply_blueprint"] = T(
            "apply_blueprint", lambda **a: f.apply_blueprint(a["content"]), "{content}",
            "Write every file described in a markdown blueprint", writes=True)
        self._tools["scaffold_project"] = T(
            "scaffold_project", lambda **a: self.scaffolder.scaffold(a["kind"], a["name"]),
            "{type, name}", "Create a starter project", writes=True)

        # ── Hand-off log ──
        self._tools["log_handoff"] = T(
            "log_handoff", lambda **a: self.handoff.log_instructions(a["instructions"]),
            "{instructions}", "Leave notes for the next run")
        self._tools["request_review"] = T(
            "request_review", lambda **a: self.handoff.request_review(a["summary"]),
            "{summary}", "Mark the work as ready for review")

    # ── Public API ──

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    @property
    def descriptors(self) -> List[_ToolEntry]:
        """Tools visible in the current mode."""
        return [entry for name, entry in self._tools.items() if self.mode.allows(name)]

    def is_mutating(self, tool_name: str) -> bool:
        entry = self._tools.get(tool_name)
        return bool(entry and entry.writes)

    def write_targets(self, tool_name: str, arguments: Dict[str, Any]) -> List[str]:
        """Paths a mutating call would touch ("" when it cannot be told)."""
        if not self.is_mutating(tool_name):
            return []
        try:
            args = normalize_params(tool_name, arguments)
        except ParameterError:
            return [""]
        if tool_name in ("write_file", "replace_in_file"):
            return [args["path"]]
        if tool_name == "bulk_write":
            return [entry.get("path") or "" for entry in args["files"]]
        if tool_name == "apply_blueprint":
            return [entry["path"] for entry in parse_blueprint(args["content"])] or [""]
        if tool_name == "scaffold_project":
            return [args["name"]]
        return [""]

    def is_report_write(self, tool_name: str, arguments: Dict[str, Any]) -> bool:
        """True when a mutating call only touches the review report."""
        if tool_name not in ("write_file", "replace_in_file"):
            return False
        targets = self.write_targets(tool_name, arguments)
        return bool(targets) and all(matches_file(t, self.report_file) for t in targets)

    def execute(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch a tool call by name.

        Expected failures come back as ``{"error": ...}``; anything
        unexpected raised by a handler is re-raised as ToolError.
        """
        entry = self._tools.get(tool_name)
        if not entry:
            return {"error": f"Unknown tool: {tool_name}"}

        if not self.mode.allows(tool_name):
            return {"error": f"Tool '{tool_name}' is disabled in {self.mode.name} mode."}
        if self.mode.review and entry.writes and not self.is_report_write(tool_name, arguments):
            return {"error": f"Review mode is read-only. Only {self.report_file} may be written."}

        try:
            return entry.handler(**normalize_params(tool_name, arguments))
        except (FileOperationError, ParameterError) as e:
            return {"error": str(e)}
        except Exception as e:
            raise ToolError(tool_name, f"{type(e).__name__}: {e}") from e

    @classmethod
    def is_read_only(cls, tool_name: str) -> bool:
        return tool_name in cls.READ_TOOLS
