"""Terminal rendering of agent events."""

from typing import Any, Dict, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from .events import CHUNK, AgentEvent

__all__ = ["ConsoleEventSink", "render_error", "render_tool_call"]

# ── Colors ──
ACCENT = "#7FA6D9"
TEXT = "#E6EDF3"
MUTED = "#8B949E"
DIM = "#6E7681"
SUCCESS = "#57DB9C"
WARN = "#E3B341"
ERROR_COLOR = "#F85149"

TOOL_ICONS = {
    "read_file": "▸", "bulk_read": "▸", "list_files": "≡",
    "write_file": "◆", "bulk_write": "◆", "apply_blueprint": "◆",
    "replace_in_file": "✎", "scaffold_project": "◆",
    "log_handoff": "·", "request_review": "✓",
}


def render_error(console: Console, message: str):
    panel = Panel(
        f"[{ERROR_COLOR}]{message}[/{ERROR_COLOR}]",
        title=f"[bold {ERROR_COLOR}]Error[/bold {ERROR_COLOR}]",
        title_align="left",
        border_style=ERROR_COLOR,
        padding=(0, 2),
    )
    console.print()
    console.print(panel)


def render_tool_call(console: Console, name: str, args: Dict[str, Any]):
    icon = TOOL_ICONS.get(name, "·")
    match name:
        case "write_file":
            n = str(args.get("content", "")).count("\n") + 1
            detail = f"{args.get('path', '')} ({n} lines)"
        case "bulk_write":
            detail = f"{len(args.get('files') or [])} files"
        case "bulk_read":
            detail = ", ".join(str(p) for p in (args.get("paths") or [])[:5])
        case "scaffold_project":
            detail = f"{args.get('type', args.get('kind', ''))} {args.get('name', '')}"
        case "list_files":
            detail = args.get("path", ".")
        case _:
            detail = args.get("path", "")
    console.print(f"  [{ACCENT}]{icon}[/{ACCENT}] [bold {TEXT}]{name}[/bold {TEXT}] "
                  f"[{MUTED}]{detail}[/{MUTED}]")


class ConsoleEventSink:
    """Prints agent events as they arrive.

    Streamed chunks are written raw; everything else gets one styled line.
    """

    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose
        self._streaming = False

    def __call__(self, event: AgentEvent):
        d = event.data
        if event.type == CHUNK:
            if self.verbose:
                self._streaming = True
                self.console.print(d.get("delta", ""), end="", markup=False, highlight=False)
            return
        self._end_stream()
        match event.type:
            case "status":
                if self.verbose or d.get("step") is None:
                    self.console.print(f"[{DIM}]{d.get('message', '')}[/{DIM}]")
            case "thought":
                self.console.print(Text(f"  💭 {d.get('thought', '')}", style=MUTED))
            case "tool_call":
                render_tool_call(self.console, d.get("tool", ""), d.get("params") or {})
            case "tool_result":
                first = str(d.get("summary", "")).strip().splitlines()[:1]
                line = first[0].lstrip("# ") if first else "done"
                self.console.print(f"     [{SUCCESS}]✓[/{SUCCESS}] [{MUTED}]{line}[/{MUTED}]")
            case "tool_error":
                self.console.print(f"     [{ERROR_COLOR}]✕ {d.get('error', '')}[/{ERROR_COLOR}]",
                                   highlight=False)
            case "nudge":
                self.console.print(f"  [{WARN}]⚠ {d.get('guard', '')}:[/{WARN}] "
                                   f"[{MUTED}]{d.get('message', '')}[/{MUTED}]")
            case "format_recovery":
                self.console.print(f"  [{WARN}]⚠ Garbled reply rejected; re-sent the format example[/{WARN}]")
            case "response":
                self.console.print()
                self.console.print(Panel(Markdown(d.get("response", "")), border_style=ACCENT,
                                         title=f"[bold {ACCENT}]devagent[/bold {ACCENT}]",
                                         title_align="left"))
            case "failure":
                self.console.print()
                self.console.print(f"[{WARN}]⚠ {d.get('response', '')}[/{WARN}]")
            case "error":
                render_error(self.console, d.get("error", ""))

    def _end_stream(self):
        if self._streaming:
            self.console.print()
            self._streaming = False
