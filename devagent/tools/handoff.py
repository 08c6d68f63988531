"""Append-only hand-off log shared by generate and review runs."""

import time

from .file_ops import FileOps

READY_MARKER = "READY FOR REVIEW"


class HandoffLog:
    """Plain-text log inside the workspace.

    Generate runs leave instructions for the reviewer here and mark the
    work as ready for review; review runs can read it with read_file.
    """

    def __init__(self, file_ops: FileOps, log_path: str = ".devagent/handoff.log"):
        self.file_ops = file_ops
        self.log_path = log_path

    def _append(self, entry: str) -> int:
        fp = self.file_ops._resolve(self.log_path)
        fp.parent.mkdir(parents=True, exist_ok=True)
        stamp = time.strftime("%Y-%m-%d %H:%M:%S")
        with open(fp, "a", encoding="utf-8") as f:
            f.write(f"[{stamp}] {entry.rstrip()}\n")
        return fp.stat().st_size

    def log_instructions(self, instructions: str) -> dict:
        size = self._append(f"INSTRUCTIONS\n{instructions}")
        return {"success": True, "path": self.log_path, "bytes": size}

    def request_review(self, summary: str = "") -> dict:
        entry = READY_MARKER + (f": {summary}" if summary else "")
        size = self._append(entry)
        return {"success": True, "path": self.log_path, "bytes": size, "ready_for_review": True}

    def read(self) -> str:
        fp = self.file_ops._resolve(self.log_path)
        if not fp.exists():
            return ""
        return fp.read_text(encoding="utf-8")
