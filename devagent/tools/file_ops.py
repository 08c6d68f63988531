"""File operations: read, write, list, bulk read/write, search-replace, blueprints."""

import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..logger import get_logger

_log = get_logger(__name__)

MAX_BULK_READ = 20
MAX_LIST_DEPTH = 5
NOT_FOUND_SNIPPET = 500

# A "file path": dir/dir/name.ext or name.ext followed by whitespace/markdown.
_BLUEPRINT_PATH_RE = re.compile(
    r"([a-zA-Z0-9_\-][a-zA-Z0-9._\-/]*/[a-zA-Z0-9._\-]+\.[a-zA-Z0-9]{1,8}"
    r"|[a-zA-Z0-9._\-]+\.[a-zA-Z]{2,8}(?=\s*[`*\s]|$))"
)
_BLUEPRINT_COMMENT_PATH_RE = re.compile(
    r"(?://|#|/\*|<!--)\s*([a-zA-Z0-9_\-./]+\.[a-z]{1,8})", re.IGNORECASE
)
_BLUEPRINT_IGNORE = {"e.g", "i.e", "etc", "vs", "ie", "eg"}


class FileOperationError(Exception):
    pass


def _normalize_for_match(text: str) -> str:
    return "\n".join(line.rstrip() for line in text.replace("\r", "").split("\n"))


def looks_like_placeholder(content: str) -> bool:
    """Near-empty content, or a stub such as ``...`` / ``/* */``."""
    return len(content) < 10 and ("..." in content or "/*" in content or not content.strip())


def _scan_for_path(line: str) -> Optional[str]:
    stripped = re.sub(r"^[#*_`\s>|]+", "", line).strip()
    m = _BLUEPRINT_PATH_RE.search(stripped)
    if not m:
        return None
    candidate = m.group(1)
    if candidate.lower() in _BLUEPRINT_IGNORE:
        return None
    ext = candidate.rsplit(".", 1)[-1].lower()
    if not re.fullmatch(r"[a-z]{1,8}", ext):
        return None
    return candidate


def parse_blueprint(content: str) -> List[Dict[str, str]]:
    """Extract ``{path, content}`` pairs from a markdown blueprint.

    A file is a fenced block; its path comes from the nearest preceding
    line that looks like a path (usually a ``## path`` heading), from a
    path comment in the block's first lines, or from a short back-scan.
    """
    files: List[Dict[str, str]] = []
    lines = content.split("\n")
    current: Optional[str] = None
    in_block = False
    block_start = 0
    block: List[str] = []

    for i, raw in enumerate(lines):
        if raw.strip().startswith("```"):
            if not in_block:
                in_block = True
                block = []
                block_start = i
                continue
            in_block = False
            body = "\n".join(block)
            if not body.strip():
                continue
            if not current:
                for first in block[:3]:
                    m = _BLUEPRINT_COMMENT_PATH_RE.search(first)
                    if m:
                        current = m.group(1)
                        break
            if not current:
                for back in range(block_start - 1, max(0, block_start - 5) - 1, -1):
                    current = _scan_for_path(lines[back])
                    if current:
                        break
            if current:
                files.append({"path": current, "content": body})
                current = None
            continue
        if in_block:
            block.append(raw)
        else:
            found = _scan_for_path(raw.strip())
            if found:
                current = found
    return files


class FileOps:
    SKIP_DIRS = {
        ".git", ".svn", ".hg", ".venv", "venv",
        "node_modules", "__pycache__", ".mypy_cache", ".pytest_cache",
        "dist", "build", "coverage", "bower_components",
        ".nuxt", ".next", ".output", ".vite", ".cache", ".devagent",
    }

    def __init__(self, project_root: str):
        self.project_root = Path(project_root).resolve()

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        if not p.is_absolute():
            p = self.project_root / p
        p = p.resolve()
        try:
            p.relative_to(self.project_root)
        except ValueError:
            raise FileOperationError(
                f"Access denied: '{path}' is outside workspace ({self.project_root})"
            )
        return p

    def _rel(self, fp: Path) -> str:
        rel = fp.relative_to(self.project_root).as_posix()
        return rel or "."

    def read_text(self, path: str) -> str:
        """Raw file content; raises FileOperationError."""
        fp = self._resolve(path)
        if not fp.exists():
            raise FileOperationError(f"File not found: {path}")
        if fp.is_dir():
            raise FileOperationError(f"'{path}' is a directory. Use list_files.")
        try:
            return fp.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise FileOperationError(f"Cannot read binary file: {path}")

    def read_file(self, path: str) -> Dict[str, Any]:
        content = self.read_text(path)
        fp = self._resolve(path)
        return {"path": path, "content": content, "bytes": fp.stat().st_size}

    def write_file(self, path: str, content: str) -> Dict[str, Any]:
        if looks_like_placeholder(content):
            raise FileOperationError(
                f"Rejecting write to '{path}': content is suspiciously empty or contains "
                "placeholders. Provide the FULL file content."
            )
        fp = self._resolve(path)
        if fp.is_dir():
            raise FileOperationError(f"'{path}' is a directory. Provide a file name inside it.")
        fp.parent.mkdir(parents=True, exist_ok=True)
        fp.write_text(content, encoding="utf-8")
        _log.info("Wrote %s (%d chars)", self._rel(fp), len(content))
        return {"success": True, "path": path, "bytes": len(content.encode("utf-8"))}

    def list_files(self, path: str = ".") -> Dict[str, Any]:
        root = self._resolve(path)
        if not root.exists():
            raise FileOperationError(f"Directory not found: {path}")
        if not root.is_dir():
            raise FileOperationError(f"Not a directory: {path}. Use read_file.")

        flat: List[str] = []

        def walk(directory: Path, depth: int) -> List[Dict[str, Any]]:
            if depth > MAX_LIST_DEPTH:
                return []
            items = []
            try:
                entries = sorted(directory.iterdir(), key=lambda e: (not e.is_dir(), e.name.lower()))
            except PermissionError:
                return []
            for entry in entries:
                if entry.name in self.SKIP_DIRS or entry.name.endswith(".egg-info"):
                    continue
                rel = self._rel(entry)
                if entry.is_dir():
                    items.append({"type": "directory", "name": entry.name, "path": rel,
                                  "children": walk(entry, depth + 1)})
                else:
                    items.append({"type": "file", "name": entry.name, "path": rel,
                                  "size": entry.stat().st_size})
                    flat.append(rel)
            return items

        items = walk(root, 0)
        _log.info("list_files: %d files in %s", len(flat), path)
        return {"path": path, "items": items, "files_list": flat}

    def bulk_write(self, files: List[Dict[str, Any]]) -> Dict[str, Any]:
        results = []
        for entry in files:
            path, content = entry.get("path"), entry.get("content")
            if not path or content is None:
                results.append({"path": path or "unknown", "error": "Path and content are required."})
                continue
            try:
                written = self.write_file(path, content)
                results.append({"path": path, "success": True, "bytes": written["bytes"]})
            except FileOperationError as e:
                results.append({"path": path, "error": str(e)})
        return {"success": any(r.get("success") for r in results), "results": results}

    def bulk_read(self, paths: List[str]) -> Dict[str, Any]:
        if len(paths) > MAX_BULK_READ:
            _log.warning("bulk_read: capping %d paths to %d", len(paths), MAX_BULK_READ)
            paths = paths[:MAX_BULK_READ]
        results = []
        for path in paths:
            try:
                results.append({"path": path, "content": self.read_text(path), "success": True})
            except FileOperationError as e:
                results.append({"path": path, "error": str(e)})
        return {"success": True, "results": results}

    def replace_in_file(self, path: str, search: str, replace: str) -> Dict[str, Any]:
        content = self.read_text(path)
        norm_content = _normalize_for_match(content)
        norm_search = _normalize_for_match(search)

        if not norm_search.strip():
            raise FileOperationError(
                "The search block is empty. Provide a substantive portion of the code to replace."
            )
        first = norm_content.find(norm_search)
        if first == -1:
            snippet = content[:NOT_FOUND_SNIPPET] + ("..." if len(content) > NOT_FOUND_SNIPPET else "")
            raise FileOperationError(
                f"The search block was not found in '{path}'. Ensure exact matching. "
                f"File starts with:\n{snippet}"
            )
        if norm_content.rfind(norm_search) != first:
            raise FileOperationError(
                f"The search block matches multiple locations in '{path}'. "
                "Provide a more unique search block."
            )

        idx = content.find(search)
        if idx != -1:
            updated = content[:idx] + replace + content[idx + len(search):]
        else:
            updated = self._replace_lines(content, search, replace)

        if not updated.strip() and content.strip():
            raise FileOperationError("Update rejected: result would be an empty file.")

        fp = self._resolve(path)
        fp.write_text(updated, encoding="utf-8")
        _log.info("Edited %s", self._rel(fp))
        return {"success": True, "path": path, "bytes": len(updated.encode("utf-8"))}

    @staticmethod
    def _replace_lines(content: str, search: str, replace: str) -> str:
        """Line-wise replacement when only trailing whitespace differs."""
        lines = content.replace("\r", "").split("\n")
        search_lines = search.replace("\r", "").split("\n")
        replace_lines = replace.replace("\r", "").split("\n")
        span = len(search_lines)
        for i in range(len(lines) - span + 1):
            if all(lines[i + j].rstrip() == search_lines[j].rstrip() for j in range(span)):
                return "\n".join(lines[:i] + replace_lines + lines[i + span:])
        raise FileOperationError(
            "Edit failed: the search block only matched after normalization. Check indentation."
        )

    def apply_blueprint(self, content: str) -> Dict[str, Any]:
        files = parse_blueprint(content)
        if not files:
            raise FileOperationError(
                "No files found in content. Format each file as:\n"
                "## project/src/file.js\n```js\n// code\n```"
            )
        return self.bulk_write(files)
