"""Parameter normalization: one function per tool.

Models name the same argument many ways (``path``, ``file``, ``filepath``
...). Each normalizer accepts the aliases its tool has been seen with and
returns exactly the keyword arguments the handler expects.
"""

from typing import Any, Callable, Dict, List, Optional

PATH_ALIASES = ("path", "file", "filepath", "filename", "file_path")
CONTENT_ALIASES = ("content", "text", "data", "code")
SEARCH_ALIASES = ("search", "find", "old", "old_str", "old_string")
REPLACE_ALIASES = ("replace", "new", "new_str", "new_string", "replacement")
BLUEPRINT_ALIASES = ("content", "text", "blueprint", "markdown")


class ParameterError(ValueError):
    """Raised when required parameters are missing or malformed."""
    pass


def _first(params: Dict[str, Any], names, default=None):
    for name in names:
        value = params.get(name)
        if value is not None:
            return value
    return default


def param_path(params: Optional[Dict[str, Any]]) -> str:
    """Target path under any accepted alias, or an empty string."""
    path = _first(params or {}, PATH_ALIASES)
    return path.strip() if isinstance(path, str) else ""


def _require_path(params: Dict[str, Any]) -> str:
    path = _first(params, PATH_ALIASES)
    if not isinstance(path, str) or not path.strip():
        raise ParameterError('"path" parameter is required.')
    return path.strip()


def normalize_rel_path(path: str) -> str:
    """Canonical relative form used for comparisons."""
    text = str(path or "").strip().replace("\\", "/")
    while text.startswith("./"):
        text = text[2:]
    return text.lstrip("/")


def matches_file(path: str, filename: str) -> bool:
    """True when ``path`` names ``filename`` (optionally inside a folder)."""
    norm = normalize_rel_path(path)
    target = normalize_rel_path(filename)
    return bool(norm) and (norm == target or norm.endswith("/" + target))


def read_file_params(params: Dict[str, Any]) -> Dict[str, Any]:
    return {"path": _require_path(params)}


def write_file_params(params: Dict[str, Any]) -> Dict[str, Any]:
    content = _first(params, CONTENT_ALIASES, default="")
    return {"path": _require_path(params), "content": str(content)}


def replace_in_file_params(params: Dict[str, Any]) -> Dict[str, Any]:
    search = _first(params, SEARCH_ALIASES)
    replace = _first(params, REPLACE_ALIASES)
    if search is None or replace is None:
        raise ParameterError('"path", "search", and "replace" parameters are required.')
    return {"path": _require_path(params), "search": str(search), "replace": str(replace)}


def list_files_params(params: Dict[str, Any]) -> Dict[str, Any]:
    path = _first(params, PATH_ALIASES + ("dir", "directory"), default=".")
    return {"path": str(path).strip() or "."}


def bulk_read_params(params: Dict[str, Any]) -> Dict[str, Any]:
    paths = _first(params, ("paths", "files"), default=[])
    if isinstance(paths, str):
        paths = [p.strip() for p in paths.split(",") if p.strip()]
    if not isinstance(paths, list) or not paths:
        raise ParameterError('"paths" array is required.')
    return {"paths": [p if isinstance(p, str) else _first(p, PATH_ALIASES, "")
                      for p in paths if p]}


def _file_entries(params: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    files = params.get("files")
    if isinstance(files, list):
        return files
    if _first(params, PATH_ALIASES) is not None and _first(params, CONTENT_ALIASES) is not None:
        return [params]
    # {"src/a.js": "...", "src/b.js": "..."}
    mapping = [(k, v) for k, v in params.items() if k != "files" and isinstance(v, str)]
    if mapping and all("." in k or "/" in k for k, _ in mapping):
        return [{"path": k, "content": v} for k, v in mapping]
    return None


def bulk_write_params(params: Dict[str, Any]) -> Dict[str, Any]:
    entries = _file_entries(params)
    if not entries:
        raise ParameterError('"files" parameter must be an array of {path, content} objects.')
    files = []
    for entry in entries:
        if not isinstance(entry, dict):
            files.append({"path": None, "content": None})
            continue
        content = _first(entry, CONTENT_ALIASES)
        files.append({"path": _first(entry, PATH_ALIASES),
                      "content": None if content is None else str(content)})
    return {"files": files}


def apply_blueprint_params(params: Dict[str, Any]) -> Dict[str, Any]:
    content = _first(params, BLUEPRINT_ALIASES, default="")
    if not isinstance(content, str) or not content.strip():
        for key, value in params.items():
            if isinstance(value, str) and "## " in value:
                content = value
                break
    if (not isinstance(content, str) or not content.strip()) and isinstance(params.get("files"), list):
        content = "\n\n".join(
            f"## {f.get('path', '')}\n```\n{_first(f, CONTENT_ALIASES, '')}\n```"
            for f in params["files"] if isinstance(f, dict)
        )
    if not isinstance(content, str) or not content.strip():
        raise ParameterError('"content" parameter is required and cannot be empty.')
    return {"content": content}


def scaffold_params(params: Dict[str, Any]) -> Dict[str, Any]:
    kind = _first(params, ("type", "template", "kind"))
    name = _first(params, ("name", "project", "project_name"))
    if not kind or not name:
        raise ParameterError('"type" and "name" parameters are required.')
    return {"kind": str(kind).strip(), "name": str(name).strip()}


def log_handoff_params(params: Dict[str, Any]) -> Dict[str, Any]:
    text = _first(params, ("instructions", "message", "text", "notes", "content"))
    if not isinstance(text, str) or not text.strip():
        raise ParameterError('"instructions" parameter is required.')
    return {"instructions": text.strip()}


def request_review_params(params: Dict[str, Any]) -> Dict[str, Any]:
    summary = _first(params, ("summary", "message", "notes", "text"), default="")
    return {"summary": str(summary).strip()}


NORMALIZERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "read_file": read_file_params,
    "write_file": write_file_params,
    "replace_in_file": replace_in_file_params,
    "list_files": list_files_params,
    "bulk_read": bulk_read_params,
    "bulk_write": bulk_write_params,
    "apply_blueprint": apply_blueprint_params,
    "scaffold_project": scaffold_params,
    "log_handoff": log_handoff_params,
    "request_review": request_review_params,
}


def normalize_params(tool_name: str, params: Dict[str, Any]) -> Dict[str, Any]:
    normalizer = NORMALIZERS.get(tool_name)
    if normalizer is None:
        return dict(params)
    return normalizer(params or {})


def strip_target_prefix(params: Dict[str, Any], target_folder: Optional[str]) -> Dict[str, Any]:
    """Drop a redundant ``target/`` prefix from path-like parameters.

    When a run is pinned to a sub-folder the tools are already rooted
    there, but models often repeat the folder name in every path.
    """
    if not target_folder:
        return params
    prefix = normalize_rel_path(target_folder).rstrip("/") + "/"

    def fix(value):
        if isinstance(value, str) and normalize_rel_path(value).startswith(prefix):
            return normalize_rel_path(value)[len(prefix):] or "."
        return value

    fixed = {}
    for key, value in params.items():
        if key in PATH_ALIASES:
            fixed[key] = fix(value)
        elif key in ("paths", "files") and isinstance(value, list):
            fixed[key] = [
                {**v, **{k: fix(v[k]) for k in PATH_ALIASES if k in v}} if isinstance(v, dict) else fix(v)
                for v in value
            ]
        else:
            fixed[key] = value
    return fixed
