"""Turn tool results into user-facing summaries and model feedback."""

import json
from typing import Any, Dict, Optional

from .tools.file_ops import FileOps, FileOperationError
from .tools.params import param_path

TRUNCATION_NOTE = "\n\n... [TRUNCATED - output too large] ..."
FILE_TRUNCATION_NOTE = "\n... [TRUNCATED]"

# Actions whose full payload the model needs to see.
PAYLOAD_ACTIONS = {"read_file", "bulk_read", "list_files"}


def _error_advice(error: str) -> str:
    lowered = error.lower()
    if "is a directory" in lowered:
        return ("The path you provided is a DIRECTORY. Provide a specific FILENAME "
                "(e.g. index.js) inside that directory.")
    if "not found" in lowered:
        return "Check the path carefully. Use list_files to verify the directory structure."
    return "Check your parameters and try a different approach."


def _success_count(result: Dict[str, Any]) -> int:
    return sum(1 for r in result.get("results") or [] if r.get("success"))


def summarize_result(action: str, params: Dict[str, Any], result: Optional[Dict[str, Any]],
                     review: bool = False) -> str:
    """Markdown summary of one tool call, shown to the user and the model."""
    result = result or {}
    params = params or {}
    if result.get("error"):
        return f"**Error**: {result['error']}\n\n**ADVICE**: {_error_advice(str(result['error']))}"

    if action == "scaffold_project":
        rows = "\n".join(f"| {path} | Created |" for path in result.get("files_created") or [])
        text = (f"### Project Scaffolding Complete\n\nProject **{result.get('name', '')}** "
                f"created successfully.\n\n| File | Status |\n| :--- | :--- |\n{rows}")
        steps = result.get("next_steps") or []
        if steps:
            text += "\n\n**Next Steps:**\n" + "\n".join(f"- `{s}`" for s in steps)
        return text

    if action in ("bulk_write", "apply_blueprint"):
        results = result.get("results") or []
        rows = "\n".join(
            f"| {r.get('path')} | {'Success' if r.get('success') else 'Failed: ' + str(r.get('error'))} |"
            for r in results
        )
        return (f"### Bulk Updates Complete\n\nSuccessfully processed **{_success_count(result)}** "
                f"files.\n\n| File | Result |\n| :--- | :--- |\n{rows}")

    if action == "write_file":
        path = result.get("path") or param_path(params)
        if review:
            hint = "Analyze the changes and continue your review."
        elif path.endswith("implementation.md"):
            hint = "PLAN UPDATED. Proceed to implementation now with surgical edits. Do not stop."
        else:
            hint = "CONTINUE to the next file or FINISH if the task is complete."
        return f"### File Updated\nFile **{path}** written successfully.\n\n{hint}"

    if action == "replace_in_file":
        hint = ("Analyze the modification and continue your review." if review
                else "CONTINUE to the next modification or FINISH if the task is complete.")
        return f"### Surgical Edit Complete\nFile **{result.get('path') or param_path(params)}** modified successfully.\n\n{hint}"

    if action == "read_file":
        hint = ("ANALYZE and provide feedback." if review
                else "ANALYZE and proceed to PLAN or IMPLEMENT.")
        return f"### File Read\nContent retrieved. {hint}"

    if action == "bulk_read":
        count = _success_count(result)
        hint = ("ANALYZE the context and write your findings now." if review
                else "ANALYZE the context and update implementation.md now.")
        return f"### Bulk Read Complete\nRetrieved **{count}** files. {hint}"

    if action == "list_files":
        count = len(result.get("files_list") or [])
        hint = ("READ relevant files now to begin your audit." if review
                else "READ relevant files now to build context.")
        return f"### Folders Scanned\nFound **{count}** files. {hint}"

    if action in ("log_handoff", "request_review"):
        if result.get("ready_for_review"):
            return "### Review Requested\nThe work is marked READY FOR REVIEW. FINISH when done."
        return "### Hand-off Logged\nNotes saved for the next run."

    return ("### Task Complete\nAll requested operations finished successfully.\n\n"
            "FINISH if everything is done.")


def truncate(text: str, limit: int, note: str = TRUNCATION_NOTE) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + note


def current_file_feedback(file_ops: FileOps, path: str, limit: int = 6000) -> Optional[str]:
    """Actual file content after a failed replace, so the model stops guessing."""
    try:
        content = file_ops.read_text(path)
    except FileOperationError:
        return None
    return (
        f'CURRENT FILE CONTENT OF "{path}":\n```\n{truncate(content, limit, FILE_TRUNCATION_NOTE)}\n```'
        "\n\nINSTRUCTION: Your search block was NOT found. Use the current file content above "
        "and either:\n  1. Fix your search block to match exactly, OR\n"
        "  2. Use write_file with the COMPLETE corrected file content instead."
    )


def build_feedback(action: str, params: Dict[str, Any], result: Dict[str, Any], *,
                   review: bool = False, max_result_chars: int = 10000,
                   file_ops: Optional[FileOps] = None,
                   max_file_chars: int = 6000) -> str:
    """The user turn appended to history after a tool call."""
    parts = [f"Tool result ({action}):", summarize_result(action, params, result, review)]
    if action in PAYLOAD_ACTIONS and not result.get("error"):
        payload = json.dumps(result, indent=2, ensure_ascii=False, default=str)
        parts.append(truncate(payload, max_result_chars))
    if action == "replace_in_file" and result.get("error") and file_ops is not None:
        path = param_path(params)
        if path:
            current = current_file_feedback(file_ops, path, max_file_chars)
            if current:
                parts.append(current)
    return "\n".join(parts[:2]) + "".join("\n\n" + p for p in parts[2:])
