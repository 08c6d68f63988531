"""Prompt text: system prompts, the format example and nudge wording."""

from typing import Iterable, Optional

from .modes import Mode

BASE_SYSTEM_PROMPT = """\
You are devagent, an autonomous coding agent working inside a project workspace.
{goal}
{workspace}
TOOLS:
{tools}
  finish           {{response}}

TOOL CALL FORMAT (mandatory, one tool call per reply):
{format}

Put every marker on its own line and leave a blank line between markers.
Never merge markers (ACTIONPARAMETERS, ACTIONETERS ...).

FINISH FORMAT:
{finish}
RULES:
{rules}"""

GENERATE_GOAL = (
    "Your goal is to MODIFY THE FILESYSTEM using tools. Never just describe code."
)
REVIEW_GOAL = (
    "You are in REVIEW MODE. Audit the workspace and give expert advice. "
    "Do NOT modify project files."
)

GENERATE_RULES = """\
1. Work in order: scan, read, plan, implement. Never stop after list_files or read_file.
2. Write or update {plan_file} before implementing larger changes.
3. Code reaches the workspace only through tool calls. Never paste code blocks as text.
4. Write complete files. No placeholders such as "implementation goes here".
5. If a tool returns an error, change your parameters or your approach. Never repeat a failed call.
6. Do not call finish until the requested change is implemented.
7. Use log_handoff to leave notes for a reviewer and request_review once the work is ready.
"""

REVIEW_RULES = """\
1. Read the files that matter and analyse them one by one: purpose, logic, problems.
2. Give concrete advice with short code examples.
3. The only file you may write is {report_file}. Save your full review there before finishing.
4. End the finish response with exactly one verdict tag: [VERDICT: PASS] or [VERDICT: FAIL].
5. If a tool returns an error, change your parameters. Never repeat a failed call.
"""

_FORMAT_FULL = """\
THOUGHT: (your reasoning)

ACTION: (one tool name)

PARAMETERS: (one JSON object for that tool)"""

_FORMAT_FAST = """\
ACTION: (one tool name)

PARAMETERS: (one JSON object for that tool)"""

_FINISH_FULL = """\
THOUGHT: (reasoning)

ACTION: finish

PARAMETERS: {{"response": "A short markdown summary of what was done."}}
"""

_FINISH_FAST = """\
ACTION: finish

PARAMETERS: {{"response": "A short markdown summary of what was done."}}
"""


def tool_lines(descriptors: Iterable) -> str:
    return "\n".join(f"  {d.name:<16} {d.params}" for d in descriptors)


def build_system_prompt(mode: Mode, descriptors: Iterable,
                        target_folder: Optional[str] = None,
                        report_file: str = "REVIEW_REPORT.md",
                        plan_file: str = "implementation.md") -> str:
    """Compose the system prompt for ``mode`` and the tools it can see."""
    workspace = ""
    if target_folder:
        workspace = (f'\nCURRENT WORKSPACE ROOT: "{target_folder}". '
                     "Tool paths are relative to this folder; do not prefix them with it.\n")
    rules = REVIEW_RULES if mode.review else GENERATE_RULES
    return BASE_SYSTEM_PROMPT.format(
        goal=REVIEW_GOAL if mode.review else GENERATE_GOAL,
        workspace=workspace,
        tools=tool_lines(descriptors),
        format=_FORMAT_FAST if mode.fast else _FORMAT_FULL,
        finish=(_FINISH_FAST if mode.fast else _FINISH_FULL).format(),
        rules=rules.format(plan_file=plan_file, report_file=report_file),
    )


# ── Recovery text ──

REJECTED_OUTPUT = "[REJECTED OUTPUT: garbled markers removed]"

_EXAMPLE_THOUGHT = "THOUGHT: I need to see which files exist before changing anything.\n\n"
_EXAMPLE_BODY = 'ACTION: list_files\n\nPARAMETERS: {"path": "."}'


def format_example(mode: Mode) -> str:
    """A fully worked reply in the required format."""
    example = _EXAMPLE_BODY if mode.fast else _EXAMPLE_THOUGHT + _EXAMPLE_BODY
    return (
        "Your previous reply was unreadable: the markers were fused together, so it was removed.\n"
        "Reply again using EXACTLY this layout, each marker on its own line, "
        "separated by blank lines:\n\n"
        f"{example}\n\n"
        "Now continue the task with your next tool call."
    )


NUDGE_ACK = "Understood. I will correct my approach."
