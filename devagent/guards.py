"""Guard bank: loop detection, mode restrictions and finish gating.

Each guard owns one counter and one ceiling. Below the ceiling a trigger
produces a nudge (the step restarts without running a tool); at the
ceiling it ends the run with a failure explaining what went wrong.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import GuardLimits
from .logger import get_logger
from .modes import Mode
from .parsing import ParsedReply
from .state import AgentState

_log = get_logger(__name__)

NUDGE = "nudge"
RECOVER = "recover"
FAIL = "fail"

TEXT_FIELDS = ("content", "replace", "search", "text", "blueprint")
SIGNATURE_TEXT_LIMIT = 5000

UPDATE_KEYWORDS_RE = re.compile(
    r"\b(?:generate|update|modify|fix|add|create|implement|build|write|refactor|change|edit)\b",
    re.IGNORECASE,
)
VERDICT_RE = re.compile(r"\[?\s*VERDICT\s*:\s*(PASS|FAIL)\s*\]?", re.IGNORECASE)
REJECTION_RE = re.compile(
    r"\[\s*VERDICT\s*:\s*FAIL\s*\]|REVIEW\s+(?:REJECTED|FAILED)|CHANGES\s+REQUESTED",
    re.IGNORECASE,
)


def normalize_for_signature(params: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for key, value in params.items():
        if key.startswith("_"):
            continue
        if key in TEXT_FIELDS and isinstance(value, str):
            value = re.sub(r"\s+", "", value)[:SIGNATURE_TEXT_LIMIT]
        out[key] = value
    return out


def action_signature(action: str, params: Dict[str, Any]) -> str:
    body = json.dumps(normalize_for_signature(params or {}), sort_keys=True, default=str)
    return f"{action}|{body}"


def verdict_of(text: str) -> Optional[str]:
    m = VERDICT_RE.search(text or "")
    return m.group(1).upper() if m else None


@dataclass
class GuardOutcome:
    kind: str
    guard: str
    message: str
    garbled: bool = False

    @property
    def terminal(self) -> bool:
        return self.kind == FAIL


@dataclass
class GuardContext:
    """What a guard may look at for one step."""
    reply: ParsedReply
    step: int
    mode: Mode
    state: AgentState
    task_text: str = ""
    is_mutating: bool = False
    is_read_only: bool = False
    report_write: bool = False
    write_targets: List[str] = field(default_factory=list)
    report_file: str = "REVIEW_REPORT.md"


class Guard:
    name = ""

    def __init__(self, ceiling: int):
        self.ceiling = ceiling
        self.count = 0

    def check(self, ctx: GuardContext) -> Optional[GuardOutcome]:
        raise NotImplementedError

    def _escalate(self, nudge: str, failure: str) -> GuardOutcome:
        if self.count >= self.ceiling:
            return GuardOutcome(FAIL, self.name, failure)
        self.count += 1
        return GuardOutcome(NUDGE, self.name, nudge)


class DuplicateActionGuard(Guard):
    name = "duplicate"

    def __init__(self, ceiling: int, threshold: int = 3):
        super().__init__(ceiling)
        self.threshold = threshold
        self.last_signature: Optional[str] = None
        self.repeats = 0

    def check(self, ctx):
        reply = ctx.reply
        signature = action_signature(reply.action or "", reply.parameters)
        if signature != self.last_signature:
            self.last_signature = signature
            self.repeats = 1
            self.count = 0
            return None
        self.repeats += 1
        if not reply.is_tool or self.repeats < self.threshold:
            return None
        # Nudge from the threshold up to the ceiling, fail beyond it.
        if self.repeats > self.ceiling:
            return GuardOutcome(
                FAIL, self.name,
                f"Agent stuck in a loop: `{reply.action}` repeated {self.repeats} times with "
                "identical parameters. Stopping.",
            )
        self.count += 1
        return GuardOutcome(
            NUDGE, self.name,
            f"You have called `{reply.action}` with identical parameters {self.repeats} times in a "
            "row. The result will not change. Use what you already learned and take a DIFFERENT "
            "next step.",
        )


class NoProgressGuard(Guard):
    """Soft guard: never fails, only pushes reading towards writing."""
    name = "no_progress"

    def __init__(self, threshold: int = 3, after_step: int = 5):
        super().__init__(ceiling=0)
        self.threshold = threshold
        self.after_step = after_step

    def check(self, ctx):
        if ctx.is_mutating:
            self.count = 0
            return None
        if not ctx.is_read_only:
            return None
        self.count += 1
        if ctx.step <= self.after_step or self.count < self.threshold:
            return None
        self.count = 0
        return GuardOutcome(
            NUDGE, self.name,
            "You have spent several steps only reading and listing files. You have enough "
            "context now: write the plan or make the first change.",
        )


class ChainErrorGuard(Guard):
    name = "chain_error"

    def check(self, ctx):
        reply = ctx.reply
        if not reply.is_chain_error:
            self.count = 0
            return None
        outcome = self._escalate(
            f"{reply.error} Reply again with THOUGHT, ACTION and PARAMETERS on separate lines.",
            f"The model kept producing unparseable replies ({reply.error}). Stopping.",
        )
        if outcome.kind == NUDGE and reply.is_garbled:
            outcome.kind = RECOVER
            outcome.garbled = True
        return outcome


class PrematureFinishGuard(Guard):
    name = "premature_finish"

    def __init__(self, ceiling: int, window: int = 10):
        super().__init__(ceiling)
        self.window = window

    def check(self, ctx):
        if not ctx.reply.is_finish or ctx.state.code_modified:
            return None
        if ctx.step >= self.window or not UPDATE_KEYWORDS_RE.search(ctx.task_text):
            return None
        return self._escalate(
            "You called finish but nothing has been written yet. The task asks for changes: "
            "implement them with write_file, replace_in_file or bulk_write before finishing.",
            "The agent tried to finish repeatedly without making the requested changes.",
        )


class ReviewWriteGuard(Guard):
    """Second violation ends the run instead of nudging again."""
    name = "review_write"

    def check(self, ctx):
        if not ctx.is_mutating or ctx.report_write:
            return None
        self.count += 1
        targets = ", ".join(t for t in ctx.write_targets if t) or "project files"
        if self.count >= self.ceiling:
            return GuardOutcome(
                FAIL, self.name,
                f"Review aborted: the reviewer tried to modify {targets} again. "
                "Review mode is read-only.",
            )
        return GuardOutcome(
            NUDGE, self.name,
            f"Review mode is READ-ONLY. You tried to modify {targets}. Do not change project files; "
            f"write your findings to {ctx.report_file} and then call finish.",
        )


class ReportMissingGuard(Guard):
    name = "report_missing"

    def check(self, ctx):
        if not ctx.reply.is_finish or ctx.state.report_saved:
            return None
        return self._escalate(
            f"Save your complete review to {ctx.report_file} with write_file before calling finish.",
            f"Review finished without saving {ctx.report_file}.",
        )


class VerdictMissingGuard(Guard):
    name = "verdict_missing"

    def check(self, ctx):
        if not ctx.reply.is_finish or verdict_of(ctx.reply.response):
            return None
        return self._escalate(
            "Your finish response must end with exactly one verdict tag: "
            "[VERDICT: PASS] or [VERDICT: FAIL].",
            "Review finished without a verdict.",
        )


class ReviewRequestGuard(Guard):
    name = "review_request"

    def check(self, ctx):
        reply, state = ctx.reply, ctx.state
        if not reply.is_finish or not state.code_modified or state.review_requested:
            return None
        return self._escalate(
            "You changed code. Call request_review with a short summary of the changes "
            "before calling finish.",
            "The agent finished without requesting a review of its changes.",
        )


class FollowUpGuard(Guard):
    name = "follow_up"

    def check(self, ctx):
        state = ctx.state
        if not ctx.reply.is_finish or not state.rejection_seen:
            return None
        if state.report_read and state.code_modified:
            return None
        return self._escalate(
            f"The last review REJECTED the work. Read {ctx.report_file}, fix every issue it "
            "lists, then finish.",
            "The agent ignored a rejected review and tried to finish without addressing it.",
        )


def _builders(limits: GuardLimits, require_review_request: bool) -> Dict[str, Callable[[], Optional[Guard]]]:
    return {
        "duplicate": lambda: DuplicateActionGuard(limits.duplicate, limits.duplicate_threshold),
        "no_progress": lambda: NoProgressGuard(limits.scan_threshold, limits.scan_after_step),
        "chain_error": lambda: ChainErrorGuard(limits.chain_error),
        "premature_finish": lambda: PrematureFinishGuard(limits.premature_finish,
                                                         limits.premature_window),
        "review_write": lambda: ReviewWriteGuard(limits.review_write),
        "report_missing": lambda: ReportMissingGuard(limits.report_missing),
        "verdict_missing": lambda: VerdictMissingGuard(limits.verdict_missing),
        "review_request": lambda: (ReviewRequestGuard(limits.review_request)
                                   if require_review_request else None),
        "follow_up": lambda: FollowUpGuard(limits.follow_up),
    }


# Evaluation order.
ORDER: Tuple[str, ...] = (
    "duplicate", "no_progress", "chain_error", "premature_finish", "review_write",
    "report_missing", "verdict_missing", "review_request", "follow_up",
)


class GuardBank:
    """The guards active for one run, evaluated in a fixed order."""

    def __init__(self, mode: Mode, limits: Optional[GuardLimits] = None,
                 require_review_request: bool = False):
        limits = limits or GuardLimits()
        builders = _builders(limits, require_review_request)
        self.guards: List[Guard] = []
        for name in ORDER:
            if name not in mode.guards:
                continue
            guard = builders[name]()
            if guard is not None:
                self.guards.append(guard)

    def get(self, name: str) -> Optional[Guard]:
        for guard in self.guards:
            if guard.name == name:
                return guard
        return None

    def evaluate(self, ctx: GuardContext) -> Optional[GuardOutcome]:
        """First triggered guard wins; None lets the step proceed."""
        for guard in self.guards:
            outcome = guard.check(ctx)
            if outcome is not None:
                _log.info("Guard %s → %s at step %d", guard.name, outcome.kind, ctx.step)
                return outcome
        return None
