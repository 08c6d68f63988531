"""Core agent loop: stream a reply, parse it, guard it, run the tool, repeat."""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .cancellation import CancellationToken
from .config import Config
from .errors import AgentStoppedError, InvalidTargetError, ToolError, TransportError
from .events import (
    CHUNK, ERROR, FAILURE, FORMAT_RECOVERY, NUDGE, RESPONSE, STATUS, THOUGHT,
    TOOL_CALL, TOOL_ERROR, TOOL_RESULT, EventSink, make_event, null_sink,
)
from .guards import FAIL, RECOVER, REJECTION_RE, GuardBank, GuardContext
from .history import prune_history
from .logger import (
    GUARD_FAILURE, LOOP_GUARD, PARSE_ERROR, TOOL_ERROR as TOOL_ERROR_KIND,
    TRANSPORT_ERROR, get_logger, log_agent_error,
)
from .modes import Mode, latest_user_text, mode_for, parse_request_tags, resolve_target
from .nudges import inject_format_recovery, inject_nudge
from .parsing import ParsedReply, ReplyParser
from .parsing.markers import strip_markers
from .parsing.sanitizer import sanitize
from .prompts import build_system_prompt, format_example
from .results import build_feedback, summarize_result
from .state import AgentState
from .tools import ToolRegistry
from .tools.params import matches_file, strip_target_prefix

_log = get_logger(__name__)

__all__ = ["Agent", "RunRequest", "RunResult"]

STEP_LIMIT = "step_limit"
STOPPED = "stopped"

READ_REPORT_TOOLS = ("read_file", "bulk_read")


@dataclass
class RunRequest:
    messages: List[Dict[str, str]]
    workspace_root: Optional[str] = None
    model: Optional[str] = None
    fast: bool = False
    cancel: Optional[CancellationToken] = None
    run_id: Optional[str] = None


@dataclass
class RunResult:
    success: bool
    response: str
    steps: int = 0
    reason: Optional[str] = None


class Agent:
    """Runs tasks against one chat transport with one configuration.

    The agent itself holds no per-run state; every call to :meth:`run`
    builds a fresh history, guard bank and tool registry.
    """

    def __init__(self, transport, config: Optional[Config] = None):
        self.transport = transport
        self.config = config or Config()

    def run(self, request: RunRequest, on_event: Optional[EventSink] = None) -> RunResult:
        return _Run(self, request, on_event or null_sink).execute()


class _Run:
    def __init__(self, agent: Agent, request: RunRequest, emit: EventSink):
        self.config = agent.config
        self.transport = agent.transport
        self.request = request
        self.emit = emit
        self.cancel = request.cancel or CancellationToken()
        self.step = 0
        self.nudge_count = 0
        self.format_recovery_count = 0

        self.task_text = latest_user_text(request.messages)
        tags = parse_request_tags(self.task_text)
        self.mode: Mode = mode_for(tags.review, request.fast)

        root = Path(request.workspace_root or self.config.workspace_root)
        self.target_folder = tags.target_folder
        try:
            self.workspace = resolve_target(root, self.target_folder)
        except InvalidTargetError as e:
            _log.warning("%s; using %s", e, root)
            self.emit(make_event(STATUS, message=f"Ignoring target folder: {e}"))
            self.target_folder = None
            self.workspace = root.resolve()

        self.registry = ToolRegistry(str(self.workspace), self.config.report_file,
                                     self.config.handoff_log)
        self.registry.mode = self.mode
        self.parser = ReplyParser(self.registry.names)
        self.guards = GuardBank(self.mode, self.config.guards,
                                self.config.require_review_request)
        self.state = AgentState()
        if any(REJECTION_RE.search(str(m.get("content") or "")) for m in request.messages):
            self.state.mark("rejection_seen")

        system_prompt = build_system_prompt(
            self.mode, self.registry.descriptors, self.target_folder,
            self.config.report_file, self.config.plan_file,
        )
        self.history: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
        self.history.extend(
            {"role": m["role"], "content": str(m.get("content") or "")}
            for m in request.messages if m.get("role") in ("user", "assistant")
        )

    # ── Main loop ──

    def execute(self) -> RunResult:
        _log.info("Run %s started: mode=%s workspace=%s", self.request.run_id or "-",
                  self.mode, self.workspace)
        self.emit(make_event(STATUS, message=f"Starting in {self.mode} mode",
                             mode=self.mode.name, run_id=self.request.run_id))
        try:
            for step in range(1, self.config.max_steps + 1):
                self.step = step
                result = self._step()
                if result is not None:
                    return result
        except TransportError as e:
            if not isinstance(e, AgentStoppedError):
                log_agent_error(TRANSPORT_ERROR, str(e), {"step": self.step})
            _log.error("Run stopped at step %d: %s", self.step, e)
            self.emit(make_event(ERROR, error=str(e), step=self.step))
            raise

        message = (f"Agent reached the {self.config.max_steps}-step limit without finishing.")
        log_agent_error(GUARD_FAILURE, message, {"steps": self.config.max_steps})
        return self._fail(message, STEP_LIMIT)

    def _step(self) -> Optional[RunResult]:
        self.history = prune_history(self.history, self.config.max_history_turns,
                                     self.config.history_window)
        if self.cancel.cancelled:
            raise AgentStoppedError()

        self.emit(make_event(STATUS, message=f"Step {self.step}: thinking", step=self.step))
        raw = self._stream()
        self.history.append({"role": "assistant", "content": raw})

        reply = self.parser.parse(raw, self.mode)
        if reply.thought:
            self.emit(make_event(THOUGHT, thought=reply.thought, step=self.step))
        if reply.is_chain_error:
            log_agent_error(PARSE_ERROR, reply.error,
                            {"step": self.step, "garbled": reply.is_garbled, "raw": raw[:500]})

        outcome = self.guards.evaluate(self._guard_context(reply))
        if outcome is not None:
            if outcome.kind == FAIL:
                log_agent_error(GUARD_FAILURE, outcome.message,
                                {"guard": outcome.guard, "step": self.step})
                return self._fail(outcome.message, outcome.guard)
            if outcome.kind == RECOVER:
                self.format_recovery_count += 1
                inject_format_recovery(self.history, format_example(self.mode))
                self.emit(make_event(FORMAT_RECOVERY, message=outcome.message, step=self.step,
                                     count=self.format_recovery_count))
                return None
            self.nudge_count += 1
            inject_nudge(self.history, outcome.message, self.nudge_count)
            log_agent_error(LOOP_GUARD, outcome.message, {"guard": outcome.guard, "step": self.step})
            self.emit(make_event(NUDGE, message=outcome.message, guard=outcome.guard,
                                 step=self.step, number=self.nudge_count))
            return None

        if reply.is_finish:
            response = reply.response or "Task complete."
            _log.info("Run finished at step %d", self.step)
            self.emit(make_event(RESPONSE, response=response, steps=self.step))
            return RunResult(True, response, self.step)

        return self._run_tool(reply)

    def _stream(self) -> str:
        parts: List[str] = []
        shown = [""]

        def on_chunk(delta: str):
            parts.append(delta)
            visible = strip_markers(sanitize("".join(parts)))
            previous = shown[0]
            new = visible[len(previous):] if visible.startswith(previous) else visible
            shown[0] = visible
            if new:
                self.emit(make_event(CHUNK, delta=new, text=visible, step=self.step))

        started = time.monotonic()
        raw = self.transport.complete(self.history, on_chunk=on_chunk, cancel=self.cancel,
                                      model=self.request.model)
        _log.debug("Step %d: %d chars in %.1fs", self.step, len(raw), time.monotonic() - started)
        return raw

    # ── Guards ──

    def _guard_context(self, reply: ParsedReply) -> GuardContext:
        ctx = GuardContext(
            reply=reply, step=self.step, mode=self.mode, state=self.state,
            task_text=self.task_text, report_file=self.config.report_file,
        )
        if reply.is_tool:
            params = strip_target_prefix(reply.parameters, self.target_folder)
            ctx.is_mutating = self.registry.is_mutating(reply.action)
            ctx.is_read_only = self.registry.is_read_only(reply.action)
            ctx.write_targets = self.registry.write_targets(reply.action, params)
            ctx.report_write = self.registry.is_report_write(reply.action, params)
        return ctx

    # ── Tools ──

    def _run_tool(self, reply: ParsedReply) -> Optional[RunResult]:
        action = reply.action
        params = strip_target_prefix(reply.parameters, self.target_folder)
        targets = self.registry.write_targets(action, params)
        self.emit(make_event(TOOL_CALL, tool=action, params=params, step=self.step,
                             target=", ".join(t for t in targets if t) or params.get("path")))
        _log.info("Step %d: executing %s", self.step, action)

        try:
            result = self.registry.execute(action, params)
        except ToolError as e:
            _log.error("%s", e)
            result = {"error": str(e)}

        summary = summarize_result(action, params, result, self.mode.review)
        if result.get("error"):
            log_agent_error(TOOL_ERROR_KIND, str(result["error"]), {"tool": action, "step": self.step})
            self.emit(make_event(TOOL_ERROR, tool=action, error=str(result["error"]), step=self.step))
        else:
            self._record(action, params, result, targets)
            self.emit(make_event(TOOL_RESULT, tool=action, result=result, summary=summary,
                                 step=self.step))

        if self.cancel.cancelled:
            _log.info("Run cancelled after %s; returning its summary", action)
            self.emit(make_event(RESPONSE, response=summary, steps=self.step))
            return RunResult(True, summary, self.step, STOPPED)

        self.history.append({"role": "user", "content": build_feedback(
            action, params, result, review=self.mode.review,
            max_result_chars=self.config.max_result_chars,
            file_ops=self.registry.file_ops,
            max_file_chars=self.config.max_file_feedback_chars,
        )})
        return None

    def _record(self, action: str, params: Dict[str, Any], result: Dict[str, Any],
                targets: List[str]):
        """Flip state flags for a successful tool call."""
        if result.get("success") is False:
            return
        report, plan = self.config.report_file, self.config.plan_file
        if self.registry.is_mutating(action):
            written = [t for t in targets if t]
            if action == "bulk_write":
                written = [r.get("path") for r in result.get("results") or []
                           if r.get("success") and r.get("path")]
            if any(matches_file(t, report) for t in written):
                self.state.mark("report_saved")
            if any(matches_file(t, plan) for t in written):
                self.state.mark("plan_written")
            code = [t for t in written if not matches_file(t, report) and not matches_file(t, plan)]
            if not self.mode.review and (code or not written):
                self.state.mark("code_modified")
        elif action == "request_review" and result.get("ready_for_review"):
            self.state.mark("review_requested")
        elif action in READ_REPORT_TOOLS:
            if action == "read_file":
                read = [result.get("path") or ""]
            else:
                read = [r.get("path") or "" for r in result.get("results") or [] if r.get("success")]
            if any(matches_file(p, report) for p in read):
                self.state.mark("report_read")

    def _fail(self, message: str, reason: str) -> RunResult:
        _log.warning("Run failed at step %d (%s): %s", self.step, reason, message)
        self.emit(make_event(FAILURE, response=message, reason=reason, steps=self.step))
        return RunResult(False, message, self.step, reason)
