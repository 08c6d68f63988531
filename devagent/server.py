"""FastAPI application: agent runs over server-sent events plus file access."""

import json
import queue
import threading
from typing import Any, Dict, Iterator, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from . import __version__
from .agent import Agent, RunRequest
from .config import Config
from .errors import AgentError, RunConflictError
from .events import AgentEvent
from .logger import get_logger
from .runs import RunRegistry
from .tools import FileOperationError, FileOps
from .transport import ChatTransport

_log = get_logger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
_END = object()


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class RunBody(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list)
    model: Optional[str] = None
    fast: bool = False
    run_id: Optional[str] = None


class StopBody(BaseModel):
    run_id: Optional[str] = None


class WriteBody(BaseModel):
    path: str
    content: str


def sse_frame(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False, default=str)}\n\n"


def stream_events(events: "queue.Queue[Any]", outcome: Dict[str, Any],
                  run_id: str) -> Iterator[str]:
    """Drain a run's event queue as SSE frames, ending with a ``done`` frame."""
    ended = False
    try:
        while True:
            item = events.get()
            if item is _END:
                ended = True
                break
            yield sse_frame(item.to_dict())
        yield sse_frame({"type": "done", "run_id": run_id, **outcome})
    finally:
        if not ended:
            _log.warning("Client left run %s; the run continues on the server", run_id)


def create_app(config: Optional[Config] = None, transport=None,
               runs: Optional[RunRegistry] = None) -> FastAPI:
    app = FastAPI(title="devagent", version=__version__)
    config = config or Config.load()
    agent = Agent(transport or ChatTransport.from_config(config), config)
    registry = runs or RunRegistry()
    app.state.config = config
    app.state.runs = registry

    def files() -> FileOps:
        return FileOps(str(config.workspace_root))

    def start_run(request: RunRequest) -> Iterator[str]:
        """Start the worker now and return the SSE frames it produces.

        The worker runs whether or not the client reads the stream, so the
        registry entry is always released when the run ends.
        """
        run_id = request.run_id
        events: "queue.Queue[Any]" = queue.Queue()
        outcome: Dict[str, Any] = {}

        def worker():
            try:
                result = agent.run(request, events.put)
                outcome["success"] = result.success
                outcome["steps"] = result.steps
            except AgentError as e:
                # The agent has already emitted its error event.
                _log.warning("Run %s ended with error: %s", run_id, e)
                outcome["success"] = False
            except Exception as e:
                _log.exception("Run %s crashed", run_id)
                events.put(AgentEvent("error", {"error": str(e)}))
                outcome["success"] = False
            finally:
                registry.finish(run_id)
                events.put(_END)

        threading.Thread(target=worker, name=f"run-{run_id}", daemon=True).start()
        return stream_events(events, outcome, run_id)

    @app.post("/api/agent/run")
    def run_agent(body: RunBody):
        if not body.messages:
            raise HTTPException(status_code=400, detail='"messages" must be a non-empty array.')
        try:
            handle = registry.register(body.run_id)
        except RunConflictError as e:
            raise HTTPException(status_code=409, detail=str(e))
        _log.info("New run %s (%d messages)", handle.run_id, len(body.messages))
        request = RunRequest(
            messages=[{"role": m.role, "content": m.content} for m in body.messages],
            workspace_root=str(config.workspace_root),
            model=body.model,
            fast=body.fast,
            cancel=handle.token,
            run_id=handle.run_id,
        )
        return StreamingResponse(start_run(request),
                                 media_type="text/event-stream", headers=SSE_HEADERS)

    @app.post("/api/agent/stop")
    def stop_agent(body: Optional[StopBody] = None):
        stopped = registry.stop(body.run_id if body else None)
        if stopped:
            return {"success": True, "run_id": stopped, "message": "Agent stopped."}
        return {"success": False, "message": "No agent is currently running."}

    @app.get("/api/health")
    def health():
        return {
            "status": "ok",
            "version": __version__,
            "model": config.model,
            "workspace": str(config.workspace_root),
            "active_runs": len(registry.active),
        }

    @app.get("/api/files/list")
    def list_files(path: str = "."):
        try:
            return files().list_files(path)
        except FileOperationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/api/files/read")
    def read_file(path: Optional[str] = None):
        if not path:
            raise HTTPException(status_code=400, detail='"path" query param required.')
        try:
            return files().read_file(path)
        except FileOperationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/api/files/write")
    def write_file(body: WriteBody):
        try:
            return files().write_file(body.path, body.content)
        except FileOperationError as e:
            raise HTTPException(status_code=400, detail=str(e))

    return app
