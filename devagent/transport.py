"""Streaming transport for OpenAI-compatible chat endpoints (LM Studio)."""

import codecs
import json
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .cancellation import CancellationToken
from .errors import AgentStoppedError, StreamStallError, TransportError
from .logger import get_logger

_log = get_logger(__name__)

DONE_SENTINEL = "[DONE]"
COMPLETIONS_PATH = "/v1/chat/completions"

ChunkCallback = Callable[[str], None]


class SSEDecoder:
    """Incremental server-sent-events decoder: bytes in, JSON frames out.

    Multi-byte characters split across network chunks are held back by an
    incremental UTF-8 decoder; partial lines wait for the next chunk.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, data: bytes) -> List[Dict[str, Any]]:
        self._buffer += self._decoder.decode(data)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._frames(lines)

    def close(self) -> List[Dict[str, Any]]:
        """Flush whatever is left; a bad final frame is dropped."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return self._frames([tail]) if tail.strip() else []

    def _frames(self, lines: List[str]) -> List[Dict[str, Any]]:
        frames = []
        for line in lines:
            line = line.strip()
            if not line.startswith("data:"):
                continue
            payload = line[len("data:"):].strip()
            if not payload:
                continue
            if payload == DONE_SENTINEL:
                self.done = True
                continue
            try:
                frame = json.loads(payload)
            except ValueError:
                _log.debug("Skipping malformed SSE frame: %.80s", payload)
                continue
            if isinstance(frame, dict):
                frames.append(frame)
        return frames


def _block_text(block: Any) -> str:
    if isinstance(block, str):
        return block
    if not isinstance(block, dict):
        return ""
    content = block.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(_block_text(part) for part in content)
    text = block.get("text")
    return text if isinstance(text, str) else ""


def extract_delta(frame: Dict[str, Any]) -> str:
    """Text carried by one frame, whichever response shape the server uses."""
    choices = frame.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0] if isinstance(choices[0], dict) else {}
        delta = choice.get("delta") or {}
        if isinstance(delta.get("content"), str):
            return delta["content"]
        message = choice.get("message") or {}
        if isinstance(message.get("content"), str):
            return message["content"]
        if isinstance(choice.get("text"), str):
            return choice["text"]
        return ""

    output = frame.get("output")
    if isinstance(output, list):
        for block in output:
            if isinstance(block, dict) and block.get("type") == "message":
                return _block_text(block)
        return "".join(_block_text(block) for block in output)

    for key in ("output", "response", "text", "content"):
        value = frame.get(key)
        if isinstance(value, str):
            return value
    return ""


def _is_read_timeout(exc: Exception) -> bool:
    if isinstance(exc, requests.exceptions.Timeout):
        return True
    return "timed out" in str(exc).lower()


class ChatTransport:
    """One streamed completion per call.

    Three limits apply: the connect timeout, a rolling stall timeout (the
    socket read timeout, reset by every chunk) and an absolute limit for
    the whole turn checked as chunks arrive.
    """

    def __init__(self, base_url: str, model: str, request_timeout: float = 120.0,
                 stall_timeout: float = 30.0, connect_timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.request_timeout = request_timeout
        self.stall_timeout = stall_timeout
        self.connect_timeout = connect_timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "ChatTransport":
        return cls(
            base_url=config.base_url,
            model=config.model,
            request_timeout=config.request_timeout,
            stall_timeout=config.stall_timeout,
            connect_timeout=config.connect_timeout,
        )

    @property
    def url(self) -> str:
        return self.base_url + COMPLETIONS_PATH

    def complete(self, messages: List[Dict[str, str]],
                 on_chunk: Optional[ChunkCallback] = None,
                 cancel: Optional[CancellationToken] = None,
                 model: Optional[str] = None) -> str:
        """Stream one assistant turn and return its full text."""
        if cancel is not None and cancel.cancelled:
            raise AgentStoppedError()

        payload = {"model": model or self.model, "messages": messages, "stream": True}
        try:
            response = self.session.post(
                self.url, json=payload, stream=True,
                timeout=(self.connect_timeout, self.stall_timeout),
            )
        except requests.exceptions.ConnectTimeout as e:
            raise TransportError(f"Cannot reach LM Studio at {self.base_url}. Is it running?") from e
        except requests.exceptions.Timeout as e:
            raise TransportError("LM Studio request timed out") from e
        except requests.exceptions.ConnectionError as e:
            if cancel is not None and cancel.cancelled:
                raise AgentStoppedError() from e
            raise TransportError(f"Cannot reach LM Studio at {self.base_url}. Is it running?") from e

        unregister = cancel.on_cancel(response.close) if cancel is not None else None
        try:
            if response.status_code >= 400:
                body = (response.text or "")[:300]
                raise TransportError(f"LM Studio returned HTTP {response.status_code}: {body}")
            return self._consume(response, on_chunk, cancel)
        finally:
            if unregister is not None:
                unregister()
            response.close()

    def _consume(self, response, on_chunk: Optional[ChunkCallback],
                 cancel: Optional[CancellationToken]) -> str:
        started = time.monotonic()
        decoder = SSEDecoder()
        parts: List[str] = []

        def emit(frames):
            for frame in frames:
                delta = extract_delta(frame)
                if delta:
                    parts.append(delta)
                    if on_chunk is not None:
                        on_chunk(delta)

        chunks = response.iter_content(chunk_size=None)
        while True:
            try:
                data = next(chunks, None)
            except (requests.exceptions.RequestException, OSError, ValueError, AttributeError) as e:
                # Closing the response from another thread surfaces here too.
                if cancel is not None and cancel.cancelled:
                    raise AgentStoppedError() from e
                if _is_read_timeout(e):
                    raise StreamStallError(self.stall_timeout) from e
                raise TransportError(f"LM Studio stream interrupted: {e}") from e
            if data is None:
                break
            if cancel is not None and cancel.cancelled:
                raise AgentStoppedError()
            if data:
                emit(decoder.feed(data))
            if decoder.done:
                break
            if time.monotonic() - started > self.request_timeout:
                raise TransportError(
                    f"LM Studio request timed out after {self.request_timeout:g}s"
                )

        if cancel is not None and cancel.cancelled:
            raise AgentStoppedError()
        emit(decoder.close())
        text = "".join(parts)
        _log.info("Model turn: %d chars in %.1fs", len(text), time.monotonic() - started)
        return text
