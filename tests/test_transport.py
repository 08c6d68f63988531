"""Tests for the SSE decoder and streaming chat transport (no network)."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from devagent.cancellation import CancellationToken
from devagent.errors import AgentStoppedError, StreamStallError, TransportError
from devagent.transport import ChatTransport, SSEDecoder, extract_delta


def frame(text: str) -> bytes:
    return f"data: {json.dumps({'choices': [{'delta': {'content': text}}]})}\n\n".encode()


class FakeResponse:
    """Streaming response stub; ``chunks`` may contain exceptions to raise."""

    def __init__(self, chunks, status_code=200, text=""):
        self._chunks = chunks
        self.status_code = status_code
        self.text = text
        self.closed = False

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            if callable(chunk):
                chunk = chunk()
            yield chunk

    def close(self):
        self.closed = True


def make_transport(response=None, post_error=None, **kw):
    session = MagicMock()
    if post_error is not None:
        session.post.side_effect = post_error
    else:
        session.post.return_value = response
    return ChatTransport("http://localhost:1234/", "test-model", session=session, **kw), session


class TestSSEDecoder:

    def test_frames_and_done(self):
        decoder = SSEDecoder()
        frames = decoder.feed(frame("Hel") + frame("lo") + b"data: [DONE]\n\n")
        assert [extract_delta(f) for f in frames] == ["Hel", "lo"]
        assert decoder.done

    def test_partial_line_waits_for_next_chunk(self):
        decoder = SSEDecoder()
        data = frame("abc")
        assert decoder.feed(data[:10]) == []
        assert extract_delta(decoder.feed(data[10:])[0]) == "abc"

    def test_multibyte_split_across_chunks(self):
        decoder = SSEDecoder()
        data = frame("café")
        data = data.replace(b"caf\\u00e9", "café".encode("utf-8"))
        cut = data.index("é".encode("utf-8")) + 1
        first = decoder.feed(data[:cut])
        second = decoder.feed(data[cut:])
        assert first == []
        assert extract_delta(second[0]) == "café"

    def test_malformed_frame_skipped(self):
        decoder = SSEDecoder()
        frames = decoder.feed(b"data: {not json}\n\n" + frame("ok"))
        assert [extract_delta(f) for f in frames] == ["ok"]

    def test_close_parses_final_partial_frame(self):
        decoder = SSEDecoder()
        assert decoder.feed(frame("end").rstrip(b"\n")) == []
        assert extract_delta(decoder.close()[0]) == "end"

    def test_comments_and_blank_lines_ignored(self):
        decoder = SSEDecoder()
        assert decoder.feed(b": keep-alive\n\nevent: ping\n\n") == []


class TestExtractDelta:

    def test_message_content(self):
        assert extract_delta({"choices": [{"message": {"content": "full"}}]}) == "full"

    def test_output_message_block(self):
        frame_ = {"output": [{"type": "reasoning", "content": "hmm"},
                             {"type": "message", "content": [{"type": "output_text", "text": "hi"}]}]}
        assert extract_delta(frame_) == "hi"

    def test_output_blocks_concatenated(self):
        assert extract_delta({"output": [{"content": "a"}, {"text": "b"}]}) == "ab"

    def test_plain_fields(self):
        assert extract_delta({"response": "r"}) == "r"
        assert extract_delta({"text": "t"}) == "t"
        assert extract_delta({"unrelated": 1}) == ""


class TestChatTransport:

    def test_streams_text(self):
        response = FakeResponse([frame("THOUGHT: "), frame("ok"), b"data: [DONE]\n\n"])
        transport, session = make_transport(response)
        chunks = []
        text = transport.complete([{"role": "user", "content": "hi"}], on_chunk=chunks.append)
        assert text == "THOUGHT: ok"
        assert chunks == ["THOUGHT: ", "ok"]
        url = session.post.call_args.args[0]
        payload = session.post.call_args.kwargs["json"]
        assert url == "http://localhost:1234/v1/chat/completions"
        assert payload["stream"] is True
        assert payload["model"] == "test-model"
        assert response.closed

    def test_model_override(self):
        transport, session = make_transport(FakeResponse([frame("x")]))
        transport.complete([], model="other")
        assert session.post.call_args.kwargs["json"]["model"] == "other"

    def test_stops_reading_after_done(self):
        response = FakeResponse([frame("a"), b"data: [DONE]\n\n", RuntimeError("read past end")])
        transport, _ = make_transport(response)
        assert transport.complete([]) == "a"

    def test_http_error(self):
        transport, _ = make_transport(FakeResponse([], status_code=500, text="model not loaded"))
        with pytest.raises(TransportError, match="HTTP 500"):
            transport.complete([])

    def test_connection_refused(self):
        transport, _ = make_transport(post_error=requests.exceptions.ConnectionError("refused"))
        with pytest.raises(TransportError, match="Cannot reach LM Studio"):
            transport.complete([])

    def test_stall_timeout(self):
        response = FakeResponse([frame("a"), requests.exceptions.ReadTimeout("read timed out")])
        transport, _ = make_transport(response, stall_timeout=5)
        with pytest.raises(StreamStallError) as exc:
            transport.complete([])
        assert exc.value.timeout == 5

    def test_absolute_timeout(self, monkeypatch):
        ticks = iter(range(0, 10000, 100))
        monkeypatch.setattr("devagent.transport.time.monotonic", lambda: next(ticks))
        response = FakeResponse([frame("a"), frame("b"), frame("c")])
        transport, _ = make_transport(response, request_timeout=150)
        with pytest.raises(TransportError, match="timed out"):
            transport.complete([])

    def test_chunk_callback_errors_propagate_unwrapped(self):
        response = FakeResponse([frame("a"), frame("b")])
        transport, _ = make_transport(response)

        def broken_sink(delta):
            raise ValueError("sink rejected " + delta)

        with pytest.raises(ValueError, match="sink rejected a"):
            transport.complete([], on_chunk=broken_sink)
        assert response.closed

    def test_chunk_callback_runtime_error_is_not_transport_error(self):
        transport, _ = make_transport(FakeResponse([frame("a")]))

        def broken_sink(delta):
            raise RuntimeError("renderer crashed")

        with pytest.raises(RuntimeError, match="renderer crashed"):
            transport.complete([], on_chunk=broken_sink)

    def test_cancelled_before_request(self):
        token = CancellationToken()
        token.cancel()
        transport, session = make_transport(FakeResponse([frame("a")]))
        with pytest.raises(AgentStoppedError):
            transport.complete([], cancel=token)
        session.post.assert_not_called()

    def test_cancel_mid_stream_closes_response(self):
        token = CancellationToken()

        def cancel_then_chunk():
            token.cancel()
            return frame("b")

        response = FakeResponse([frame("a"), cancel_then_chunk, frame("c")])
        transport, _ = make_transport(response)
        with pytest.raises(AgentStoppedError):
            transport.complete([], cancel=token)
        assert response.closed

    def test_from_config(self):
        from devagent.config import Config

        config = Config(base_url="http://box:9000", model="m", stall_timeout=7)
        transport = ChatTransport.from_config(config)
        assert transport.url == "http://box:9000/v1/chat/completions"
        assert transport.stall_timeout == 7
