"""Tests for the completion provider adapter."""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest
from openai.types.chat import ChatCompletion

from ai_agent.core.exceptions import LLMProviderError
from ai_agent.services.llm_connector import LLMConnector


def chat_completion(message: dict, finish_reason: str = "stop") -> ChatCompletion:
    return ChatCompletion.model_validate({
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-test",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    })


class FakeStream:
    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def create(self, **params):
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return self.result


def make_connector(result=None, error=None):
    completions = FakeCompletions(result, error)
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return LLMConnector(client=client, model="gpt-test", max_tokens=100, temperature=0), completions


class TestFormatMessages:
    def test_system_history_and_user(self):
        history = [{"role": "user", "content": "hola"}, {"role": "assistant", "content": "¡hola!"}]
        messages = LLMConnector.format_messages("¿qué tal?", "be nice", history)
        assert messages[0] == {"role": "system", "content": "be nice"}
        assert messages[1:3] == history
        assert messages[-1] == {"role": "user", "content": "¿qué tal?"}

    def test_without_system_prompt(self):
        assert LLMConnector.format_messages("hi") == [{"role": "user", "content": "hi"}]


class TestComplete:
    async def test_text_answer(self):
        connector, completions = make_connector(chat_completion({"role": "assistant", "content": "445"}))
        completion = await connector.complete([{"role": "user", "content": "x"}])

        assert completion.content == "445"
        assert completion.requests_tools is False
        assert completion.usage["total_tokens"] == 15
        assert "tools" not in completions.calls[0]

    async def test_tool_call_answer(self):
        message = {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call_1",
                "type": "function",
                "function": {"name": "calculator", "arguments": '{"expression": "1 + 1"}'},
            }],
        }
        connector, completions = make_connector(chat_completion(message, finish_reason="tool_calls"))
        tools = [{"type": "function", "function": {"name": "calculator"}}]
        completion = await connector.complete([{"role": "user", "content": "x"}], tools=tools)

        assert completion.requests_tools is True
        assert completion.tool_calls[0].name == "calculator"
        assert completion.tool_calls[0].parse_arguments() == {"expression": "1 + 1"}
        assert completions.calls[0]["tool_choice"] == "auto"

    async def test_provider_errors_are_wrapped(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.test/v1/chat/completions"))
        connector, _ = make_connector(error=error)
        with pytest.raises(LLMProviderError):
            await connector.complete([{"role": "user", "content": "x"}])


class TestStream:
    async def test_stream_yields_parsed_chunks_and_closes(self):
        raw = [
            {"choices": [{"index": 0, "delta": {"content": "Hola"}, "finish_reason": None}]},
            {"choices": [{"index": 0, "delta": {"content": " mundo"}, "finish_reason": None}]},
            {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]},
        ]
        stream = FakeStream(raw)
        connector, completions = make_connector(stream)

        chunks = [chunk async for chunk in connector.stream([{"role": "user", "content": "x"}])]

        assert [c.type for c in chunks] == ["content", "content", "done"]
        assert "".join(c.content for c in chunks if c.type == "content") == "Hola mundo"
        assert completions.calls[0]["stream"] is True
        assert "tools" not in completions.calls[0]
        assert stream.closed is True


class TestParseStreamChunk:
    def test_sse_text(self):
        raw = 'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n'
        chunks = LLMConnector.parse_stream_chunk(raw)
        assert [(c.type, c.content, c.finish_reason) for c in chunks] == [
            ("content", "Hi", None),
            ("done", None, "stop"),
        ]

    def test_bytes_are_decoded(self):
        chunks = LLMConnector.parse_stream_chunk(b'data: {"choices":[{"delta":{"content":"ok"}}]}')
        assert chunks[0].content == "ok"

    def test_tool_call_delta(self):
        raw = {"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"name": "weather"}}]}}]}
        chunks = LLMConnector.parse_stream_chunk(raw)
        assert chunks[0].type == "tool_call"
        assert chunks[0].tool_call["function"]["name"] == "weather"

    @pytest.mark.parametrize("raw", ["data: {not json", "event: ping", {"choices": []}, {"choices": "x"}, 42, None])
    def test_malformed_chunks_are_dropped(self, raw):
        assert LLMConnector.parse_stream_chunk(raw) == []
