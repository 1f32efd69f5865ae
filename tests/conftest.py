"""Shared test fixtures for the AI agent test suite."""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import fakeredis
import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so the settings load without a real .env.
    """
    os.environ.setdefault("OPENAI_API_KEY", "test-openai-key-123")
    os.environ.setdefault("STREAM_WORD_DELAY", "0")
    os.environ.setdefault("LOG_LEVEL", "DEBUG")


# ── Storage ──────────────────────────────────────────────────────────


@pytest.fixture
def redis_client():
    """An in-memory Redis private to each test."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def store_factory(redis_client):
    from ai_agent.services.user_store import UserStore

    def _make(namespace: str) -> UserStore:
        return UserStore(namespace, redis_client=redis_client, key_prefix="test")

    return _make


@pytest.fixture
def session_manager(store_factory):
    from ai_agent.services.session_manager import SessionManager

    return SessionManager(store=store_factory("session"), history_limit=20)


@pytest.fixture
def contacts_tool(store_factory):
    from ai_agent.tools.contacts_tool import ContactsTool

    return ContactsTool(store=store_factory("contacts"))


# ── Time ─────────────────────────────────────────────────────────────


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def confirmations(clock):
    from ai_agent.services.confirmation_manager import ConfirmationManager

    return ConfirmationManager(ttl_seconds=300, clock=clock)


@pytest.fixture
def bizum_tool(store_factory, contacts_tool, confirmations):
    from ai_agent.tools.bizum_tool import BizumTool

    return BizumTool(
        store=store_factory("bizum_transactions"),
        contacts=contacts_tool,
        confirmations=confirmations,
        min_amount=0.01,
        max_amount=1000,
        max_stored_transactions=100,
    )


# ── Completion provider ──────────────────────────────────────────────

USAGE = {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}


def tool_call_completion(name: str, arguments: Dict[str, Any], call_id: str = "call_1"):
    """A completion in which the model asks for one tool call."""
    from ai_agent.models.common import Completion, Message, ToolCall

    return Completion(
        message=Message(
            role="assistant",
            content=None,
            tool_calls=[ToolCall(id=call_id, function={"name": name, "arguments": json.dumps(arguments)})],
        ),
        finish_reason="tool_calls",
        usage=USAGE,
    )


def text_completion(text: Optional[str]):
    from ai_agent.models.common import Completion, Message

    return Completion(message=Message(role="assistant", content=text), finish_reason="stop", usage=USAGE)


class ScriptedLLM:
    """Replays canned completions and stream chunks, recording every request."""

    def __init__(self, completions: Optional[List[Any]] = None, stream_chunks: Optional[List[Any]] = None):
        self.completions = list(completions or [])
        self.stream_chunks = list(stream_chunks or [])
        self.requests: List[Dict[str, Any]] = []
        self.stream_requests: List[List[Dict[str, Any]]] = []
        self.stream_closed = False

    @staticmethod
    def format_messages(user_message, system_prompt=None, history=None):
        from ai_agent.services.llm_connector import LLMConnector

        return LLMConnector.format_messages(user_message, system_prompt, history)

    async def complete(self, messages, tools=None):
        self.requests.append({"messages": list(messages), "tools": tools})
        if not self.completions:
            raise AssertionError("ScriptedLLM ran out of completions")
        completion = self.completions.pop(0)
        if isinstance(completion, Exception):
            raise completion
        return completion

    async def stream(self, messages):
        self.stream_requests.append(list(messages))
        try:
            for chunk in self.stream_chunks:
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
        finally:
            self.stream_closed = True


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def registry(store_factory):
    from ai_agent.core.tool_registry import build_tool_registry

    return build_tool_registry(store_factory)


@pytest.fixture
def agent(llm, registry, session_manager):
    from ai_agent.core.orchestrator import Agent

    return Agent(
        llm=llm,
        registry=registry,
        session_manager=session_manager,
        max_iterations=10,
        stream_word_delay=0,
        agent_name="TestAgent",
        agent_description="an agent under test",
    )
