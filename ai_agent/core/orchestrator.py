# ai_agent/core/orchestrator.py
# The agent loop: resolves tool calls against the registry and produces the
# final answer, either in one piece or as a stream of events.
# Version: 4.0.0

import asyncio
import json
from contextlib import aclosing
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from ai_agent.core.config import get_settings
from ai_agent.core.exceptions import LLMProviderError, StreamEndedUnexpectedlyError
from ai_agent.core.tool_registry import ToolRegistry, build_tool_registry
from ai_agent.models.agent_models import AgentEvent, AgentResult
from ai_agent.models.common import ToolCall
from ai_agent.models.domain import SessionSummary
from ai_agent.services.llm_connector import LLMConnector
from ai_agent.services.session_manager import SessionManager
from ai_agent.tools.base_tool import BaseTool
from ai_agent.utils.logger import console

# --- Default system prompt ---
SYSTEM_PROMPT = """You are {agent_name}, {agent_description}.

You have access to tools that you MUST use when appropriate. Always analyze the user's request to decide whether a tool is needed.

Use tools AUTOMATICALLY when:
- Mathematical calculations are requested (calculator)
- Weather information is needed (weather)
- Web search or current information is required (search)
- Bizum transfers or payment requests are mentioned (bizum)
- Contact management is needed (contacts)

**Available Tools:**
{tool_definitions}

**Examples of when to use tools:**
{tool_examples}

Bizum only accepts phone numbers. When the user names a person, first use the bizum tool with action 'lookup' to get the phone number; if several contacts match, ask the user which one they mean.
Respond naturally and in the user's language, and prefer tools over your training data whenever they give more accurate or more current information.
"""

MAX_ITERATIONS_ERROR = "Maximum iterations reached"
INTERNAL_ERROR = "An internal error occurred. Please try again."


class Resolution(BaseModel):
    """How the tool-resolution phase ended."""
    outcome: str  # content | confirmation | exhausted | no_output
    iterations: int
    tools_used: List[str] = Field(default_factory=list)
    messages: List[Dict[str, Any]] = Field(default_factory=list)
    content: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None
    needs_disambiguation: bool = False
    confirmation: Optional[Dict[str, Any]] = None

    @property
    def unique_tools(self) -> List[str]:
        return list(dict.fromkeys(self.tools_used))


def _merge_usage(total: Optional[Dict[str, Any]], usage: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not usage:
        return total
    merged = dict(total or {})
    for key, value in usage.items():
        if isinstance(value, int):
            merged[key] = merged.get(key, 0) + value
    return merged


def _confirmation_narrative(result: Dict[str, Any]) -> str:
    return "\n".join(part for part in (result.get("message"), result.get("details")) if part)


def split_words(content: str) -> List[str]:
    """Splits text into word chunks whose concatenation is the original text."""
    words = content.split(" ")
    return [word if index == 0 else " " + word for index, word in enumerate(words)]


class Agent:
    """
    The plan-act-observe loop.

    Both process_message and process_message_stream consume the same
    _resolve_tools generator, so they resolve tools identically and only
    differ in how the final answer is delivered.
    """

    def __init__(self, llm: Optional[LLMConnector] = None, registry: Optional[ToolRegistry] = None,
                 session_manager: Optional[SessionManager] = None, max_iterations: Optional[int] = None,
                 stream_word_delay: Optional[float] = None, agent_name: Optional[str] = None,
                 agent_description: Optional[str] = None):
        settings = get_settings()
        self.llm = llm or LLMConnector()
        self.registry = registry if registry is not None else build_tool_registry()
        self.sessions = session_manager or SessionManager()
        self.max_iterations = max_iterations if max_iterations is not None else settings.AGENT_MAX_ITERATIONS
        self.stream_word_delay = stream_word_delay if stream_word_delay is not None else settings.STREAM_WORD_DELAY
        self.agent_name = agent_name or settings.AGENT_NAME
        self.agent_description = agent_description or settings.AGENT_DESCRIPTION

    # --- Prompt ------------------------------------------------------------

    def get_default_system_prompt(self) -> str:
        tools = self.registry.get_all()
        tool_definitions = "\n".join(f"  - `{tool.name}`: {tool.description}" for tool in tools)
        tool_examples = "\n".join(
            f'  - "{example}" → use the {tool.name} tool' for tool in tools for example in tool.examples
        )
        return SYSTEM_PROMPT.format(
            agent_name=self.agent_name,
            agent_description=self.agent_description,
            tool_definitions=tool_definitions,
            tool_examples=tool_examples,
        )

    async def _build_messages(self, user_message: str, user_id: str,
                              system_prompt: Optional[str]) -> List[Dict[str, Any]]:
        history = await self.sessions.get_history(user_id)
        console.info(f"Processing message for '{user_id}' ({len(user_message)} chars, {len(history)} history entries).")
        return self.llm.format_messages(user_message, system_prompt or self.get_default_system_prompt(), history)

    # --- Tool resolution ---------------------------------------------------

    async def _execute_tool_calls(self, tool_calls: List[ToolCall], user_id: str) -> List[Dict[str, Any]]:
        """Runs the calls in the order the model gave them. Failures become {success: False} results."""
        results = []
        for tool_call in tool_calls:
            try:
                args = tool_call.parse_arguments()
                result = await self.registry.execute(tool_call.name, args, user_id)
            except Exception as e:
                console.error(f"Tool call '{tool_call.name}' failed: {e}")
                result = {"success": False, "error": str(e)}
            results.append({"tool_call_id": tool_call.id, "name": tool_call.name, "result": result})
        return results

    async def _resolve_tools(self, messages: List[Dict[str, Any]], user_id: str,
                             user_message: str) -> AsyncIterator[Union[AgentEvent, Resolution]]:
        """
        Runs the synchronous tool-resolution loop.

        Yields a 'tool_execution' event for every turn that calls tools and
        finishes with exactly one Resolution. LLMProviderError propagates.
        """
        messages = list(messages)
        tools = self.registry.get_definitions() or None
        tools_used: List[str] = []
        usage: Optional[Dict[str, Any]] = None
        needs_disambiguation = False

        for iteration in range(1, self.max_iterations + 1):
            console.rule(f"Agent Iteration {iteration}")
            completion = await self.llm.complete(messages, tools=tools)
            usage = _merge_usage(usage, completion.usage)

            if completion.requests_tools:
                names = [tool_call.name for tool_call in completion.tool_calls]
                tools_used.extend(names)
                yield AgentEvent(type="tool_execution", user_id=user_id, iteration=iteration, tools=names)

                messages.append(completion.message.model_dump(exclude_none=True))
                results = await self._execute_tool_calls(completion.tool_calls, user_id)

                for entry in results:
                    result = entry["result"]
                    if isinstance(result, dict) and result.get("requires_confirmation"):
                        narrative = _confirmation_narrative(result)
                        await self.sessions.append_exchange(user_id, user_message, narrative)
                        console.info(f"Waiting for confirmation '{result.get('confirmation_id')}' from '{user_id}'.")
                        yield Resolution(
                            outcome="confirmation", iterations=iteration, tools_used=tools_used,
                            messages=messages, content=narrative, usage=usage, confirmation=result,
                        )
                        return
                    if isinstance(result, dict) and result.get("needs_disambiguation"):
                        needs_disambiguation = True

                for entry in results:
                    messages.append({
                        "role": "tool",
                        "tool_call_id": entry["tool_call_id"],
                        "content": json.dumps(entry["result"], ensure_ascii=False, default=str),
                    })
                continue

            if completion.content and completion.content.strip():
                yield Resolution(
                    outcome="content", iterations=iteration, tools_used=tools_used, messages=messages,
                    content=completion.content, usage=usage, needs_disambiguation=needs_disambiguation,
                )
                return

            console.warning("The model returned neither content nor tool calls.")
            yield Resolution(
                outcome="no_output", iterations=iteration, tools_used=tools_used, messages=messages,
                usage=usage, needs_disambiguation=needs_disambiguation,
            )
            return

        console.warning(f"Reached the maximum of {self.max_iterations} iterations for '{user_id}'.")
        yield Resolution(
            outcome="exhausted", iterations=self.max_iterations, tools_used=tools_used,
            messages=messages, usage=usage, needs_disambiguation=needs_disambiguation,
        )

    # --- Atomic mode -------------------------------------------------------

    async def process_message(self, user_message: str, user_id: Optional[str] = None,
                              system_prompt: Optional[str] = None) -> AgentResult:
        actual_user_id = user_id or self.sessions.generate_user_id()
        resolution: Optional[Resolution] = None
        try:
            messages = await self._build_messages(user_message, actual_user_id, system_prompt)
            async for item in self._resolve_tools(messages, actual_user_id, user_message):
                if isinstance(item, Resolution):
                    resolution = item
        except LLMProviderError as e:
            console.error(f"Error processing message for '{actual_user_id}': {e}")
            return AgentResult(success=False, user_id=actual_user_id, error=str(e))

        if resolution.outcome == "confirmation":
            return AgentResult(
                success=True,
                user_id=actual_user_id,
                response=resolution.content,
                iterations=resolution.iterations,
                tools_used=resolution.unique_tools,
                usage=resolution.usage,
                requires_confirmation=True,
                confirmation_id=resolution.confirmation.get("confirmation_id"),
            )

        if resolution.outcome == "content":
            await self.sessions.append_exchange(actual_user_id, user_message, resolution.content)
            console.success(f"Message processed for '{actual_user_id}' in {resolution.iterations} iteration(s).")
            return AgentResult(
                success=True,
                user_id=actual_user_id,
                response=resolution.content,
                iterations=resolution.iterations,
                tools_used=resolution.unique_tools,
                usage=resolution.usage,
                needs_disambiguation=resolution.needs_disambiguation or None,
            )

        return AgentResult(
            success=False,
            user_id=actual_user_id,
            error=MAX_ITERATIONS_ERROR,
            iterations=resolution.iterations,
            tools_used=resolution.unique_tools,
            usage=resolution.usage,
        )

    # --- Streaming mode ----------------------------------------------------

    async def process_message_stream(self, user_message: str, user_id: Optional[str] = None,
                                     system_prompt: Optional[str] = None) -> AsyncIterator[AgentEvent]:
        """
        Streams AgentEvents. The run always ends with one 'complete' or
        'error' event; a consumer may also stop reading at any point.
        """
        actual_user_id = user_id or self.sessions.generate_user_id()
        try:
            async with aclosing(self._stream_events(user_message, actual_user_id, system_prompt)) as events:
                async for event in events:
                    yield event
        except Exception:
            console.exception(f"Unexpected error while streaming a message for '{actual_user_id}'")
            yield self._error_event(actual_user_id, INTERNAL_ERROR)

    async def _stream_events(self, user_message: str, actual_user_id: str,
                             system_prompt: Optional[str]) -> AsyncIterator[AgentEvent]:
        resolution: Optional[Resolution] = None
        try:
            messages = await self._build_messages(user_message, actual_user_id, system_prompt)
            async with aclosing(self._resolve_tools(messages, actual_user_id, user_message)) as items:
                async for item in items:
                    if isinstance(item, Resolution):
                        resolution = item
                    else:
                        yield item
        except LLMProviderError as e:
            console.error(f"Error streaming message for '{actual_user_id}': {e}")
            yield self._error_event(actual_user_id, str(e))
            return

        if resolution.outcome == "confirmation":
            transaction = resolution.confirmation.get("transaction_data") or {}
            yield AgentEvent(
                type="bizum_confirmation",
                user_id=actual_user_id,
                confirmation_id=resolution.confirmation.get("confirmation_id"),
                recipient=transaction.get("recipient"),
                amount=transaction.get("amount"),
                concept=transaction.get("concept"),
            )
            yield self._complete_event(actual_user_id, resolution, resolution.content, requires_confirmation=True)
            return

        if resolution.outcome == "content":
            for chunk in split_words(resolution.content):
                yield AgentEvent(type="content", user_id=actual_user_id, content=chunk, iteration=resolution.iterations)
                await asyncio.sleep(self.stream_word_delay)
            await self.sessions.append_exchange(actual_user_id, user_message, resolution.content)
            yield self._complete_event(actual_user_id, resolution, resolution.content)
            return

        if resolution.outcome == "exhausted":
            yield self._error_event(actual_user_id, MAX_ITERATIONS_ERROR, resolution)
            return

        async with aclosing(self._stream_final_answer(resolution, actual_user_id, user_message)) as events:
            async for event in events:
                yield event

    async def _stream_final_answer(self, resolution: Resolution, user_id: str,
                                   user_message: str) -> AsyncIterator[AgentEvent]:
        """Second phase: a real provider stream, without tools."""
        console.info(f"Streaming the final answer for '{user_id}'.")
        yield AgentEvent(type="response_start", user_id=user_id)

        parts: List[str] = []
        finished = False
        try:
            async with aclosing(self.llm.stream(resolution.messages)) as chunks:
                async for chunk in chunks:
                    if chunk.type == "content" and chunk.content:
                        parts.append(chunk.content)
                        yield AgentEvent(type="content", user_id=user_id, content=chunk.content,
                                         iteration=resolution.iterations)
                    elif chunk.type == "done":
                        finished = True
                        break
        except LLMProviderError as e:
            console.error(f"Streaming failed for '{user_id}': {e}")
            yield self._error_event(user_id, str(e), resolution)
            return

        if not finished:
            error = StreamEndedUnexpectedlyError()
            console.warning(f"{error} ({len(parts)} content chunks received).")
            yield self._error_event(user_id, str(error), resolution)
            return

        response = "".join(parts)
        await self.sessions.append_exchange(user_id, user_message, response)
        yield self._complete_event(user_id, resolution, response)

    @staticmethod
    def _complete_event(user_id: str, resolution: Resolution, response: str,
                        requires_confirmation: bool = False) -> AgentEvent:
        return AgentEvent(
            type="complete",
            user_id=user_id,
            is_complete=True,
            response=response,
            iterations=resolution.iterations,
            tools_used=resolution.unique_tools,
            usage=resolution.usage,
            confirmation_id=(resolution.confirmation or {}).get("confirmation_id"),
            requires_confirmation=requires_confirmation or None,
            needs_disambiguation=resolution.needs_disambiguation or None,
        )

    @staticmethod
    def _error_event(user_id: str, error: str, resolution: Optional[Resolution] = None) -> AgentEvent:
        return AgentEvent(
            type="error",
            user_id=user_id,
            is_complete=True,
            error=error,
            iterations=resolution.iterations if resolution else None,
            tools_used=resolution.unique_tools if resolution else [],
        )

    # --- Bizum confirmation ------------------------------------------------

    async def confirm_transaction(self, user_id: str, confirmation_id: str, confirmed: bool,
                                  signature: Optional[str] = None) -> Dict[str, Any]:
        """Resolves a pending Bizum and records the outcome in the user's history."""
        bizum = self.registry.get("bizum")
        if bizum is None:
            return {"success": False, "error": "Bizum tool not available", "error_code": "tool_not_found"}

        result = await bizum.confirm_transaction(user_id, confirmation_id, confirmed, signature)
        if result.get("success"):
            user_text = "Confirmo el Bizum" if confirmed else "Cancelo el Bizum"
            await self.sessions.append_exchange(user_id, user_text, _confirmation_narrative(result))
        return result

    # --- Sessions & tools --------------------------------------------------

    async def create_session(self, user_id: Optional[str] = None) -> str:
        return await self.sessions.create_session(user_id)

    async def get_history(self, user_id: str) -> List[Dict[str, str]]:
        return await self.sessions.get_history(user_id)

    async def clear_history(self, user_id: str):
        await self.sessions.clear_history(user_id)

    async def delete_session(self, user_id: str) -> bool:
        return await self.sessions.delete_session(user_id)

    async def list_active(self, since: Union[datetime, timedelta] = timedelta(hours=1)) -> List[SessionSummary]:
        return await self.sessions.list_active(since)

    async def list_all(self) -> List[SessionSummary]:
        return await self.sessions.list_all()

    def get_available_tools(self) -> List[Dict[str, Any]]:
        return self.registry.get_schemas()

    def register_tool(self, tool: BaseTool):
        self.registry.register(tool)

    def unregister_tool(self, tool_name: str) -> bool:
        return self.registry.unregister(tool_name)


@lru_cache
def get_agent() -> Agent:
    """Process-wide agent used by the API and the CLI."""
    return Agent()
