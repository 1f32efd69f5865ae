"""Tests for the agent loop, in atomic and streaming mode, with a scripted provider."""

from __future__ import annotations

import json

import pytest
from conftest import ScriptedLLM, text_completion, tool_call_completion

from ai_agent.core.exceptions import LLMProviderError
from ai_agent.core.orchestrator import Agent, split_words
from ai_agent.models.common import Completion, Message, StreamChunk, ToolCall


@pytest.fixture
def make_agent(registry, session_manager):
    def _make(completions=None, stream_chunks=None, max_iterations=10):
        llm = ScriptedLLM(completions, stream_chunks)
        agent = Agent(
            llm=llm,
            registry=registry,
            session_manager=session_manager,
            max_iterations=max_iterations,
            stream_word_delay=0,
        )
        return agent, llm

    return _make


def calculator_script():
    return [
        tool_call_completion("calculator", {"expression": "15 * 23 + 100"}),
        text_completion("El resultado de 15 * 23 + 100 es 445."),
    ]


async def collect(stream):
    return [event async for event in stream]


def tool_messages(request):
    return [m for m in request["messages"] if m["role"] == "tool"]


class TestProcessMessage:
    async def test_calculator_scenario(self, make_agent, session_manager):
        agent, llm = make_agent(calculator_script())

        result = await agent.process_message("Calcula 15 * 23 + 100", user_id="alice")

        assert result.success is True
        assert result.iterations == 2
        assert result.tools_used == ["calculator"]
        assert "445" in result.response
        assert result.usage["total_tokens"] == 30

        observation = json.loads(tool_messages(llm.requests[1])[0]["content"])
        assert observation == {"success": True, "result": 445, "expression": "15 * 23 + 100"}
        assert tool_messages(llm.requests[1])[0]["tool_call_id"] == "call_1"

        history = await session_manager.get_history("alice")
        assert history == [
            {"role": "user", "content": "Calcula 15 * 23 + 100"},
            {"role": "assistant", "content": result.response},
        ]

    async def test_tools_are_offered_on_every_iteration(self, make_agent):
        agent, llm = make_agent(calculator_script())
        await agent.process_message("Calcula 15 * 23 + 100", user_id="alice")
        for request in llm.requests:
            assert {tool["function"]["name"] for tool in request["tools"]} == {
                "calculator", "weather", "search", "contacts", "bizum",
            }

    async def test_default_system_prompt_lists_tools_and_examples(self, make_agent):
        agent, llm = make_agent([text_completion("Hola")])
        await agent.process_message("Hola", user_id="alice")

        system = llm.requests[0]["messages"][0]
        assert system["role"] == "system"
        for name in ("calculator", "weather", "search", "contacts", "bizum"):
            assert f"`{name}`" in system["content"]
        assert "Calcula 15 * 23 + 100" in system["content"]

    async def test_custom_system_prompt(self, make_agent):
        agent, llm = make_agent([text_completion("Hola")])
        await agent.process_message("Hola", user_id="alice", system_prompt="Be brief.")
        assert llm.requests[0]["messages"][0] == {"role": "system", "content": "Be brief."}

    async def test_history_is_sent_to_the_model(self, make_agent, session_manager):
        await session_manager.append_exchange("alice", "Me llamo Ana", "Encantado, Ana")
        agent, llm = make_agent([text_completion("Te llamas Ana")])

        await agent.process_message("¿Cómo me llamo?", user_id="alice")

        roles = [m["role"] for m in llm.requests[0]["messages"]]
        assert roles == ["system", "user", "assistant", "user"]

    async def test_user_id_is_generated_when_missing(self, make_agent):
        agent, _ = make_agent([text_completion("Hola")])
        result = await agent.process_message("Hola")
        assert result.user_id.startswith("user_")

    async def test_max_iterations(self, make_agent, session_manager):
        script = [tool_call_completion("calculator", {"expression": "1 + 1"}, call_id=f"c{i}") for i in range(3)]
        agent, llm = make_agent(script, max_iterations=3)

        result = await agent.process_message("loop", user_id="alice")

        assert result.success is False
        assert result.error == "Maximum iterations reached"
        assert result.iterations == 3
        assert result.tools_used == ["calculator"]
        assert len(llm.requests) == 3
        assert await session_manager.get_history("alice") == []

    async def test_empty_answer_ends_the_loop(self, make_agent):
        agent, llm = make_agent([text_completion(None)])
        result = await agent.process_message("?", user_id="alice")
        assert result.success is False
        assert result.iterations == 1
        assert len(llm.requests) == 1

    async def test_provider_failure(self, make_agent, session_manager):
        agent, _ = make_agent([LLMProviderError("Error from LLM provider: timeout")])
        result = await agent.process_message("Hola", user_id="alice")
        assert result.success is False
        assert "timeout" in result.error
        assert await session_manager.get_history("alice") == []

    async def test_unknown_tool_is_reported_to_the_model(self, make_agent):
        agent, llm = make_agent([tool_call_completion("teleport", {}), text_completion("No puedo hacerlo")])
        result = await agent.process_message("Teletranspórtame", user_id="alice")

        assert result.success is True
        assert result.tools_used == ["teleport"]
        observation = json.loads(tool_messages(llm.requests[1])[0]["content"])
        assert observation == {"success": False, "error": "Tool not found: teleport"}

    async def test_missing_parameter_is_reported_to_the_model(self, make_agent):
        agent, llm = make_agent([tool_call_completion("weather", {}), text_completion("¿Qué ciudad?")])
        await agent.process_message("¿Qué tiempo hace?", user_id="alice")
        observation = json.loads(tool_messages(llm.requests[1])[0]["content"])
        assert observation["error"] == "Missing required parameter: city"

    async def test_malformed_arguments_are_reported_to_the_model(self, make_agent):
        broken = Completion(
            message=Message(
                role="assistant",
                tool_calls=[ToolCall(id="call_1", function={"name": "calculator", "arguments": "{oops"})],
            ),
            finish_reason="tool_calls",
        )
        agent, llm = make_agent([broken, text_completion("Perdón")])
        result = await agent.process_message("Calcula", user_id="alice")
        assert result.success is True
        assert json.loads(tool_messages(llm.requests[1])[0]["content"])["success"] is False

    async def test_several_calls_in_one_turn(self, make_agent):
        both = Completion(
            message=Message(
                role="assistant",
                tool_calls=[
                    ToolCall(id="a", function={"name": "calculator", "arguments": '{"expression": "1 + 1"}'}),
                    ToolCall(id="b", function={"name": "calculator", "arguments": '{"expression": "2 * 3"}'}),
                ],
            ),
            finish_reason="tool_calls",
        )
        agent, llm = make_agent([both, text_completion("2 y 6")])

        result = await agent.process_message("Calcula", user_id="alice")

        observations = tool_messages(llm.requests[1])
        assert [m["tool_call_id"] for m in observations] == ["a", "b"]
        assert [json.loads(m["content"])["result"] for m in observations] == [2, 6]
        assert result.tools_used == ["calculator"]
        assert result.iterations == 2


class TestBizumFlow:
    async def test_proposal_waits_for_confirmation(self, make_agent, registry, session_manager):
        agent, llm = make_agent([
            tool_call_completion("bizum", {"action": "send", "amount": 25, "recipient": "612345678"}),
        ])

        result = await agent.process_message("Envía 25€ al 612345678", user_id="alice")

        assert result.success is True
        assert result.requires_confirmation is True
        assert result.confirmation_id in registry.get("bizum").confirmations
        assert "25.00€" in result.response
        assert len(llm.requests) == 1

        history = await session_manager.get_history("alice")
        assert history[-1] == {"role": "assistant", "content": result.response}

        confirmed = await agent.confirm_transaction("alice", result.confirmation_id, True)
        assert confirmed["success"] is True
        assert len(await registry.get("bizum").list_transactions("alice")) == 1
        assert len(await session_manager.get_history("alice")) == 4

    async def test_failed_confirmation_is_not_recorded(self, make_agent, session_manager):
        agent, _ = make_agent()
        result = await agent.confirm_transaction("alice", "conf_missing", True)
        assert result["error_code"] == "confirmation_not_found"
        assert await session_manager.get_history("alice") == []

    async def test_amount_over_the_limit_creates_nothing(self, make_agent, registry):
        agent, llm = make_agent([
            tool_call_completion("bizum", {"action": "send", "amount": 2000, "recipient": "Juan"}),
            text_completion("El límite máximo por transacción es 1000€."),
        ])

        result = await agent.process_message("Envía 2000€ a Juan", user_id="alice")

        assert result.success is True
        assert not result.requires_confirmation
        observation = json.loads(tool_messages(llm.requests[1])[0]["content"])
        assert observation["error_code"] == "invalid_amount"
        assert len(registry.get("bizum").confirmations) == 0
        assert await registry.get("bizum").list_transactions("alice") == []

    async def test_ambiguous_contact_needs_disambiguation(self, make_agent):
        agent, _ = make_agent([
            tool_call_completion("bizum", {"action": "lookup", "recipient": "Daniel"}),
            text_completion("Tienes dos contactos llamados Daniel. ¿Cuál de ellos?"),
        ])
        result = await agent.process_message("Envía 10€ a Daniel", user_id="alice")
        assert result.needs_disambiguation is True
        assert result.requires_confirmation is None


class TestProcessMessageStream:
    async def test_calculator_scenario(self, make_agent, session_manager):
        agent, _ = make_agent(calculator_script())

        events = await collect(agent.process_message_stream("Calcula 15 * 23 + 100", user_id="alice"))

        assert events[0].type == "tool_execution"
        assert events[0].tools == ["calculator"]
        assert events[0].iteration == 1
        content = "".join(e.content for e in events if e.type == "content")
        final = events[-1]
        assert final.type == "complete"
        assert final.is_complete is True
        assert final.response == content == "El resultado de 15 * 23 + 100 es 445."
        assert final.iterations == 2
        assert final.tools_used == ["calculator"]
        assert all(e.user_id == "alice" for e in events)
        assert [e.is_terminal for e in events].count(True) == 1
        assert len(await session_manager.get_history("alice")) == 2

    async def test_parity_with_atomic_mode(self, make_agent):
        atomic_agent, _ = make_agent(calculator_script())
        stream_agent, _ = make_agent(calculator_script())

        result = await atomic_agent.process_message("Calcula 15 * 23 + 100", user_id="alice")
        events = await collect(stream_agent.process_message_stream("Calcula 15 * 23 + 100", user_id="bob"))

        assert events[-1].response == result.response
        assert set(events[-1].tools_used) == set(result.tools_used)
        assert events[-1].iterations == result.iterations

    async def test_bizum_confirmation_events(self, make_agent):
        agent, _ = make_agent([
            tool_call_completion("bizum", {"action": "send", "amount": 25, "recipient": "612987654", "concept": "Cena"}),
        ])

        events = await collect(agent.process_message_stream("Envía 25€ a Pedro", user_id="alice"))

        assert [e.type for e in events] == ["tool_execution", "bizum_confirmation", "complete"]
        confirmation = events[1]
        assert confirmation.recipient == "Pedro Martínez"
        assert confirmation.amount == 25
        assert confirmation.concept == "Cena"
        assert confirmation.is_complete is False
        assert events[2].requires_confirmation is True
        assert events[2].confirmation_id == confirmation.confirmation_id

    async def test_second_phase_streams_from_the_provider(self, make_agent, session_manager):
        chunks = [
            StreamChunk(type="content", content="Hola"),
            StreamChunk(type="content", content=" mundo"),
            StreamChunk(type="done", finish_reason="stop"),
        ]
        agent, llm = make_agent([text_completion(None)], chunks)

        events = await collect(agent.process_message_stream("Hola", user_id="alice"))

        assert [e.type for e in events] == ["response_start", "content", "content", "complete"]
        assert events[-1].response == "Hola mundo"
        assert llm.stream_closed is True
        assert (await session_manager.get_history("alice"))[-1]["content"] == "Hola mundo"

    async def test_stream_without_done_is_an_error(self, make_agent, session_manager):
        agent, _ = make_agent([text_completion(None)], [StreamChunk(type="content", content="Hola")])

        events = await collect(agent.process_message_stream("Hola", user_id="alice"))

        assert events[-1].type == "error"
        assert events[-1].error == "Stream ended unexpectedly"
        assert events[-1].is_complete is True
        assert await session_manager.get_history("alice") == []

    async def test_provider_failure_is_a_single_error_event(self, make_agent):
        agent, _ = make_agent([LLMProviderError("Error from LLM provider: down")])
        events = await collect(agent.process_message_stream("Hola", user_id="alice"))
        assert len(events) == 1
        assert events[0].type == "error"
        assert "down" in events[0].error

    async def test_unexpected_failure_ends_with_an_error_event(self, make_agent):
        agent, _ = make_agent([RuntimeError("secret internals")])
        events = await collect(agent.process_message_stream("Hola", user_id="alice"))

        assert len(events) == 1
        assert events[0].type == "error"
        assert events[0].is_complete is True
        assert "secret internals" not in events[0].error

    async def test_failure_after_content_still_ends_the_run(self, make_agent, session_manager, monkeypatch):
        agent, _ = make_agent([text_completion("Hola Ana")])

        async def failing_append(*args, **kwargs):
            raise RuntimeError("storage exploded")

        monkeypatch.setattr(session_manager, "append_exchange", failing_append)
        events = await collect(agent.process_message_stream("Hola", user_id="alice"))

        assert [e.type for e in events] == ["content", "content", "error"]
        assert events[-1].user_id == "alice"

    async def test_max_iterations_is_an_error_event(self, make_agent):
        script = [tool_call_completion("calculator", {"expression": "1 + 1"}, call_id=f"c{i}") for i in range(2)]
        agent, _ = make_agent(script, max_iterations=2)

        events = await collect(agent.process_message_stream("loop", user_id="alice"))

        assert [e.type for e in events] == ["tool_execution", "tool_execution", "error"]
        assert events[-1].error == "Maximum iterations reached"
        assert events[-1].tools_used == ["calculator"]

    async def test_consumer_may_stop_early(self, make_agent, session_manager):
        chunks = [StreamChunk(type="content", content=f"w{i} ") for i in range(5)]
        chunks.append(StreamChunk(type="done", finish_reason="stop"))
        agent, llm = make_agent([text_completion(None)], chunks)

        stream = agent.process_message_stream("Hola", user_id="alice")
        received = []
        async for event in stream:
            received.append(event)
            if event.type == "content":
                break
        await stream.aclose()

        assert [e.type for e in received] == ["response_start", "content"]
        assert llm.stream_closed is True
        assert await session_manager.get_history("alice") == []

    async def test_events_serialize_with_camel_case_keys(self, make_agent):
        agent, _ = make_agent(calculator_script())
        events = await collect(agent.process_message_stream("Calcula 15 * 23 + 100", user_id="alice"))
        payload = events[-1].to_payload()
        assert payload["userId"] == "alice"
        assert payload["isComplete"] is True
        assert payload["toolsUsed"] == ["calculator"]


class TestSplitWords:
    @pytest.mark.parametrize("text", ["Hola mundo", "uno", "  espacios  dobles ", ""])
    def test_chunks_rebuild_the_text(self, text):
        assert "".join(split_words(text)) == text


class TestCatalog:
    def test_register_and_unregister_tools(self, make_agent):
        from ai_agent.tools.calculator_tool import CalculatorTool

        agent, _ = make_agent()
        assert agent.unregister_tool("calculator") is True
        assert "calculator" not in [tool["name"] for tool in agent.get_available_tools()]
        agent.register_tool(CalculatorTool())
        assert "calculator" in [tool["name"] for tool in agent.get_available_tools()]
