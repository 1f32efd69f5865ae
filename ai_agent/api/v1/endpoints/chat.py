# The module is to define the API endpoints for chat interactions.
# Version: 0.2.0

from typing import AsyncIterator
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from ai_agent.core.orchestrator import Agent, get_agent
from ai_agent.models.agent_models import AgentResult
from ai_agent.models.api_models import ChatRequest
from ai_agent.utils.logger import console

router = APIRouter()


@router.post("", response_model=AgentResult, response_model_exclude_none=True, response_model_by_alias=True)
async def chat(request: ChatRequest, agent: Agent = Depends(get_agent)):
    """
    Handles a single turn in a conversation and returns the whole answer.
    """
    console.info(f"Received chat request for user_id: {request.user_id}")
    try:
        result = await agent.process_message(request.message, request.user_id, request.system_prompt)
    except Exception as e:
        console.exception("Unexpected error while processing a chat request")
        raise HTTPException(status_code=500, detail="An internal error occurred. Please try again.") from e

    if result.success:
        console.success(f"Sending response for user_id: {result.user_id}")
    return result


def _format_sse(payload: str) -> str:
    return f"data: {payload}\n\n"


async def _event_stream(agent: Agent, request: ChatRequest) -> AsyncIterator[str]:
    try:
        async for event in agent.process_message_stream(request.message, request.user_id, request.system_prompt):
            yield _format_sse(event.model_dump_json(by_alias=True, exclude_none=True))
            if event.is_terminal:
                return
    except Exception:
        console.exception("Unexpected error while streaming a chat response")
        yield _format_sse('{"type":"error","error":"An internal error occurred.","isComplete":true}')


@router.post("/stream")
async def chat_stream(request: ChatRequest, agent: Agent = Depends(get_agent)):
    """
    Same as /chat, but answers with server-sent events: one 'data: <json>'
    line per agent event, ending with a 'complete' or 'error' event.
    """
    console.info(f"Received streaming chat request for user_id: {request.user_id}")
    return StreamingResponse(
        _event_stream(agent, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )
