# The module is to define the API endpoints for session management.
# Version: 0.2.0

from datetime import timedelta
from typing import Optional
from fastapi import APIRouter, Depends, Query
from ai_agent.core.orchestrator import Agent, get_agent
from ai_agent.models.api_models import (
    HistoryMessage,
    HistoryResponse,
    NewSessionResponse,
    SessionInfo,
    SessionListResponse,
    StatusResponse,
)
from ai_agent.utils.logger import console

router = APIRouter()


@router.post("/new", response_model=NewSessionResponse, response_model_by_alias=True)
async def create_new_session(user_id: Optional[str] = Query(default=None, alias="userId"),
                             agent: Agent = Depends(get_agent)):
    """
    Initializes a new session and returns its user ID.
    """
    user_id = await agent.create_session(user_id)
    return NewSessionResponse(user_id=user_id, message="New session created successfully.")


@router.get("", response_model=SessionListResponse, response_model_by_alias=True)
async def list_sessions(agent: Agent = Depends(get_agent)):
    """Every stored session, most recent activity first."""
    sessions = await agent.list_all()
    return SessionListResponse(sessions=[SessionInfo(**summary.model_dump()) for summary in sessions])


@router.get("/active", response_model=SessionListResponse, response_model_by_alias=True)
async def list_active_sessions(minutes: int = Query(default=60, ge=1),
                               agent: Agent = Depends(get_agent)):
    """Sessions with activity in the last 'minutes' minutes."""
    sessions = await agent.list_active(timedelta(minutes=minutes))
    return SessionListResponse(sessions=[SessionInfo(**summary.model_dump()) for summary in sessions])


@router.get("/{user_id}/history", response_model=HistoryResponse, response_model_by_alias=True)
async def get_history(user_id: str, agent: Agent = Depends(get_agent)):
    history = await agent.get_history(user_id)
    return HistoryResponse(user_id=user_id, history=[HistoryMessage(**entry) for entry in history])


@router.post("/{user_id}/clear", response_model=StatusResponse, response_model_by_alias=True)
async def clear_history(user_id: str, agent: Agent = Depends(get_agent)):
    await agent.clear_history(user_id)
    return StatusResponse(success=True, message="Conversation history cleared")


@router.delete("/{user_id}", response_model=StatusResponse, response_model_by_alias=True)
async def delete_session(user_id: str, agent: Agent = Depends(get_agent)):
    """
    Removes the session and its history from Redis.
    """
    deleted = await agent.delete_session(user_id)
    if not deleted:
        console.warning(f"Delete requested for unknown session '{user_id}'.")
        return StatusResponse(success=False, message="Session not found")
    return StatusResponse(success=True, message="Session deleted")
