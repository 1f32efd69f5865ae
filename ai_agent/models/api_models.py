# The module is to define the API models for the application.
# Version: 0.2.0

from datetime import datetime
from pydantic import Field
from typing import Any, Dict, List, Optional
from ai_agent.models.agent_models import CamelModel


class ChatRequest(CamelModel):
    """
    Defines the request body for the /v1/chat and /v1/chat/stream endpoints.
    Attributes:
        message (str): The user's text input.
        user_id (Optional[str]): The identity whose session is used; generated when absent.
        system_prompt (Optional[str]): Overrides the default system prompt for this call.
    """
    message: str = Field(..., min_length=1, description="The user's text input.")
    user_id: Optional[str] = Field(default=None, description="The unique ID of the end user.")
    system_prompt: Optional[str] = Field(default=None, description="Optional system prompt override.")


class ConfirmTransactionRequest(CamelModel):
    """
    Defines the request body for the /v1/bizum/confirm endpoint.
    Attributes:
        user_id (str): The user that proposed the Bizum.
        confirmation_id (str): The id returned when the Bizum was proposed.
        confirmed (bool): True to execute the Bizum, False to cancel it.
        signature (Optional[str]): Proof token supplied by the client, if any.
    """
    user_id: str = Field(..., min_length=1)
    confirmation_id: str = Field(..., min_length=1)
    confirmed: bool
    signature: Optional[str] = None


class ConfirmTransactionResponse(CamelModel):
    success: bool
    message: Optional[str] = None
    details: Optional[str] = None
    transaction: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None


class NewSessionResponse(CamelModel):
    """
    Defines the response body for the /v1/session/new endpoint.
    Attributes:
        user_id (str): The unique ID for the newly created session.
        message (str): A message indicating the session has been created successfully.
    """
    user_id: str
    message: str


class HistoryMessage(CamelModel):
    role: str
    content: str


class HistoryResponse(CamelModel):
    success: bool = True
    user_id: str
    history: List[HistoryMessage]


class SessionInfo(CamelModel):
    user_id: str
    last_activity: datetime
    message_count: int
    created_at: Optional[datetime] = None


class SessionListResponse(CamelModel):
    success: bool = True
    sessions: List[SessionInfo]


class StatusResponse(CamelModel):
    success: bool
    message: str


class ToolsResponse(CamelModel):
    success: bool = True
    tools: List[Dict[str, Any]]


class HealthResponse(CamelModel):
    status: str = "healthy"
    agent_name: str
    tools_count: int
    timestamp: datetime
