# The module defines what the orchestrator hands back to its callers:
# the result of an atomic run and the events of a streamed run.
# Version: 0.1.0

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting snake_case on input too."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class AgentResult(CamelModel):
    """
    Outcome of one processed user message.
    Attributes:
        success (bool): False on provider errors and when the iteration bound was hit.
        response (str): The final answer, or the confirmation prompt of a pending Bizum.
        user_id (str): The resolved user identity (generated when none was given).
        iterations (int): Completion round trips performed.
        tools_used (List[str]): Deduplicated names of every tool the model invoked.
        requires_confirmation (bool): A Bizum is waiting for the confirm endpoint.
        needs_disambiguation (bool): A contact lookup matched more than one entry.
    """
    success: bool
    user_id: str
    response: Optional[str] = None
    iterations: Optional[int] = None
    tools_used: List[str] = Field(default_factory=list)
    usage: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    needs_disambiguation: Optional[bool] = None
    requires_confirmation: Optional[bool] = None
    confirmation_id: Optional[str] = None


EventType = Literal[
    "tool_execution",
    "bizum_confirmation",
    "response_start",
    "content",
    "complete",
    "error",
]


class AgentEvent(CamelModel):
    """One event of a streamed run. Exactly one 'complete' or 'error' event ends a run."""
    type: EventType
    user_id: Optional[str] = None
    is_complete: bool = False
    iteration: Optional[int] = None
    tools: Optional[List[str]] = None
    content: Optional[str] = None
    response: Optional[str] = None
    iterations: Optional[int] = None
    tools_used: Optional[List[str]] = None
    usage: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    confirmation_id: Optional[str] = None
    recipient: Optional[str] = None
    amount: Optional[float] = None
    concept: Optional[str] = None
    requires_confirmation: Optional[bool] = None
    needs_disambiguation: Optional[bool] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")
