# The module is to define the conversation and completion models for the agent.
# Version: 0.2.0

import json
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Literal

Role = Literal["system", "user",
               "assistant", "tool"]


class ToolCall(BaseModel):
    """
    Represents a tool call made by the assistant, including the function name and arguments.
    Attributes:
        id (str): The unique ID for the tool call, used to correlate the result.
        function (dict): The function name and the JSON-encoded arguments.
        type (str): The type of the tool call, e.g., 'function'.
    """
    id: str = Field(..., description="The unique ID for the tool call.")
    function: Dict[str, Any] = Field(..., description="The function name and arguments.")
    type: str = Field(default="function", description="The type of the tool call, e.g., 'function'.")

    @property
    def name(self) -> str:
        return self.function.get("name", "")

    def parse_arguments(self) -> Dict[str, Any]:
        """Decodes the JSON arguments string the model produced."""
        raw = self.function.get("arguments") or "{}"
        if isinstance(raw, dict):
            return dict(raw)
        arguments = json.loads(raw)
        if not isinstance(arguments, dict):
            raise ValueError(f"Tool arguments must be a JSON object, got: {raw!r}")
        return arguments


class Message(BaseModel):
    """
    Represents a message in the conversation, which can be from the system, user, assistant, or tool.
    Attributes:
        role (Role): The role of the message sender (system, user, assistant, or tool).
        content (Optional[str]): The content of the message.
        tool_calls (Optional[List[ToolCall]]): A list of tool calls requested by the assistant.
        tool_call_id (Optional[str]): The ID of the tool call this message is a result of.
    """
    role: Role = Field(..., description="The role of the message sender.")
    content: Optional[str] = Field(default=None, description="The content of the message.")
    tool_calls: Optional[List[ToolCall]] = Field(default=None, description="A list of tool calls requested by the assistant.")
    tool_call_id: Optional[str] = Field(default=None, description="The ID of the tool call this message is a result of.")


class Completion(BaseModel):
    """Normalized answer of one synchronous completion request."""
    message: Message
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None

    @property
    def content(self) -> Optional[str]:
        return self.message.content

    @property
    def tool_calls(self) -> List[ToolCall]:
        return self.message.tool_calls or []

    @property
    def requests_tools(self) -> bool:
        # Tool calls only win when the provider also says it stopped for them.
        return self.finish_reason == "tool_calls" and bool(self.message.tool_calls)


class StreamChunk(BaseModel):
    """One parsed piece of a streamed completion."""
    type: Literal["content", "tool_call", "done"]
    content: Optional[str] = None
    tool_call: Optional[Dict[str, Any]] = None
    finish_reason: Optional[str] = None
