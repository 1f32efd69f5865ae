# ai_agent/core/exceptions.py
# Error types raised across the agent. Expected tool failures are never raised;
# they travel back to the model as {"success": False, "error": ...} payloads.
# Version: 0.1.0


class AgentError(Exception):
    """Base class for every error raised by the agent package."""


class ToolNotFoundError(AgentError):
    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class MissingParameterError(AgentError):
    def __init__(self, parameter: str):
        super().__init__(f"Missing required parameter: {parameter}")
        self.parameter = parameter


class LLMProviderError(AgentError):
    """The completion provider failed (network, timeout, non-2xx response)."""


class StreamEndedUnexpectedlyError(AgentError):
    def __init__(self, message: str = "Stream ended unexpectedly"):
        super().__init__(message)


class ConfirmationError(AgentError):
    error_code = "confirmation_error"

    def __init__(self, confirmation_id: str, message: str):
        super().__init__(message)
        self.confirmation_id = confirmation_id


class ConfirmationNotFoundError(ConfirmationError):
    error_code = "confirmation_not_found"

    def __init__(self, confirmation_id: str):
        super().__init__(
            confirmation_id,
            f"No hay ninguna confirmación pendiente con id '{confirmation_id}'",
        )


class ConfirmationExpiredError(ConfirmationError):
    error_code = "confirmation_expired"

    def __init__(self, confirmation_id: str):
        super().__init__(
            confirmation_id,
            f"La confirmación '{confirmation_id}' ha caducado. Vuelve a solicitar el Bizum.",
        )
