# The module is to define the base class for all tools in the application.
# Version: 0.2.0

from abc import ABC, abstractmethod
from pydantic import BaseModel
from typing import Any, ClassVar, Dict, List, Type
from ai_agent.core.exceptions import MissingParameterError


class BaseTool(ABC):
    """
    Abstract Base Class for all tools.

    This class defines a standard interface that all tools must implement.
    Attributes:
        name (str): The name of the tool, unique within a registry.
        description (str): What the tool does; read by the model to decide on calls.
        args_schema (Type[BaseModel]): A Pydantic model describing the accepted
            arguments. It is exported as the JSON schema offered to the model;
            only the presence of its required fields is checked before execution.
        examples (List[str]): User phrases that should trigger the tool, listed
            in the default system prompt.
    """
    name: str
    description: str
    args_schema: Type[BaseModel]
    examples: ClassVar[List[str]] = []

    @abstractmethod
    async def execute(self, user_id: str, **kwargs) -> Dict[str, Any]:
        """
        The core logic of the tool. This method must be implemented by all subclasses.
        It receives the identity of the user on whose behalf the model is acting.

        Expected failures (bad input, an unavailable external service) must be
        returned as {"success": False, "error": "..."} instead of raised.

        Args:
            user_id: The resolved identity of the current user.
            **kwargs: The arguments for the tool, as sent by the model.

        Returns:
            A JSON-serializable dict that always contains a 'success' boolean.
        """
        pass

    @property
    def parameters(self) -> Dict[str, Any]:
        return self.args_schema.model_json_schema()

    @property
    def parameter_names(self) -> List[str]:
        return list(self.args_schema.model_fields.keys())

    def get_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def get_definition(self) -> Dict[str, Any]:
        """
        Returns the tool's definition as an OpenAI
        function-calling tool definition. This method is inherited by all tools.
        """
        return {
            "type": "function",
            "function": self.get_schema(),
        }

    def validate_args(self, args: Dict[str, Any]) -> bool:
        """Checks that every required parameter is present. Values are not type-checked."""
        for required_param in self.parameters.get("required", []):
            if required_param not in args:
                raise MissingParameterError(required_param)
        return True
