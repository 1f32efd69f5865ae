# ai_agent/core/tool_registry.py
# Keeps the catalogue of available tools and dispatches validated calls to them.
# Version: 2.0.0

from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING
from ai_agent.core.exceptions import ToolNotFoundError
from ai_agent.tools.base_tool import BaseTool
from ai_agent.utils.logger import console

if TYPE_CHECKING:
    from ai_agent.services.user_store import UserStore


# Arguments the agent injects itself; the model never gets to choose them.
RESERVED_ARGUMENTS = ("user_id", "userId")


class ToolRegistry:
    """
    A class to register, look up and execute tools by name.
    """
    def __init__(self):
        self.tools: Dict[str, BaseTool] = {}

    def register(self, tool: BaseTool):
        if not getattr(tool, "name", None):
            raise ValueError("Tool must have a name")
        if tool.name in self.tools:
            console.warning(f"Tool '{tool.name}' is being overwritten")
        self.tools[tool.name] = tool
        console.info(f"Successfully registered tool: '{tool.name}'")

    def unregister(self, tool_name: str) -> bool:
        if self.tools.pop(tool_name, None) is None:
            return False
        console.info(f"Unregistered tool: '{tool_name}'")
        return True

    def get(self, tool_name: str) -> Optional[BaseTool]:
        return self.tools.get(tool_name)

    def has(self, tool_name: str) -> bool:
        return tool_name in self.tools

    def get_all(self) -> List[BaseTool]:
        return list(self.tools.values())

    def get_schemas(self) -> List[Dict[str, Any]]:
        return [tool.get_schema() for tool in self.tools.values()]

    def get_definitions(self) -> List[Dict[str, Any]]:
        """Returns the list of all tool definitions for the LLM."""
        if not self.tools:
            return []
        return [tool.get_definition() for tool in self.tools.values()]

    async def execute(self, tool_name: str, args: Dict[str, Any], user_id: str) -> Dict[str, Any]:
        """
        Executes a tool by its name on behalf of 'user_id'.

        Raises ToolNotFoundError for unknown names and MissingParameterError when
        a required argument is absent. Exceptions raised by the tool itself
        propagate to the caller.
        """
        tool = self.tools.get(tool_name)
        if tool is None:
            console.error(f"Attempted to execute unknown tool: {tool_name}")
            raise ToolNotFoundError(tool_name)

        call_args = {key: value for key, value in args.items() if key not in RESERVED_ARGUMENTS}
        tool.validate_args(call_args)

        accepted = set(tool.parameter_names)
        ignored = sorted(set(call_args) - accepted)
        if ignored:
            console.warning(f"Ignoring unknown arguments for '{tool_name}': {ignored}")
        call_args = {key: value for key, value in call_args.items() if key in accepted}

        console.info(f"Executing tool '{tool_name}' for user '{user_id}' with args: {call_args}")
        try:
            result = await tool.execute(user_id=user_id, **call_args)
        except Exception:
            console.exception(f"Tool execution failed: {tool_name}")
            raise
        console.success(f"Tool executed: {tool_name}")
        return result


def build_tool_registry(store_factory: Optional[Callable[[str], "UserStore"]] = None) -> ToolRegistry:
    """
    Builds the registry with the built-in tools.

    'store_factory' maps a namespace to a UserStore; it defaults to the Redis
    store and exists so the durable tools can be pointed at another client.
    """
    from ai_agent.services.user_store import UserStore
    from ai_agent.tools.bizum_tool import BizumTool
    from ai_agent.tools.calculator_tool import CalculatorTool
    from ai_agent.tools.contacts_tool import ContactsTool
    from ai_agent.tools.search_web_tool import SearchWebTool
    from ai_agent.tools.weather_tool import WeatherTool

    make_store = store_factory or UserStore
    contacts = ContactsTool(store=make_store("contacts"))

    registry = ToolRegistry()
    registry.register(CalculatorTool())
    registry.register(WeatherTool())
    registry.register(SearchWebTool())
    registry.register(contacts)
    registry.register(BizumTool(store=make_store("bizum_transactions"), contacts=contacts))
    console.success(f"Tool registration complete. Found {len(registry.tools)} tools: {list(registry.tools.keys())}")
    return registry
