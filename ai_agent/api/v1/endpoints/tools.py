# The module is to define the API endpoint that lists the available tools.
# Version: 0.1.0

from fastapi import APIRouter, Depends
from ai_agent.core.orchestrator import Agent, get_agent
from ai_agent.models.api_models import ToolsResponse

router = APIRouter()


@router.get("", response_model=ToolsResponse, response_model_by_alias=True)
def list_tools(agent: Agent = Depends(get_agent)):
    """Returns the name, description and parameter schema of every registered tool."""
    return ToolsResponse(tools=agent.get_available_tools())
