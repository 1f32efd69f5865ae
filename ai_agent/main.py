# The module provides the FastAPI application that serves the agent over HTTP.
# Version: 0.2.0

from fastapi import Depends, FastAPI
from ai_agent.api.v1.api import api_router
from ai_agent.core.config import get_settings
from ai_agent.core.orchestrator import Agent, get_agent
from ai_agent.models.api_models import HealthResponse
from ai_agent.models.domain import utcnow
from ai_agent.utils.logger import console

settings = get_settings()
console.set_level(settings.LOG_LEVEL)

app = FastAPI(
    title="AI Agent",
    version="1.0.0",
    description="A conversational agent with calculator, weather, search, contacts and Bizum tools.",
)


@app.get("/", summary="Health Check", tags=["Status"])
def read_root():
    """Root endpoint to check if the service is alive."""
    console.info("Health check endpoint was hit.")
    return {"message": f"{settings.AGENT_NAME} is alive and running!"}


@app.get("/v1/health", response_model=HealthResponse, response_model_by_alias=True, tags=["Status"])
def health(agent: Agent = Depends(get_agent)):
    return HealthResponse(agent_name=agent.agent_name, tools_count=len(agent.registry.tools), timestamp=utcnow())


# Include the v1 router with a global '/v1' prefix
app.include_router(api_router, prefix="/v1")
