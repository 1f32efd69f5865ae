# The module is to define the API router for the application.
# Version: 0.2.0

from fastapi import APIRouter
from ai_agent.api.v1.endpoints import bizum, chat, session, tools

api_router = APIRouter()

# Include the session router with a '/session' prefix
api_router.include_router(session.router, prefix="/session", tags=["Session Management"])

# Include the chat router with a '/chat' prefix
api_router.include_router(chat.router, prefix="/chat", tags=["Conversation"])

# Include the bizum router with a '/bizum' prefix
api_router.include_router(bizum.router, prefix="/bizum", tags=["Bizum"])

# Include the tools router with a '/tools' prefix
api_router.include_router(tools.router, prefix="/tools", tags=["Tools"])
