# The module is to define the SearchWebTool that uses the Tavily AI Search API.
# Version: 0.2.0

import asyncio
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Type
from .base_tool import BaseTool
from ai_agent.utils.logger import console
from ai_agent.core.config import get_settings
from tavily import TavilyClient

MAX_SEARCH_RESULTS = 10


class SearchWebInput(BaseModel):
    """
    Input model for the SearchWebTool.
    Attributes:
        query (str): The search query to look up on the web.
        max_results (int): How many results to return (at most 10).
    """
    query: str = Field(..., description="Search query to look up information. Be specific and descriptive.")
    max_results: int = Field(default=5, description="Maximum number of results to return (default: 5)")


class SearchWebTool(BaseTool):
    """
    Uses the Tavily AI Search API to perform web searches and find
    up-to-date information.
    """
    name: str = "search"
    description: str = "Searches the web for information using a search query. " \
    "Good for finding real-time or specific information."
    args_schema: Type[BaseModel] = SearchWebInput
    examples = [
        "Search for latest AI news",
        "Busca noticias sobre el Real Madrid",
    ]

    def __init__(self, client: Optional[TavilyClient] = None):
        super().__init__()
        self._tavily_client = client

    def _get_client(self) -> Optional[TavilyClient]:
        if self._tavily_client is None:
            api_key = get_settings().TAVILY_API_KEY
            if not api_key:
                return None
            self._tavily_client = TavilyClient(api_key=api_key)
        return self._tavily_client

    async def execute(self, user_id: str, query: str, max_results: int = 5) -> Dict[str, Any]:
        """
        Executes the web search using the Tavily client and formats the results.
        Args:
            query (str): The search query to look up on the web.
            max_results (int): Requested number of results, capped at 10.
        Returns:
            dict: {'success', 'query', 'results': [{'title', 'link', 'snippet'}]}.
        """
        client = self._get_client()
        if client is None:
            return {
                "success": False,
                "error": "Search API credentials not configured. Set TAVILY_API_KEY environment variable.",
                "query": query,
            }

        try:
            limit = max(1, min(int(max_results), MAX_SEARCH_RESULTS))
        except (TypeError, ValueError):
            limit = 5

        console.info(f"Executing tool '{self.name}' with query: '{query}'")
        try:
            # The Tavily client is synchronous; keep the event loop free while it works.
            response = await asyncio.to_thread(
                client.search,
                query=query,
                search_depth="advanced",
                max_results=limit,
            )
        except Exception as e:
            console.exception(f"An error occurred during Tavily search for query: '{query}'")
            return {"success": False, "error": f"An error occurred while executing the search: {e}", "query": query}

        console.success(f"Tool '{self.name}' executed successfully.")
        return {"success": True, "query": query, "results": self._format_results(response)[:limit]}

    def _format_results(self, response: Dict) -> List[Dict[str, str]]:
        """
        Helper function to reshape the Tavily response into title/link/snippet items.
        Args:
            response (Dict): The JSON response from the Tavily search.
        Returns:
            list: One dict per result.
        """
        return [
            {
                "title": result.get("title", "N/A"),
                "link": result.get("url", "N/A"),
                "snippet": result.get("content", "N/A"),
            }
            for result in response.get("results", [])
        ]
