# ai_agent/services/llm_connector.py
# Talks to the OpenAI-compatible completion provider and normalizes its
# answers (atomic and streamed) into the shapes the orchestrator consumes.
# Version: 0.2.0

import json
from functools import lru_cache
from openai import AsyncOpenAI, APIError, OpenAIError
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from ai_agent.core.config import get_settings
from ai_agent.core.exceptions import LLMProviderError
from ai_agent.models.common import Completion, Message, StreamChunk
from ai_agent.utils.logger import console


@lru_cache
def get_llm_client_and_model() -> Tuple[AsyncOpenAI, str]:
    """
    Acts as a factory to get the currently configured LLM client and model name.

    This function reads the LLM_PROVIDER from the settings and returns the
    corresponding client instance and model string.

    Raises:
        ValueError: If the configured LLM_PROVIDER is not supported.

    Returns:
        A tuple containing the active AsyncOpenAI client and the model name.
    """
    settings = get_settings()
    providers = {
        "OPENAI": (settings.OPENAI_API_KEY, settings.OPENAI_BASE_URL, settings.OPENAI_MODEL),
        "DEEPSEEK_CHAT": (settings.DEEPSEEK_CHAT_API_KEY, settings.DEEPSEEK_CHAT_BASE_URL, settings.DEEPSEEK_CHAT_MODEL),
    }
    api_key, base_url, model = providers.get(settings.LLM_PROVIDER, (None, None, None))
    if not api_key or not model:
        raise ValueError(f"Unsupported or misconfigured LLM provider: {settings.LLM_PROVIDER}")

    client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=settings.OPENAI_TIMEOUT)
    return client, model


def _describe_api_error(error: APIError) -> str:
    message = str(error.body) if error.body is not None else str(error) or "Unknown API Error"
    if isinstance(error.body, dict):
        message = error.body.get("message", message)
    return message


class LLMConnector:
    """
    Adapter around the chat-completions API.

    `complete` returns one normalized Completion; `stream` yields StreamChunk
    objects and never offers tools to the model.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None,
                 max_tokens: Optional[int] = None, temperature: Optional[float] = None):
        settings = get_settings()
        if client is None or model is None:
            default_client, default_model = get_llm_client_and_model()
            client = client or default_client
            model = model or default_model
        self._client = client
        self.model = model
        self.max_tokens = max_tokens if max_tokens is not None else settings.OPENAI_MAX_TOKENS
        self.temperature = temperature if temperature is not None else settings.OPENAI_TEMPERATURE

    @staticmethod
    def format_messages(user_message: str, system_prompt: Optional[str] = None,
                        history: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(history or [])
        messages.append({"role": "user", "content": user_message})
        return messages

    def _request_params(self, messages: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    async def complete(self, messages: List[Dict[str, Any]],
                       tools: Optional[List[Dict[str, Any]]] = None) -> Completion:
        request_params = self._request_params(messages)
        if tools:
            request_params["tools"] = tools
            request_params["tool_choice"] = "auto"

        console.info(f"Sending request to LLM ({self.model}, {len(messages)} messages, {len(tools or [])} tools).")
        try:
            response = await self._client.chat.completions.create(**request_params)
        except APIError as e:
            message = _describe_api_error(e)
            console.error(f"An API error occurred: {message}")
            raise LLMProviderError(f"Error from LLM provider: {message}") from e
        except OpenAIError as e:
            console.exception("An unexpected error occurred while calling the LLM.")
            raise LLMProviderError(f"Error from LLM provider: {e}") from e

        if not response.choices:
            raise LLMProviderError("The LLM provider returned no choices.")

        choice = response.choices[0]
        usage = response.usage.model_dump() if response.usage is not None else None
        console.info(f"Received LLM response (finish_reason={choice.finish_reason}).")
        return Completion(
            message=Message.model_validate(choice.message.model_dump()),
            finish_reason=choice.finish_reason,
            usage=usage,
        )

    async def stream(self, messages: List[Dict[str, Any]]) -> AsyncIterator[StreamChunk]:
        console.info(f"Starting streaming request to LLM ({self.model}, {len(messages)} messages).")
        try:
            stream = await self._client.chat.completions.create(**self._request_params(messages), stream=True)
        except APIError as e:
            message = _describe_api_error(e)
            console.error(f"An API error occurred while opening the stream: {message}")
            raise LLMProviderError(f"Error from LLM provider: {message}") from e
        except OpenAIError as e:
            raise LLMProviderError(f"Error from LLM provider: {e}") from e

        try:
            async for raw_chunk in stream:
                for chunk in self.parse_stream_chunk(raw_chunk):
                    yield chunk
        except OpenAIError as e:
            raise LLMProviderError(f"LLM stream failed: {e}") from e
        finally:
            await stream.close()

    @staticmethod
    def parse_stream_chunk(raw_chunk: Any) -> List[StreamChunk]:
        """
        Normalizes one raw streaming chunk into zero or more StreamChunks.

        Accepts SDK chunk objects, plain dicts, or raw server-sent-event text
        ('data: {...}' lines). Anything that cannot be parsed is dropped.
        """
        if isinstance(raw_chunk, (bytes, bytearray)):
            raw_chunk = raw_chunk.decode("utf-8", errors="ignore")

        if isinstance(raw_chunk, str):
            parsed: List[StreamChunk] = []
            for line in raw_chunk.splitlines():
                line = line.strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    parsed.append(StreamChunk(type="done", finish_reason="stop"))
                    continue
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    continue
                parsed.extend(LLMConnector._parse_payload(payload))
            return parsed

        if hasattr(raw_chunk, "model_dump"):
            raw_chunk = raw_chunk.model_dump()
        if isinstance(raw_chunk, dict):
            return LLMConnector._parse_payload(raw_chunk)
        return []

    @staticmethod
    def _parse_payload(payload: Dict[str, Any]) -> List[StreamChunk]:
        try:
            choices = payload.get("choices") or []
            if not choices:
                return []
            choice = choices[0]
            delta = choice.get("delta") or {}
            parsed: List[StreamChunk] = []
            if delta.get("content"):
                parsed.append(StreamChunk(type="content", content=delta["content"]))
            for tool_call in delta.get("tool_calls") or []:
                parsed.append(StreamChunk(type="tool_call", tool_call=tool_call))
            if choice.get("finish_reason"):
                parsed.append(StreamChunk(type="done", finish_reason=choice["finish_reason"]))
            return parsed
        except (AttributeError, TypeError, ValueError):
            return []
