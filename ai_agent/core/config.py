# The module is to define the configuration settings for the agent.
# Version: 0.2.0

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    """
    The Settings class defines the configuration settings for the agent.
    It inherits from BaseSettings, which loads environment variables (and the
    .env file) and provides type validation for the settings.
    Attributes:
        LLM_PROVIDER (str): The name of the LLM provider to use.
        OPENAI_API_KEY (str): API key for the OpenAI-compatible endpoint.
        OPENAI_MODEL (str): Model name for the OpenAI-compatible endpoint.
        OPENAI_BASE_URL (str): Base URL for the OpenAI-compatible endpoint.
        DEEPSEEK_CHAT_API_KEY (str): API key for DeepSeek Chat.
        DEEPSEEK_CHAT_MODEL (str): Model name for DeepSeek Chat.
        DEEPSEEK_CHAT_BASE_URL (str): Base URL for DeepSeek Chat API.
        AGENT_MAX_ITERATIONS (int): Upper bound of model round trips per message.
        SESSION_HISTORY_LIMIT (int): Number of history entries kept per user.
        REDIS_URL (str): Connection URL of the durable per-user store.
        BIZUM_CONFIRMATION_TTL (int): Seconds a pending Bizum stays confirmable.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # LLM Provider Switch
    LLM_PROVIDER: str = "OPENAI"

    # OPENAI
    OPENAI_API_KEY: str
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MAX_TOKENS: int = 4000
    OPENAI_TEMPERATURE: float = 0.7
    OPENAI_TIMEOUT: float = 60.0

    # DEEPSEEK_CHAT
    DEEPSEEK_CHAT_API_KEY: Optional[str] = None
    DEEPSEEK_CHAT_MODEL: str = "deepseek-chat"
    DEEPSEEK_CHAT_BASE_URL: str = "https://api.deepseek.com/v1"

    # AGENT
    AGENT_NAME: str = "AIAgent"
    AGENT_DESCRIPTION: str = "A powerful AI agent with tools"
    AGENT_MAX_ITERATIONS: int = 10
    STREAM_WORD_DELAY: float = 0.05
    SESSION_HISTORY_LIMIT: int = 20

    # REDIS
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "ai_agent"

    # OPENWEATHER
    OPENWEATHER_API_KEY: Optional[str] = None

    # TAVILY_SEARCH
    TAVILY_API_KEY: Optional[str] = None

    # BIZUM
    BIZUM_MIN_AMOUNT: float = 0.01
    BIZUM_MAX_AMOUNT: float = 1000.0
    BIZUM_CONFIRMATION_TTL: int = 300
    BIZUM_MAX_STORED_TRANSACTIONS: int = 100

    # SERVER
    LOG_LEVEL: str = "INFO"
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000


# lru_cache to cache the settings instance.
@lru_cache
def get_settings() -> Settings:
    return Settings()
