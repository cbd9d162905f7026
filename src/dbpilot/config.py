"""Configuration settings for the application."""

from pydantic_settings import BaseSettings

from dbpilot.errors import ConfigurationError

# Values shipped in sample .env files; treat them as "not configured".
_PLACEHOLDER_KEYS = {
    "your-openai-key",
    "your-deepseek-key",
    "your-gemini-key",
    "your-anthropic-key",
}


class Settings(BaseSettings):
    """Pydantic settings class for the application.

    Built once at process start and handed to every component that needs it.
    """

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Remote tool server (JSON-RPC over HTTP)
    SERVER_HOST: str = "localhost"
    SERVER_PORT: int = 8080
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # Agent loop
    MAX_ITERATIONS: int = 10

    # LLM Configuration
    LLM_PROVIDER: str = "gemini"  # Options: openai, deepseek, gemini, anthropic, tgi
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_TOKENS: int = 4096
    LLM_MAX_MESSAGES: int = 30  # Conversation history kept by the backend

    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    DEEPSEEK_API_KEY: str | None = None
    DEEPSEEK_MODEL: str = "deepseek-chat"
    DEEPSEEK_BASE_URL: str = "https://api.deepseek.com"
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def server_url(self) -> str:
        """Endpoint every JSON-RPC request is POSTed to."""
        return f"http://{self.SERVER_HOST}:{self.SERVER_PORT}/"

    def require_api_key(self, field: str) -> str:
        """
        Return the API key stored in *field*.

        Raises
        ------
        ConfigurationError
            If the key is unset, blank, or still the sample placeholder.
        """
        value = getattr(self, field)
        if not value or value in _PLACEHOLDER_KEYS:
            raise ConfigurationError(f"{field} is not configured. Set it in the environment or .env")
        return value
