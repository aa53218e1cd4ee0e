"""Configuration settings for the application."""

from typing import Literal

from pydantic_settings import BaseSettings

ToolGating = Literal["strict", "advisory"]


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Completion provider
    PROVIDER: str = "openai"  # Options: openai, anthropic
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    MAX_OUTPUT_TOKENS: int = 8192

    # MCP server and the resources it exposes
    MCP_SERVER_URL: str = "http://localhost:3000/mcp"
    PERSONA_URI: str = "config://persona"
    INTENTS_URI: str = "config://intents"
    RECORD_SCHEMA_URI: str = "schema://record"

    # Built-in capabilities declared next to the server's own tools
    KNOWLEDGE_DOCUMENT_TOOL: str = "get_knowledge_base_document"
    RECORD_SCHEMA_TOOL: str = "get_record_schema"

    # Task agent behaviour
    MAX_RESPONSE_ATTEMPTS: int = 3
    TOOL_GATING: ToolGating = "strict"

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
