"""
Application settings and configuration management.

Uses Pydantic Settings for validation and environment variable support.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM API configuration."""

    model: str = Field(
        default="gpt-3.5-turbo",
        description="LiteLLM model string, e.g. 'gpt-4o-mini', 'anthropic/claude-3-5-sonnet-20241022', "
                    "'ollama/llama3'. The provider prefix tells LiteLLM which API to route to.",
    )
    api_key: str = Field(default="", description="API key for the model's provider")
    api_base: str | None = Field(
        default=None,
        description="Override the provider endpoint, e.g. an OpenAI-compatible gateway URL",
    )
    temperature: float | None = Field(
        default=None, description="Sampling temperature (provider default when unset)"
    )
    max_tokens: int | None = Field(
        default=None, description="Maximum tokens in response (provider default when unset)"
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class MCPSettings(BaseSettings):
    """Tool host (MCP server) configuration."""

    config_path: Path | None = Field(
        default=None,
        description="Path to the server config document ({mcpServers, defaultServer, system}). "
                    "When unset, the server identifier is treated as a script path.",
    )
    server: str = Field(
        default="default",
        description="Server identifier to connect to; 'default' resolves via defaultServer",
    )
    client_name: str = Field(default="toolbridge", description="Client name sent in the MCP handshake")
    client_version: str = Field(default="0.1.0", description="Client version sent in the MCP handshake")

    model_config = SettingsConfigDict(env_prefix="MCP_")


class TraceSettings(BaseSettings):
    """Exchange trace files."""

    enabled: bool = Field(default=False, description="Write one JSON file per gateway exchange")
    directory: Path = Field(default=Path("logs"), description="Trace file directory")
    clear_on_start: bool = Field(
        default=True, description="Delete old trace files when the HTTP API starts"
    )

    model_config = SettingsConfigDict(env_prefix="TRACE_")


class APISettings(BaseSettings):
    """HTTP API server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind address")
    port: int = Field(default=3001, description="Bind port")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], description="Allowed CORS origins")

    model_config = SettingsConfigDict(env_prefix="API_")


class Settings(BaseSettings):
    """Main application settings."""

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    mcp: MCPSettings = Field(default_factory=MCPSettings)
    trace: TraceSettings = Field(default_factory=TraceSettings)
    api: APISettings = Field(default_factory=APISettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    if env_file:
        return Settings(_env_file=env_file)
    return Settings()
