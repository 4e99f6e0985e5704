from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.command_router import DEFAULT_TASK_FOLDERS, DEFAULT_TRIGGER_COMMANDS

DEFAULT_ALLOWED_TOOLS = [
    # File & code operations
    "Read", "Write", "Edit", "MultiEdit",
    "Bash", "BashOutput", "KillBash",
    "Glob", "Grep",
    # Agent management
    "Task", "TodoWrite", "ExitPlanMode",
    # Web
    "WebFetch", "WebSearch",
    # MCP servers
    "mcp__notionApi__*",
    "mcp__mem0__*",
    "mcp__shopify-dev-mcp__*",
    "mcp__mcp-graphql__*",
    "mcp__chrome-devtools__*",
    "mcp__gemini-cli__*",
]


class Settings(BaseSettings):
    # Load environment variables from .env and system environment
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=3001, validation_alias="PORT")
    cors_origins: List[str] = Field(
        default=["http://localhost:5173"], validation_alias="CORS_ORIGINS"
    )

    # Debug mode
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # Engine settings
    engine_type: str = Field(default="anthropic", validation_alias="ENGINE_TYPE")
    max_tokens: int = Field(default=4096, validation_alias="MAX_TOKENS")

    # Anthropic settings
    anthropic_api_key: Optional[str] = Field(
        default=None, validation_alias="ANTHROPIC_API_KEY"
    )
    anthropic_llm_model: str = Field(
        default="claude-3-5-sonnet-20241022",
        validation_alias="ANTHROPIC_LLM_MODEL",
    )

    # Upstream SSE agent service
    backend_url: Optional[str] = Field(default=None, validation_alias="BACKEND_URL")

    # Personal assistant settings
    projects_root: Path = Field(default_factory=Path.home, validation_alias="PA_ROOT")
    allowed_tools: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS),
        validation_alias="ALLOWED_TOOLS",
    )
    trigger_commands: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_TRIGGER_COMMANDS),
        validation_alias="TRIGGER_COMMANDS",
    )
    task_folders: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_TASK_FOLDERS),
        validation_alias="TASK_FOLDERS",
    )

    # Stream settings
    stream_read_timeout: Optional[float] = Field(
        default=300.0, validation_alias="STREAM_READ_TIMEOUT"
    )
    max_frame_bytes: int = Field(default=1024 * 1024, validation_alias="MAX_FRAME_BYTES")
    sse_ping_seconds: int = Field(default=15, validation_alias="SSE_PING_SECONDS")
    completed_tool_history: int = Field(
        default=256, validation_alias="COMPLETED_TOOL_HISTORY"
    )

    # Logfire settings
    logfire_enabled: bool = Field(default=False, validation_alias="LOGFIRE_ENABLED")
    logfire_token: Optional[str] = Field(default=None, validation_alias="LOGFIRE_TOKEN")
    logfire_service_name: str = Field(
        default="pa-relay", validation_alias="LOGFIRE_SERVICE_NAME"
    )

    def get_engine_config(self) -> Dict[str, Any]:
        """Return the engine-specific configuration dictionary."""
        engine = self.engine_type.lower()
        if engine == "anthropic":
            if not self.anthropic_api_key:
                raise ValueError(
                    "ANTHROPIC_API_KEY is required when ENGINE_TYPE is 'anthropic'"
                )
            return {
                "api_key": self.anthropic_api_key,
                "llm_model": self.anthropic_llm_model,
                "max_tokens": self.max_tokens,
            }
        elif engine == "sse":
            if not self.backend_url:
                raise ValueError("BACKEND_URL is required when ENGINE_TYPE is 'sse'")
            return {
                "backend_url": self.backend_url,
                "read_timeout": self.stream_read_timeout,
                "max_frame_bytes": self.max_frame_bytes,
            }
        else:
            raise ValueError(f"Unsupported ENGINE_TYPE: {self.engine_type}")


def get_settings() -> Settings:
    """Instantiate and return the Settings object."""
    return Settings()
