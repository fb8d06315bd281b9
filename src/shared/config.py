"""Configuration management for the AI Chat orchestrator.

Supports YAML configuration files and environment variable overrides.
Configuration is loaded once and cached for performance.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Remote assistant provider configuration."""
    provider: str = Field(default="openai", description="Provider: openai, custom, mock")
    model: str = Field(default="gpt-4o-mini", description="Model name")
    api_key: Optional[str] = Field(default=None, description="API key")
    api_base: str = Field(default="https://api.openai.com/v1", description="API base URL")
    beta_header: str = Field(default="assistants=v2", description="Value of the OpenAI-Beta header")
    assistant_id: Optional[str] = Field(default=None, description="Remote assistant identifier")
    request_timeout: float = Field(default=30.0, gt=0, description="Per-call timeout in seconds")

    model_config = SettingsConfigDict(
        env_prefix="AICHAT_LLM_",
        env_file=".env",
        extra="ignore"
    )


class PollingSettings(BaseSettings):
    """Run polling budget."""
    max_attempts: int = Field(default=60, ge=1)
    interval_seconds: float = Field(default=1.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="AICHAT_POLLING_",
        env_file=".env",
        extra="ignore"
    )


class StoreSettings(BaseSettings):
    """Conversation record storage."""
    backend: str = Field(default="memory", description="Store backend: memory, json")
    path: str = Field(default="data/conversations.json")

    model_config = SettingsConfigDict(
        env_prefix="AICHAT_STORE_",
        env_file=".env",
        extra="ignore"
    )


class ServerSettings(BaseSettings):
    """HTTP surface configuration."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    object_id: int = Field(default=1, description="Chat object served by this instance")
    allow_anonymous: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="AICHAT_SERVER_",
        env_file=".env",
        extra="ignore"
    )


class ChatObjectSettings(BaseSettings):
    """Settings of the chat object served by this instance."""
    online: bool = Field(default=True, description="Whether the chat accepts messages")
    char_limit: int = Field(default=100, ge=0, description="Maximum message length; 0 disables")
    max_memory_messages: int = Field(
        default=0, ge=0, description="Thread messages the assistant sees per run; 0 means all"
    )
    disclaimer: str = Field(default="", description="Text shown to users next to the chat")

    model_config = SettingsConfigDict(
        env_prefix="AICHAT_CHAT_",
        env_file=".env",
        extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # Component settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    chat: ChatObjectSettings = Field(default_factory=ChatObjectSettings)

    model_config = SettingsConfigDict(
        env_prefix="AICHAT_",
        env_file=".env",
        extra="ignore"
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """
        Load settings from a YAML file.

        Sections are built as their own settings objects so that values
        missing from the file (e.g. the API key) still come from the
        environment.
        """
        data = load_yaml_config(path)

        sections: dict[str, type[BaseSettings]] = {
            "llm": LLMSettings,
            "polling": PollingSettings,
            "store": StoreSettings,
            "server": ServerSettings,
            "chat": ChatObjectSettings,
        }
        for name, section_cls in sections.items():
            if isinstance(data.get(name), dict):
                data[name] = section_cls(**data[name])

        return cls(**data)


def load_yaml_config(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        return {}

    with open(path) as f:
        return yaml.safe_load(f) or {}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    config_path = os.environ.get("AICHAT_CONFIG_PATH", "config/settings.yaml")
    return Settings.from_yaml(config_path)
