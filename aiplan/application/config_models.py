"""Configuration models.

Config structure (``~/.aiplan/config.yml`` and ``<project>/.aiplan/config.yml``):

    provider: openai
    model: gpt-4o-mini
    base_url: https://api.openai.com/v1
    api_key_env: OPENAI_API_KEY
    temperature: 0.7
    follow_gitignore: true
    diff_viewer: code
    history_scope: global
    history_depth: 0
    auto_context:
      enabled: true
      max_rounds: 2
      max_operations: 10
    auto_fix:
      max_retries: 3
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AutoContextConfig(BaseModel):
    """Bounds for the multi-round context gathering loop."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_rounds: int = Field(default=2, ge=1, le=5)
    max_operations: int = Field(default=10, ge=1, le=50)


class AutoFixConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=1, le=10)


class AppConfig(BaseModel):
    """Top-level application configuration (merged from all layers)."""

    model_config = ConfigDict(extra="forbid")

    provider: str = "openai"
    model: str | None = None
    base_url: str | None = None
    api_key_env: str = "OPENAI_API_KEY"
    temperature: float | None = Field(default=None, ge=0, le=2)
    request_timeout: float | None = Field(default=None, gt=0)
    network_retries: int = Field(default=2, ge=0)
    system_prompt: str | None = None
    follow_gitignore: bool = True
    diff_viewer: str = "code"
    history_scope: Literal["global", "project"] = "global"
    history_depth: int = Field(default=0, ge=0, le=50)
    auto_context: AutoContextConfig = Field(default_factory=AutoContextConfig)
    auto_fix: AutoFixConfig = Field(default_factory=AutoFixConfig)

    def provider_config(self) -> dict[str, Any]:
        """Keys passed to the provider constructor."""
        return {
            "model": self.model,
            "base_url": self.base_url,
            "api_key_env": self.api_key_env,
            "temperature": self.temperature,
            "request_timeout": self.request_timeout,
            "network_retries": self.network_retries,
        }
