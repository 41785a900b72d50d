"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseModel):
    provider: str = "openai"
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    base_url: str | None = None
    thinking_budget: int | None = None


class AgentConfig(BaseModel):
    max_iterations: int = 20
    debug: bool = False
    # Forward per-turn token usage in stream events (billing data)
    include_usage: bool = False


class AzureConfig(BaseModel):
    resource_name: str | None = None
    deployment_name: str | None = None
    api_version: str = "2024-08-01-preview"
    endpoint: str | None = None


class OpenRouterConfig(BaseModel):
    site_url: str | None = None
    app_name: str | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTBRIDGE_",
        env_nested_delimiter="__",
    )

    llm: LLMConfig = LLMConfig()
    agent: AgentConfig = AgentConfig()
    azure: AzureConfig = AzureConfig()
    openrouter: OpenRouterConfig = OpenRouterConfig()
    system_prompt: str | None = None
    tools_modules: list[str] = []

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    google_api_key: str = ""
    xai_api_key: str = ""
    azure_api_key: str = ""
    openrouter_api_key: str = ""
    groq_api_key: str = ""

    @classmethod
    def load(cls, config_path: Path | None = None) -> Settings:
        """Load settings from YAML file, then overlay env vars."""
        data: dict = {}
        if config_path and config_path.exists():
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        return cls(**data)


def get_project_root() -> Path:
    """Walk up from CWD to find pyproject.toml, or fall back to CWD."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return current


def load_settings() -> Settings:
    """Load settings from the project root's config/settings.yaml."""
    root = get_project_root()
    return Settings.load(root / "config" / "settings.yaml")
