"""Adapter lookup by vendor name."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from agentbridge.llm.anthropic_provider import AnthropicProvider
from agentbridge.llm.azure_provider import AzureProvider
from agentbridge.llm.base import ProviderAdapter
from agentbridge.llm.errors import UnsupportedProviderError
from agentbridge.llm.google_provider import GoogleOpenAIProvider, GoogleProvider
from agentbridge.llm.groq_provider import GroqProvider
from agentbridge.llm.ollama_provider import OllamaProvider
from agentbridge.llm.openai_provider import OpenAIProvider
from agentbridge.llm.openrouter_provider import OpenRouterProvider
from agentbridge.llm.xai_provider import XAIProvider

if TYPE_CHECKING:
    from agentbridge.core.config import Settings

logger = logging.getLogger(__name__)

ADAPTERS: dict[str, type] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "google": GoogleProvider,
    "gemini": GoogleProvider,
    "google-openai": GoogleOpenAIProvider,
    "xai": XAIProvider,
    "azure": AzureProvider,
    "ollama": OllamaProvider,
    "openrouter": OpenRouterProvider,
    "groq": GroqProvider,
}


def create_adapter(provider: str, **kwargs: Any) -> ProviderAdapter:
    """Instantiate the adapter registered for ``provider``.

    Keyword arguments are passed to the adapter constructor unchanged.
    """
    cls = ADAPTERS.get(provider.lower())
    if cls is None:
        raise UnsupportedProviderError(
            f"Unknown LLM provider: {provider}. Choose: {', '.join(sorted(ADAPTERS))}"
        )
    return cls(**kwargs)


def adapter_from_settings(settings: Settings) -> ProviderAdapter:
    """Build the configured adapter, pulling credentials from settings."""
    provider = settings.llm.provider.lower()
    llm = settings.llm
    kwargs: dict[str, Any] = {
        "model": llm.model,
        "temperature": llm.temperature,
        "max_tokens": llm.max_tokens,
    }

    if provider in ("openai", "xai", "ollama", "google-openai", "openrouter", "groq"):
        key_name = {
            "openai": "openai_api_key",
            "xai": "xai_api_key",
            "ollama": None,
            "google-openai": "google_api_key",
            "openrouter": "openrouter_api_key",
            "groq": "groq_api_key",
        }[provider]
        if key_name:
            kwargs["api_key"] = getattr(settings, key_name) or os.environ.get(key_name.upper()) or None
        if provider == "openrouter":
            kwargs["site_url"] = settings.openrouter.site_url
            kwargs["app_name"] = settings.openrouter.app_name
        if llm.base_url:
            kwargs["base_url"] = llm.base_url
    elif provider == "anthropic":
        kwargs["api_key"] = settings.anthropic_api_key or None
        kwargs["thinking_budget"] = llm.thinking_budget
        if llm.base_url:
            kwargs["base_url"] = llm.base_url
    elif provider in ("google", "gemini"):
        kwargs["api_key"] = settings.google_api_key or None
        kwargs["thinking_budget"] = llm.thinking_budget
    elif provider == "azure":
        azure = settings.azure
        kwargs.update(
            api_key=settings.azure_api_key or None,
            resource_name=azure.resource_name,
            deployment_name=azure.deployment_name,
            api_version=azure.api_version,
            endpoint=azure.endpoint,
        )
        # The deployment is the model on Azure
        kwargs["model"] = azure.deployment_name or llm.model

    logger.debug("Creating %s adapter for model %s", provider, kwargs.get("model"))
    return create_adapter(provider, **kwargs)
