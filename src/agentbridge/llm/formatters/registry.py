"""Lookup of tool formatters by vendor name."""

from __future__ import annotations

from agentbridge.llm.errors import UnsupportedProviderError
from agentbridge.llm.formatters.anthropic_formatter import AnthropicFormatter
from agentbridge.llm.formatters.base import ProviderFormatter
from agentbridge.llm.formatters.gemini_formatter import GeminiFormatter
from agentbridge.llm.formatters.openai_formatter import OpenAIFormatter

_openai = OpenAIFormatter()
_gemini = GeminiFormatter()

_FORMATTERS: dict[str, ProviderFormatter] = {
    "openai": _openai,
    "xai": _openai,
    "azure": _openai,
    "ollama": _openai,
    "google-openai": _openai,
    "openrouter": _openai,
    "groq": _openai,
    "anthropic": AnthropicFormatter(),
    "google": _gemini,
    "gemini": _gemini,
}


def get_formatter(provider: str) -> ProviderFormatter:
    formatter = _FORMATTERS.get(provider.lower())
    if formatter is None:
        raise UnsupportedProviderError(
            f"Unsupported provider: {provider}. Choose: {', '.join(get_supported_providers())}"
        )
    return formatter


def is_provider_supported(provider: str) -> bool:
    return provider.lower() in _FORMATTERS


def get_supported_providers() -> list[str]:
    return sorted(_FORMATTERS)


def register_formatter(provider: str, formatter: ProviderFormatter) -> None:
    """Register (or replace) the formatter used for ``provider``."""
    _FORMATTERS[provider.lower()] = formatter
