"""OpenRouter adapter.

OpenRouter routes one OpenAI-compatible API to many vendors; model ids take
the form ``vendor/model`` (``anthropic/claude-3.5-sonnet``).
"""

from __future__ import annotations

from typing import Any

from openai import AsyncOpenAI

from agentbridge.llm.openai_provider import OpenAIProvider

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter chat completion adapter.

    ``site_url`` and ``app_name`` are sent as the ``HTTP-Referer`` and
    ``X-Title`` headers OpenRouter uses for its rankings.
    """

    provider = "openrouter"
    error_prefix = "OPENROUTER"
    default_model = "openai/gpt-4o"
    default_base_url = OPENROUTER_BASE_URL
    supports_documents = False

    def __init__(self, site_url: str | None = None, app_name: str | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.site_url = site_url
        self.app_name = app_name

    def _create_client(self) -> Any:
        headers = {}
        if self.site_url:
            headers["HTTP-Referer"] = self.site_url
        if self.app_name:
            headers["X-Title"] = self.app_name
        return AsyncOpenAI(api_key=self._api_key, base_url=self._base_url, default_headers=headers or None)
