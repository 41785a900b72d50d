"""xAI (Grok) adapter.

xAI uses an OpenAI-compatible API, so this only overrides the endpoint.
Docs: https://docs.x.ai/developers/quickstart
"""

from __future__ import annotations

from agentbridge.llm.openai_provider import OpenAIProvider

XAI_BASE_URL = "https://api.x.ai/v1"


class XAIProvider(OpenAIProvider):
    """xAI (Grok) chat completion adapter.

    Grok reasoning models stream ``reasoning_content``, surfaced as
    ``thinking:*`` events by the base class.
    """

    provider = "xai"
    error_prefix = "XAI"
    default_model = "grok-2"
    default_base_url = XAI_BASE_URL
    supports_documents = False
