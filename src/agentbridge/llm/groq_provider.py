"""Groq adapter over its OpenAI-compatible endpoint."""

from __future__ import annotations

from agentbridge.llm.openai_provider import OpenAIProvider

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class GroqProvider(OpenAIProvider):
    provider = "groq"
    error_prefix = "GROQ"
    default_model = "llama-3.3-70b-versatile"
    default_base_url = GROQ_BASE_URL
    supports_documents = False
