"""Azure OpenAI adapter."""

from __future__ import annotations

from typing import Any

from openai import AsyncAzureOpenAI

from agentbridge.llm.openai_provider import OpenAIProvider

DEFAULT_API_VERSION = "2024-08-01-preview"


class AzureProvider(OpenAIProvider):
    """Azure-hosted OpenAI deployments.

    The deployment name doubles as the model name. The endpoint is either
    given explicitly or derived from the resource name.
    """

    provider = "azure"
    error_prefix = "AZURE"

    def __init__(
        self,
        api_key: str | None = None,
        resource_name: str | None = None,
        deployment_name: str | None = None,
        api_version: str | None = None,
        endpoint: str | None = None,
        **kwargs: Any,
    ):
        if not endpoint and not resource_name:
            raise ValueError("Azure requires either endpoint or resource_name")
        kwargs.setdefault("model", deployment_name)
        super().__init__(api_key=api_key, **kwargs)
        self.deployment_name = deployment_name or self.model
        self.api_version = api_version or DEFAULT_API_VERSION
        self.endpoint = endpoint or f"https://{resource_name}.openai.azure.com"

    def _create_client(self) -> Any:
        return AsyncAzureOpenAI(
            api_key=self._api_key,
            api_version=self.api_version,
            azure_endpoint=self.endpoint,
            azure_deployment=self.deployment_name,
        )
