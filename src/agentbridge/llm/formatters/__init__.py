"""Per-vendor tool formatters."""

from agentbridge.llm.formatters.base import ProviderFormatter
from agentbridge.llm.formatters.registry import (
    get_formatter,
    get_supported_providers,
    is_provider_supported,
    register_formatter,
)

__all__ = [
    "ProviderFormatter",
    "get_formatter",
    "get_supported_providers",
    "is_provider_supported",
    "register_formatter",
]
