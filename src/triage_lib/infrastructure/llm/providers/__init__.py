"""
LLM Provider Package

Provider registry and the provider implementations used by the model gateway.
"""

from .base import (
    BaseLLMProvider,
    LLMResponse,
    ProviderConfig,
    ProviderResponseError,
    is_transient_provider_error,
)
from .registry import (
    AllProvidersFailedError,
    ProviderRegistry,
    get_registry,
    get_valid_provider_names,
    reset_registry,
)
from .openai_provider import OpenAIProvider
from .anthropic import AnthropicProvider

__all__ = [
    "BaseLLMProvider",
    "LLMResponse",
    "ProviderConfig",
    "ProviderResponseError",
    "is_transient_provider_error",
    "AllProvidersFailedError",
    "ProviderRegistry",
    "get_registry",
    "get_valid_provider_names",
    "reset_registry",
    "OpenAIProvider",
    "AnthropicProvider",
]
