"""
Centralized Provider Registry for LLM providers.

Single source of truth for which providers are configured, how they are
built from settings, and the order in which they are tried.
"""

import logging
from typing import Dict, List, Optional

from triage_lib.config.settings import LLMSettings, get_settings
from triage_lib.utils import create_custom_retry

from .anthropic import AnthropicProvider
from .base import BaseLLMProvider, LLMResponse, ProviderConfig, is_transient_provider_error
from .openai_provider import OpenAIProvider


# Data-driven provider schema - single source of truth.
# Settings attributes follow the {name}_api_key / {name}_model / {name}_base_url convention.
PROVIDER_SCHEMA = {
    "openai": {
        "default_base_url": "https://api.openai.com/v1",
        "default_model": "gpt-4o-mini",
        "provider_class": OpenAIProvider,
    },
    "anthropic": {
        "default_base_url": "https://api.anthropic.com/v1",
        "default_model": "claude-3-5-haiku-latest",
        "provider_class": AnthropicProvider,
    },
    "openrouter": {
        "default_base_url": "https://openrouter.ai/api/v1",
        "default_model": "meta-llama/llama-3.3-70b-instruct",
        "provider_class": OpenAIProvider,  # Compatible API
    },
    "groq": {
        "default_base_url": "https://api.groq.com/openai/v1",
        "default_model": "llama-3.3-70b-versatile",
        "provider_class": OpenAIProvider,  # Compatible API
    },
    "fireworks": {
        "default_base_url": "https://api.fireworks.ai/inference/v1",
        "default_model": "accounts/fireworks/models/llama-v3p3-70b-instruct",
        "provider_class": OpenAIProvider,  # Compatible API
    },
}

FALLBACK_ORDER = ["openai", "anthropic", "openrouter", "groq", "fireworks"]


class AllProvidersFailedError(Exception):
    """Every provider in the fallback chain failed; errors maps provider name to its failure"""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class ProviderRegistry:
    """Central registry for managing LLM providers.

    Each provider in the fallback chain gets up to settings.max_retries extra
    attempts for transient failures before the next provider is tried.
    """

    retry_min_wait: float = 0.5
    retry_max_wait: float = 4.0

    def __init__(self, settings: Optional[LLMSettings] = None):
        self.logger = logging.getLogger(__name__)
        self.settings = settings
        self._providers: Dict[str, BaseLLMProvider] = {}
        self._fallback_chain: List[str] = []
        self._initialized = False

    def _ensure_initialized(self):
        """Initialize providers lazily on first use"""
        if not self._initialized:
            if self.settings is None:
                self.settings = get_settings().llm
            self._initialize_from_settings()
            self._initialized = True

    def _initialize_from_settings(self):
        primary_provider = self.settings.provider
        if primary_provider not in PROVIDER_SCHEMA:
            self.logger.error(
                f"Invalid CHAT_PROVIDER: '{primary_provider}'. "
                f"Valid options: {get_valid_provider_names()}. Defaulting to 'openai'"
            )
            primary_provider = "openai"

        for provider_name, schema in PROVIDER_SCHEMA.items():
            config = self._create_provider_config(provider_name, schema)
            if config:
                self._initialize_provider(provider_name, config)

        self._setup_fallback_chain(primary_provider)

    def _create_provider_config(self, provider_name: str, schema: Dict) -> Optional[ProviderConfig]:
        secret = getattr(self.settings, f"{provider_name}_api_key", None)
        api_key = secret.get_secret_value() if secret else None
        if not api_key:
            self.logger.debug(f"Skipping provider '{provider_name}': no API key configured")
            return None

        model = getattr(self.settings, f"{provider_name}_model", None) or schema["default_model"]
        base_url = getattr(self.settings, f"{provider_name}_base_url", None) or schema["default_base_url"]

        self.logger.info(f"Provider '{provider_name}' config: model={model}, base_url={base_url}")

        return ProviderConfig(
            name=provider_name,
            api_key=api_key,
            base_url=base_url,
            model=model,
            timeout=self.settings.request_timeout,
        )

    def _initialize_provider(self, name: str, config: ProviderConfig):
        provider = PROVIDER_SCHEMA[name]["provider_class"](config)
        if provider.is_available():
            self._providers[name] = provider
            self.logger.info(f"Provider '{name}' initialized successfully")
        else:
            self.logger.warning(f"Provider '{name}' not available (missing config)")

    def _setup_fallback_chain(self, primary_provider: str):
        chain = [primary_provider] if primary_provider in self._providers else []

        if self.settings.strict_provider_mode:
            self.logger.info(f"Strict provider mode enabled - using only '{primary_provider}', no fallbacks")
        else:
            for provider in FALLBACK_ORDER:
                if provider != primary_provider and provider in self._providers:
                    chain.append(provider)

        self._fallback_chain = chain
        self.logger.info(f"Provider fallback chain: {' -> '.join(chain) or '(empty)'}")

    def register_provider(self, name: str, provider: BaseLLMProvider, primary: bool = False):
        """Register an already-built provider (custom hosts, tests)"""
        self._initialized = True
        self._providers[name] = provider
        if primary:
            self._fallback_chain = [name] + [p for p in self._fallback_chain if p != name]
        elif name not in self._fallback_chain:
            self._fallback_chain.append(name)

    def get_provider(self, name: str) -> Optional[BaseLLMProvider]:
        self._ensure_initialized()
        return self._providers.get(name)

    def get_available_providers(self) -> List[str]:
        self._ensure_initialized()
        return list(self._providers.keys())

    def get_fallback_chain(self) -> List[str]:
        self._ensure_initialized()
        return self._fallback_chain.copy()

    def _with_retries(self, call):
        max_retries = self.settings.max_retries if self.settings is not None else 0
        if max_retries <= 0:
            return call
        return create_custom_retry(
            max_attempts=max_retries + 1,
            min_wait=self.retry_min_wait,
            max_wait=self.retry_max_wait,
            retry_on=is_transient_provider_error,
        )(call)

    async def route_request(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """Route request through the fallback chain until one provider succeeds

        Raises:
            AllProvidersFailedError: If the chain is empty or every provider fails
        """
        self._ensure_initialized()

        errors: Dict[str, str] = {}
        for provider_name in self._fallback_chain:
            provider = self._providers.get(provider_name)
            if not provider:
                continue

            try:
                self.logger.debug(f"Trying provider: {provider_name}")
                return await self._with_retries(provider.generate)(
                    prompt=prompt,
                    model=model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            except Exception as e:
                self.logger.warning(f"Provider {provider_name} failed: {e}")
                errors[provider_name] = f"{type(e).__name__}: {e}"

        if not errors:
            raise AllProvidersFailedError("No LLM provider configured")
        details = "; ".join(f"{name}: {error}" for name, error in errors.items())
        raise AllProvidersFailedError(f"All providers failed ({details})", errors=errors)


# Global registry instance
_registry: Optional[ProviderRegistry] = None


def get_registry(settings: Optional[LLMSettings] = None) -> ProviderRegistry:
    """Get the global provider registry instance"""
    global _registry
    if _registry is None:
        _registry = ProviderRegistry(settings=settings)
    return _registry


def reset_registry():
    """Reset the global registry (mainly for testing)"""
    global _registry
    _registry = None


def get_valid_provider_names() -> List[str]:
    """Valid values for CHAT_PROVIDER"""
    return list(PROVIDER_SCHEMA.keys())
