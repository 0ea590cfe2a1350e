"""
Provider contract for the model gateway.

A provider turns one user prompt into plain text. The triage workflow does
its own structured decoding of that text, so providers never ask the remote
API for JSON mode or tool calls.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from triage_lib.utils.resilience import RETRYABLE_STATUS_CODES


@dataclass
class LLMResponse:
    content: str
    provider: str
    model: str
    tokens_used: int = 0
    latency_ms: int = 0


@dataclass
class ProviderConfig:
    """Connection settings for one configured provider"""

    name: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    model: Optional[str] = None
    timeout: float = 30


class ProviderResponseError(Exception):
    """Provider answered with a non-success status or an unusable body"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def is_transient_provider_error(exc: BaseException) -> bool:
    """Connection failures, timeouts and throttling or gateway statuses"""
    if isinstance(exc, ProviderResponseError):
        return exc.status in RETRYABLE_STATUS_CODES
    return isinstance(exc, (aiohttp.ClientConnectionError, asyncio.TimeoutError))


class BaseLLMProvider(ABC):
    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Name used in the fallback chain and in log lines"""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """
        Send prompt as a single user message.

        Args:
            prompt: Fully rendered prompt text
            model: Overrides the configured model for this call
            max_tokens: Completion token cap
            temperature: Sampling temperature

        Raises:
            ProviderResponseError: Non-200 status or empty completion
            aiohttp.ClientError: Transport failure
        """

    def is_available(self) -> bool:
        return bool(self.config.api_key and self.config.base_url and self.config.model)

    def resolve_model(self, requested: Optional[str] = None) -> str:
        model = requested or self.config.model
        if not model:
            raise ValueError(f"No model configured for provider {self.provider_name}")
        return model

    async def _post_json(self, path: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"
        async with aiohttp.ClientSession() as session:
            async with session.post(
                url,
                headers=headers,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ProviderResponseError(
                        f"{self.provider_name} API error {response.status}: {error_text[:500]}",
                        status=response.status,
                    )
                return await response.json()

    def _build_response(self, content: Optional[str], model: str, tokens_used: int, started: float) -> LLMResponse:
        if content is None or not content.strip():
            raise ProviderResponseError(f"{self.provider_name} returned empty content")
        return LLMResponse(
            content=content.strip(),
            provider=self.provider_name,
            model=model,
            tokens_used=tokens_used,
            latency_ms=int((time.monotonic() - started) * 1000),
        )
