"""
Model gateway used by the workflow engine.

Wraps the provider registry behind a single generate() call with a bounded
timeout. Every failure (timeout, all providers down, bad transport response)
is raised as GatewayError so the engine has exactly one error to recover from.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from triage_lib.exceptions import GatewayError

from .providers import ProviderRegistry, get_registry


class BaseModelGateway(ABC):
    """Text generation collaborator contract"""

    @abstractmethod
    async def generate(self, prompt: str, temperature: float = 0.3, max_tokens: int = 1024) -> str:
        """Return raw model text for prompt.

        Raises:
            GatewayError: On timeout or unavailability
        """


class ModelGateway(BaseModelGateway):
    """Registry-backed gateway with a request timeout"""

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        request_timeout: float = 30.0,
        model: Optional[str] = None,
    ):
        self.registry = registry or get_registry()
        self.request_timeout = request_timeout
        self.model = model
        self.logger = logging.getLogger(__name__)
        self.logger.info(f"ModelGateway created, request timeout: {self.request_timeout}s")

    async def generate(self, prompt: str, temperature: float = 0.3, max_tokens: int = 1024) -> str:
        if prompt is None:
            raise TypeError("Prompt cannot be None")

        try:
            response = await asyncio.wait_for(
                self.registry.route_request(
                    prompt=prompt,
                    model=self.model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                ),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Model gateway timed out after {self.request_timeout}s")
            raise GatewayError(
                f"Model gateway timed out after {self.request_timeout}s",
                error_code="GATEWAY_TIMEOUT",
                context={"timeout": self.request_timeout},
            ) from e
        except Exception as e:
            self.logger.warning(f"Model gateway unavailable: {e}")
            raise GatewayError(
                f"Model gateway unavailable: {e}",
                error_code="GATEWAY_UNAVAILABLE",
                context={"providers": getattr(e, "errors", {})},
            ) from e

        self.logger.debug(
            f"Gateway response from {response.provider}/{response.model} "
            f"in {response.latency_ms}ms ({response.tokens_used} tokens)"
        )
        return response.content
