"""
OpenAI-compatible chat completions provider.

Serves OpenAI itself and the API-compatible hosts (OpenRouter, Groq,
Fireworks) configured in the provider registry.
"""

import time
from typing import Optional

from .base import BaseLLMProvider, LLMResponse, ProviderConfig, ProviderResponseError


class OpenAIProvider(BaseLLMProvider):
    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self._name = config.name or "openai"

    @property
    def provider_name(self) -> str:
        return self._name

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> LLMResponse:
        started = time.monotonic()
        chat_model = self.resolve_model(model)

        data = await self._post_json(
            "chat/completions",
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            payload={
                "model": chat_model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        )

        choices = data.get("choices") or []
        if not choices:
            raise ProviderResponseError(f"{self.provider_name} API returned no choices")

        usage = data.get("usage") or {}
        return self._build_response(
            choices[0].get("message", {}).get("content"),
            model=chat_model,
            tokens_used=usage.get("total_tokens", 0),
            started=started,
        )
