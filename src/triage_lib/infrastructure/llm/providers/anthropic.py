"""Anthropic Messages API provider."""

import time
from typing import Optional

from .base import BaseLLMProvider, LLMResponse

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(BaseLLMProvider):
    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> LLMResponse:
        started = time.monotonic()
        claude_model = self.resolve_model(model)

        data = await self._post_json(
            "messages",
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            payload={
                "model": claude_model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
        )

        # Content arrives as a list of typed blocks
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        return self._build_response(
            text,
            model=claude_model,
            tokens_used=usage.get("input_tokens", 0) + usage.get("output_tokens", 0),
            started=started,
        )
