"""
Embedding services for incident similarity.

- OpenAIEmbeddingService: OpenAI-compatible /embeddings endpoint via aiohttp
- HashingEmbeddingService: deterministic token feature hashing (no network),
  suitable for local development and single-process deployments
"""

import hashlib
import logging
import re
from abc import ABC, abstractmethod
from typing import List, Optional

import aiohttp
import numpy as np

logger = logging.getLogger(__name__)


class EmbeddingService(ABC):
    """Embedding collaborator contract"""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Return a dense vector for text"""


class OpenAIEmbeddingService(EmbeddingService):
    """OpenAI-compatible embeddings client"""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30,
        dimensions: Optional[int] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.dimensions = dimensions

    async def embed(self, text: str) -> List[float]:
        payload = {"model": self.model, "input": [text]}
        if self.dimensions:
            payload["dimensions"] = self.dimensions

        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"{self.base_url}/embeddings",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise RuntimeError(f"Embedding API error {response.status}: {error_text}")
                data = await response.json()

        if not data.get("data"):
            raise RuntimeError("Embedding API returned no data")

        return list(data["data"][0]["embedding"])


_TOKEN_RE = re.compile(r"[a-z0-9]+")


class HashingEmbeddingService(EmbeddingService):
    """Signed feature hashing of lower-cased word tokens, L2-normalized"""

    def __init__(self, dimensions: int = 384):
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self.dimensions = dimensions

    def _bucket(self, token: str) -> tuple:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        index = int.from_bytes(digest[:4], "big") % self.dimensions
        sign = 1.0 if digest[4] & 1 else -1.0
        return index, sign

    async def embed(self, text: str) -> List[float]:
        vector = np.zeros(self.dimensions, dtype=np.float64)
        for token in _TOKEN_RE.findall(text.lower()):
            index, sign = self._bucket(token)
            vector[index] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()
