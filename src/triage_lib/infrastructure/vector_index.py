"""Similarity index for past incidents.

Stores one embedding per incident id alongside a small metadata dict
(service, severity, symptom, created_at) and answers cosine-similarity
top-k queries.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from triage_lib.models.history import SimilarityMatch

logger = logging.getLogger(__name__)


class SimilarityIndex(ABC):
    """Vector index contract"""

    @abstractmethod
    async def upsert(
        self, item_id: str, vector: Sequence[float], metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        pass

    @abstractmethod
    async def query(self, vector: Sequence[float], top_k: int = 3) -> List[SimilarityMatch]:
        """Best matches first"""


class InMemoryVectorIndex(SimilarityIndex):
    """Brute-force cosine similarity over numpy arrays"""

    def __init__(self, dimensions: Optional[int] = None):
        self.dimensions = dimensions
        self._items: Dict[str, Tuple[np.ndarray, Dict[str, Any]]] = {}

    def _as_array(self, vector: Sequence[float]) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float64)
        if array.ndim != 1:
            raise ValueError("Embedding must be a one-dimensional vector")
        if self.dimensions is None:
            self.dimensions = array.shape[0]
        elif array.shape[0] != self.dimensions:
            raise ValueError(
                f"Embedding has {array.shape[0]} dimensions, index expects {self.dimensions}"
            )
        return array

    @staticmethod
    def _compute_similarity(embedding1: np.ndarray, embedding2: np.ndarray) -> float:
        """Compute cosine similarity between embeddings"""
        denominator = np.linalg.norm(embedding1) * np.linalg.norm(embedding2)
        if denominator == 0:
            return 0.0
        return float(np.dot(embedding1, embedding2) / denominator)

    async def upsert(
        self, item_id: str, vector: Sequence[float], metadata: Optional[Dict[str, Any]] = None
    ) -> None:
        self._items[item_id] = (self._as_array(vector), dict(metadata or {}))
        logger.debug(f"Indexed incident {item_id} ({len(self._items)} total)")

    async def query(self, vector: Sequence[float], top_k: int = 3) -> List[SimilarityMatch]:
        if top_k <= 0 or not self._items:
            return []

        query_embedding = self._as_array(vector)
        scored = [
            SimilarityMatch(
                id=item_id,
                score=self._compute_similarity(query_embedding, embedding),
                metadata=dict(metadata),
            )
            for item_id, (embedding, metadata) in self._items.items()
        ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]

    def __len__(self) -> int:
        return len(self._items)
