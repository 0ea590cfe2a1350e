"""LLM infrastructure: providers, model gateway, embeddings"""

from .embeddings import EmbeddingService, HashingEmbeddingService, OpenAIEmbeddingService
from .gateway import BaseModelGateway, ModelGateway

__all__ = [
    "BaseModelGateway",
    "ModelGateway",
    "EmbeddingService",
    "HashingEmbeddingService",
    "OpenAIEmbeddingService",
]
