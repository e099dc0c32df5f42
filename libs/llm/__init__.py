"""LLM client abstractions and implementations."""

from .llm_client import LLMClient
from .replicate_client import LLMClientError, ReplicateLLMClient
from .embeddings_provider import EmbeddingsProvider

__all__ = ["LLMClient", "LLMClientError", "ReplicateLLMClient", "EmbeddingsProvider"]
