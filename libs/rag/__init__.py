"""Vector similarity helpers used by semantic search."""

from .similarity import cosine_similarity, parse_embedding, serialize_embedding

__all__ = ["cosine_similarity", "parse_embedding", "serialize_embedding"]
