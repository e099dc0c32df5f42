from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, List, Optional

import replicate

from libs.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Titles and queries are short; anything longer is cut before it reaches the model.
MAX_INPUT_CHARS = 2000


def _prepare(text: str) -> str:
    return " ".join(text.split())[:MAX_INPUT_CHARS]


class EmbeddingsProvider:
    """Turn article titles and search queries into vectors via Replicate.

    Without a configured API token the provider is "unavailable":
    :meth:`embed` returns ``None`` so callers take their fallback path.
    Vectors are memoised per normalised text in a bounded LRU map.
    """

    def __init__(
        self,
        model: str | None = None,
        *,
        settings: Settings | None = None,
        embedding_dim: int | None = None,
        batch_size: int = 32,
        cache_size: int = 1024,
    ) -> None:
        settings = settings or get_settings()
        self.model = model or settings.embeddings_model
        self.dim = embedding_dim if embedding_dim is not None else settings.embedding_dim
        self.api_token = settings.replicate_api_token
        self.batch_size = max(1, batch_size)
        self.cache_size = cache_size
        self._memo: OrderedDict[str, List[float]] = OrderedDict()
        self._client: replicate.Client | None = None

    @property
    def available(self) -> bool:
        return bool(self.api_token)

    @property
    def client(self) -> replicate.Client:
        if self._client is None:
            self._client = replicate.Client(api_token=self.api_token)
        return self._client

    def _remember(self, text: str, vector: List[float]) -> None:
        if self.cache_size <= 0:
            return
        self._memo[text] = vector
        self._memo.move_to_end(text)
        while len(self._memo) > self.cache_size:
            self._memo.popitem(last=False)

    def _vectors_from(self, output: Any) -> List[List[float]]:
        # Replicate embedders return either {"embeddings": [...]} or the bare list.
        raw = output.get("embeddings", []) if isinstance(output, dict) else output
        vectors = [[float(v) for v in row] for row in raw]
        bad = [len(v) for v in vectors if len(v) != self.dim]
        if bad:
            raise ValueError(f"model {self.model} returned {bad[0]}-d vectors, expected {self.dim}")
        return vectors

    def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Vectors for ``texts`` in input order; duplicates are sent once."""
        prepared = [_prepare(t) for t in texts]
        found: dict[str, List[float]] = {}
        pending: List[str] = []
        for text in prepared:
            if text in self._memo:
                self._memo.move_to_end(text)
                found[text] = self._memo[text]
            elif text not in pending:
                pending.append(text)

        for start in range(0, len(pending), self.batch_size):
            chunk = pending[start : start + self.batch_size]
            output = self.client.run(self.model, input={"texts": chunk})
            vectors = self._vectors_from(output)
            if len(vectors) != len(chunk):
                raise ValueError(f"asked for {len(chunk)} embeddings, got {len(vectors)}")
            for text, vector in zip(chunk, vectors):
                found[text] = vector
                self._remember(text, vector)
        logger.debug(
            "embeddings_computed",
            extra={"requested": len(texts), "computed": len(pending), "model": self.model},
        )
        return [found[t] for t in prepared]

    def embed(self, text: str) -> Optional[List[float]]:
        """Embedding of a single text, or ``None`` when no token is configured."""
        if not self.available:
            logger.debug("Embeddings unavailable: REPLICATE_API_TOKEN not set")
            return None
        return self.embed_texts([text])[0]


__all__ = ["EmbeddingsProvider", "MAX_INPUT_CHARS"]
