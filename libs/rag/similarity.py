from __future__ import annotations

import json
import logging
import math
from typing import Any, List, Optional, Sequence

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity over the shared prefix of ``a`` and ``b``.

    Returns ``0.0`` when either prefix has zero magnitude. Vectors of
    different length usually mean embeddings from two different models, so
    the mismatch is logged before comparing the truncated prefix.
    """

    if len(a) != len(b):
        logger.warning(
            "embedding_dimension_mismatch",
            extra={"left_dim": len(a), "right_dim": len(b)},
        )
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0 or norm_b == 0:
        return 0.0
    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    # Clamp float noise so that cos(v, v) never exceeds 1
    return max(-1.0, min(1.0, score))


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def parse_embedding(serialized: Optional[str]) -> Optional[List[float]]:
    """Decode a stored embedding; ``None`` means "no embedding available"."""

    if not serialized:
        return None
    try:
        data = json.loads(serialized)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, list):
        return None
    values = (_as_float(v) for v in data)
    return [v for v in values if v is not None]


def serialize_embedding(vector: Sequence[float]) -> str:
    """Encode an embedding as the JSON text stored on articles."""

    return json.dumps([float(v) for v in vector])


__all__ = ["cosine_similarity", "parse_embedding", "serialize_embedding"]
