"""Rule-based tag normalization and extraction."""

from .normalizer import is_noisy_tag, normalize_tag
from .extractor import extract_article_tags, extract_hashtags, extract_keyword_tags

__all__ = [
    "normalize_tag",
    "is_noisy_tag",
    "extract_hashtags",
    "extract_keyword_tags",
    "extract_article_tags",
]
