from __future__ import annotations

import re
from typing import Iterable, List, Optional

from .normalizer import TAG_CHARS, is_noisy_tag, normalize_tag

MAX_ARTICLE_TAGS = 20

_HASHTAG = re.compile(rf"[#＃]([{TAG_CHARS}]{{2,40}})")
_ENGLISH_WORD = re.compile(r"[A-Za-z][A-Za-z0-9+._-]{2,40}")
_MODEL_NAME = re.compile(r"^(gpt|claude|gemini)[-_]?\d+", re.IGNORECASE)
_TECH_SUBSTRING = re.compile(r"(ai|llm|rag|auth|oauth|prisma|react|next)", re.IGNORECASE)
_KATAKANA_RUN = re.compile(r"[ァ-ヶー]{4,20}")

TECH_TERMS = frozenset(
    {
        "ai",
        "ml",
        "llm",
        "nlp",
        "rag",
        "gpt",
        "openai",
        "langchain",
        "nextjs",
        "next-auth",
        "nextauth",
        "prisma",
        "typescript",
        "javascript",
        "react",
        "node",
        "sql",
        "postgres",
        "sqlite",
        "docker",
        "kubernetes",
        "aws",
        "gcp",
        "azure",
    }
)


def _dedup_preserve_order(items: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for it in items:
        if it not in seen:
            seen.add(it)
            out.append(it)
    return out


def extract_hashtags(text: Optional[str]) -> List[str]:
    """Normalized ``#tag`` / ``＃tag`` tokens in first-occurrence order."""

    if not text:
        return []
    found = (normalize_tag(m.group(1)) for m in _HASHTAG.finditer(text))
    return _dedup_preserve_order(t for t in found if t)


def extract_keyword_tags(text: Optional[str]) -> List[str]:
    """Technical-looking English words and long Katakana runs.

    English words qualify when their normalized form is a known tech term,
    when they look like a model name with a version (``gpt-4``,
    ``claude3``) or when they contain an AI/auth/framework marker.
    """

    if not text:
        return []
    out: List[str] = []

    for m in _ENGLISH_WORD.finditer(text):
        raw = m.group(0)
        n = normalize_tag(raw)
        if not n:
            continue
        if n in TECH_TERMS:
            out.append(n)
            continue
        if _MODEL_NAME.search(raw) or _TECH_SUBSTRING.search(raw):
            out.append(n)

    for m in _KATAKANA_RUN.finditer(text):
        n = normalize_tag(m.group(0))
        if n:
            out.append(n)

    return _dedup_preserve_order(t for t in out if not is_noisy_tag(t))


def extract_article_tags(
    title: Optional[str],
    summary: Optional[str] = None,
    url: Optional[str] = None,
) -> List[str]:
    """Tags for an article: hashtags first, then keywords, at most 20.

    Only title and summary are scanned; ``url`` is accepted so callers can
    pass the whole article but host and path words are never tags.
    """

    text = " ".join(part for part in (title, summary) if part)
    tags = extract_hashtags(text) + extract_keyword_tags(text)
    tags = [t for t in _dedup_preserve_order(tags) if not is_noisy_tag(t)]
    return tags[:MAX_ARTICLE_TAGS]


__all__ = [
    "extract_hashtags",
    "extract_keyword_tags",
    "extract_article_tags",
    "MAX_ARTICLE_TAGS",
    "TECH_TERMS",
]
