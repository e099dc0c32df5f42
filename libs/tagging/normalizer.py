from __future__ import annotations

import re
from typing import Optional

MIN_TAG_LEN = 2
MAX_TAG_LEN = 40

# Letters, digits, "_" and "-". ``\w`` on str patterns is Unicode-aware and
# already covers the prolonged sound mark "ー" and the iteration mark "々".
TAG_CHARS = r"\w\-ー々"

_HASH_PREFIX = re.compile(r"^[#＃]+")
_HASH_SUFFIX = re.compile(r"[#＃]+$")
_DISALLOWED = re.compile(rf"[^{TAG_CHARS}]")
_ASCII_LETTER = re.compile(r"[A-Za-z]")
_URL_LIKE = re.compile(r"[/:]")

# Site and protocol words that show up everywhere
STOP_WORDS = frozenset(
    {
        "note",
        "qiita",
        "zenn",
        "github",
        "youtube",
        "www",
        "com",
        "jp",
        "html",
        "https",
        "http",
    }
)

# Generic Japanese words that say nothing about the topic
GENERIC_JA_WORDS = frozenset(
    {
        "入門",
        "方法",
        "完全",
        "解説",
        "まとめ",
        "実装",
        "設定",
        "比較",
        "紹介",
        "最新",
        "初心者",
        "勉強",
        "学習",
        "記事",
        "自分",
        "未来",
        "会社",
        "仕事",
    }
)

# Katakana business buzzwords
GENERIC_KATAKANA_WORDS = frozenset(
    {
        "プロダクト",
        "アーキテクチャ",
        "テクノロジー",
        "コンテンツ",
        "マーケティング",
        "キャリア",
        "リーダーシップ",
        "ミーティング",
    }
)


def normalize_tag(raw: object) -> Optional[str]:
    """Turn raw text into a canonical tag, or ``None`` when it is unusable.

    Hash markers (``#`` / ``＃``) are stripped from both ends, characters
    outside :data:`TAG_CHARS` are dropped and the result is lowercased when
    it contains any ASCII letter; non-Latin scripts keep their case. Tokens
    shorter than two characters or listed in :data:`STOP_WORDS` are
    rejected, longer ones are cut to forty characters. Never raises.
    """

    if not isinstance(raw, str):
        return None
    s = raw.strip()
    if not s:
        return None

    s = _HASH_PREFIX.sub("", s)
    s = _HASH_SUFFIX.sub("", s).strip()
    if not s:
        return None

    s = _DISALLOWED.sub("", s)
    if _ASCII_LETTER.search(s):
        # lower() may emit combining marks (e.g. for "İ"); filter again
        s = _DISALLOWED.sub("", s.lower())

    if len(s) < MIN_TAG_LEN:
        return None
    if len(s) > MAX_TAG_LEN:
        s = s[:MAX_TAG_LEN]

    if s in STOP_WORDS:
        return None
    return s


def is_noisy_tag(name: str) -> bool:
    """Return ``True`` for tags that are too generic, numeric or URL-like."""

    n = normalize_tag(name)
    if not n:
        return True
    if n.isdecimal():
        return True
    if _URL_LIKE.search(name):
        return True
    if n in GENERIC_JA_WORDS or n in GENERIC_KATAKANA_WORDS:
        return True
    return False


__all__ = [
    "normalize_tag",
    "is_noisy_tag",
    "TAG_CHARS",
    "MIN_TAG_LEN",
    "MAX_TAG_LEN",
    "STOP_WORDS",
]
