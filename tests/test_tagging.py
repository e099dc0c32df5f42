import re

import pytest

from libs.tagging import (
    extract_article_tags,
    extract_hashtags,
    extract_keyword_tags,
    is_noisy_tag,
    normalize_tag,
)
from libs.tagging.extractor import MAX_ARTICLE_TAGS
from libs.tagging.normalizer import MAX_TAG_LEN, TAG_CHARS


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("#Python", "python"),
        ("  ＃React＃ ", "react"),
        ("Next.js", "nextjs"),
        ("機械学習", "機械学習"),
        ("LLM-Ops", "llm-ops"),
        ("a", None),
        ("C++", None),
        ("GitHub", None),
        ("###", None),
        ("   ", None),
        (None, None),
        (42, None),
    ],
)
def test_normalize_tag(raw, expected):
    assert normalize_tag(raw) == expected


def test_normalize_tag_truncates_long_input():
    assert normalize_tag("x" * 100) == "x" * MAX_TAG_LEN


def test_normalized_tags_are_canonical():
    samples = ["#Python", "Next.js", "機械学習", "ÇA-VA", "İstanbul", "プロンプト", "x" * 90, "a_b"]
    charset = re.compile(rf"[{TAG_CHARS}]+")
    for raw in samples:
        tag = normalize_tag(raw)
        assert tag is not None
        assert 2 <= len(tag) <= MAX_TAG_LEN
        assert charset.fullmatch(tag)
        assert normalize_tag(tag) == tag


@pytest.mark.parametrize(
    "name, noisy",
    [
        ("python", False),
        ("機械学習", False),
        ("2024", True),
        ("入門", True),
        ("プロダクト", True),
        ("https://example.com", True),
        ("a", True),
    ],
)
def test_is_noisy_tag(name, noisy):
    assert is_noisy_tag(name) is noisy


def test_extract_hashtags_dedupes_in_order():
    text = "Learn #Python and ＃機械学習 then #python again"
    assert extract_hashtags(text) == ["python", "機械学習"]
    assert extract_hashtags(None) == []


def test_extract_keyword_tags():
    tags = extract_keyword_tags("Building RAG apps with Next.js and GPT-4")
    assert tags == ["rag", "nextjs", "gpt-4"]


def test_extract_keyword_tags_katakana_runs():
    tags = extract_keyword_tags("プロンプトエンジニアリング入門")
    assert tags == ["プロンプトエンジニアリング"]


def test_extract_article_tags_hashtags_first_and_filtered():
    tags = extract_article_tags("#2024 #入門 Using React", "#python tips")
    assert tags == ["python", "react"]


def test_extract_article_tags_caps_count():
    title = " ".join(f"#topic{i:02d}" for i in range(30))
    tags = extract_article_tags(title)
    assert len(tags) == MAX_ARTICLE_TAGS
    assert tags[0] == "topic00"


def test_extract_article_tags_ignores_url():
    assert extract_article_tags("", None, "https://github.com/openai/llm-repo") == []
