"""Unit tests for article normalization, filtering and fallback content."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import pytest

from sendly.news.cache import TTLCache
from sendly.news.fallback import placeholder_articles
from sendly.news.filters import deduplicate, is_low_value, normalize_article, select_articles
from sendly.news.schemas import Article


def _raw(**overrides: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "title": "Researchers publish new results on protein folding",
        "description": "The team describes a method that improves accuracy on hard targets.",
        "url": "https://science.example.com/folding",
        "source": {"name": "Science Daily"},
        "publishedAt": "2026-05-19T08:30:00Z",
    }
    raw.update(overrides)
    return raw


class TestNormalizeArticle:
    def test_maps_provider_fields(self) -> None:
        article = normalize_article(_raw(), topic="biology")

        assert article is not None
        assert article.source == "Science Daily"
        assert article.published_at == "2026-05-19T08:30:00Z"
        assert article.topic == "biology"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "[Removed]"},
            {"title": None},
            {"title": "Short"},
            {"description": "[Removed]"},
            {"description": "Too short"},
            {"url": None},
            {"url": "#"},
            {"url": "ftp://files.example.com/a"},
        ],
    )
    def test_unusable_entries_dropped(self, overrides: dict[str, Any]) -> None:
        assert normalize_article(_raw(**overrides)) is None


@pytest.mark.parametrize(
    "title",
    [
        "Python 3.13.1 released with bug fixes",
        "Kubernetes release notes for the spring cycle",
        "Version 2 of the SDK",
        "Weekly changelog: what shipped",
    ],
)
def test_low_value_patterns(title: str) -> None:
    assert is_low_value(title, "Details inside.")


def test_regular_headline_is_not_low_value() -> None:
    assert not is_low_value("Startups race to build smaller language models", "Analysis.")


def test_select_articles_filters_and_caps() -> None:
    raw = [
        _raw(url="https://a.example.com/1"),
        _raw(url="https://a.example.com/1"),
        _raw(url="https://a.example.com/2", title="Python 3.13.1 released with bug fixes"),
        _raw(url="https://a.example.com/3"),
        _raw(url="https://a.example.com/4"),
    ]

    selected = select_articles(raw, topic="python", limit=2)

    assert [a.url for a in selected] == ["https://a.example.com/1", "https://a.example.com/3"]


def test_select_articles_keeps_low_value_when_filter_disabled() -> None:
    raw = [_raw(title="Python 3.13.1 released with bug fixes")]

    assert len(select_articles(raw, topic="python", limit=5, filter_low_value=False)) == 1


def test_deduplicate_ignores_trailing_slash_and_case() -> None:
    first = Article(title="One headline", url="https://a.example.com/x", description="d" * 20)
    second = Article(title="Two headline", url="https://A.example.com/x/", description="d" * 20)

    assert deduplicate([first, second]) == [first]


def test_placeholder_articles_are_deterministic() -> None:
    generated_at = datetime(2026, 5, 20, 9, 0, tzinfo=UTC)

    articles = placeholder_articles(["ai", "space"], generated_at)

    assert articles == placeholder_articles(["ai", "space"], generated_at)
    assert [a.title for a in articles] == [
        "Newsletter Service Update",
        "Latest ai News and Updates",
        "Latest space News and Updates",
    ]
    assert [a.topic for a in articles[1:]] == ["ai", "space"]


def test_ttl_cache_expiry() -> None:
    now = [0.0]
    cache: TTLCache[str, int] = TTLCache(10, clock=lambda: now[0])

    cache.set("k", 1)
    now[0] = 9.9
    assert cache.get("k") == 1
    now[0] = 10.0
    assert cache.get("k") is None
    assert len(cache) == 0
