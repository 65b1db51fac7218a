from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from sendly.news.schemas import Article

# Values the search provider substitutes for takedowns or missing fields.
_PLACEHOLDER_VALUES = frozenset(
    {
        "",
        "[removed]",
        "no title",
        "no description available",
        "no description available for this article.",
        "#",
    }
)
_LOW_VALUE_PATTERNS = [
    re.compile(r"\bv?\d+\.\d+(\.\d+)?\b.*\b(released?|is out|now available)\b", re.IGNORECASE),
    re.compile(r"\b(release notes|changelog|change log|patch notes)\b", re.IGNORECASE),
    re.compile(r"^\s*(version|release)\s+v?\d", re.IGNORECASE),
]
MIN_TITLE_LENGTH = 5
MIN_DESCRIPTION_LENGTH = 10


def _clean(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.split())


def _is_placeholder(value: str) -> bool:
    return value.casefold() in _PLACEHOLDER_VALUES


def is_low_value(title: str, description: str) -> bool:
    """True for version bumps, release announcements and changelog posts."""
    text = f"{title} {description}"
    return any(pattern.search(text) for pattern in _LOW_VALUE_PATTERNS)


def normalize_article(raw: dict[str, Any], topic: str | None = None) -> Article | None:
    """Map a raw search hit to an Article, or None when it lacks usable content."""
    title = _clean(raw.get("title"))
    description = _clean(raw.get("description"))
    url = _clean(raw.get("url"))
    if _is_placeholder(title) or _is_placeholder(description) or _is_placeholder(url):
        return None
    if len(title) <= MIN_TITLE_LENGTH or len(description) <= MIN_DESCRIPTION_LENGTH:
        return None
    if not url.startswith(("http://", "https://")):
        return None

    source = raw.get("source")
    source_name = source.get("name") if isinstance(source, dict) else source
    return Article(
        title=title,
        url=url,
        description=description,
        published_at=_clean(raw.get("publishedAt")) or None,
        author=_clean(raw.get("author")) or None,
        source=_clean(source_name) or None,
        url_to_image=_clean(raw.get("urlToImage")) or None,
        content=_clean(raw.get("content")) or None,
        topic=topic,
    )


def select_articles(
    raw_articles: Iterable[dict[str, Any]],
    topic: str,
    limit: int,
    filter_low_value: bool = True,
) -> list[Article]:
    """Normalize, filter and cap one topic's raw results, preserving provider order."""
    selected: list[Article] = []
    seen_urls: set[str] = set()
    for raw in raw_articles:
        article = normalize_article(raw, topic=topic)
        if article is None or article.url in seen_urls:
            continue
        if filter_low_value and is_low_value(article.title, article.description):
            continue
        seen_urls.add(article.url)
        selected.append(article)
        if len(selected) >= limit:
            break
    return selected


def deduplicate(articles: Iterable[Article]) -> list[Article]:
    """Drop repeated URLs across topics, keeping the first occurrence."""
    unique: list[Article] = []
    seen: set[str] = set()
    for article in articles:
        key = article.url.rstrip("/").casefold()
        if key in seen:
            continue
        seen.add(key)
        unique.append(article)
    return unique
