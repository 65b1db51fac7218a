from __future__ import annotations

import re
from collections.abc import Sequence

from sendly.news.schemas import Article

_WORD_PATTERN = re.compile(r"[a-z0-9]+")


def _words(text: str) -> set[str]:
    return set(_WORD_PATTERN.findall(text.casefold()))


def _match_score(topic: str, article: Article) -> int:
    """Number of the topic's words found in the article's title and description."""
    topic_words = _words(topic)
    if not topic_words:
        return 0
    haystack = _words(f"{article.title} {article.description}")
    return len(topic_words & haystack)


def group_by_topic(
    articles: Sequence[Article], topics: Sequence[str]
) -> tuple[dict[str, list[Article]], list[Article]]:
    """Assign each article to one topic, keeping input order within each group.

    Articles tagged with a requested topic go straight to it; the rest go to the
    topic with the best keyword overlap (earliest topic wins ties). Articles that
    match nothing are returned separately.
    """
    groups: dict[str, list[Article]] = {topic: [] for topic in topics}
    by_folded = {topic.casefold(): topic for topic in topics}
    unmatched: list[Article] = []
    for article in articles:
        tagged = by_folded.get(article.topic.casefold()) if article.topic else None
        if tagged is not None:
            groups[tagged].append(article)
            continue
        best_topic: str | None = None
        best_score = 0
        for topic in topics:
            score = _match_score(topic, article)
            if score > best_score:
                best_topic, best_score = topic, score
        if best_topic is None:
            unmatched.append(article)
        else:
            groups[best_topic].append(article)
    return groups, unmatched
