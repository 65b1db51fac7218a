from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from sendly.content.document import (
    QUICK_LINK_COUNT,
    NewsletterDocument,
    NewsletterSummary,
    QuickLink,
    TopicSection,
)
from sendly.content.grouping import group_by_topic
from sendly.core.config import settings
from sendly.llm.client import LLMClient
from sendly.news.schemas import Article

MIN_ARTICLES_PER_SECTION = 2
MAX_ARTICLES_PER_SECTION = 5
MORE_STORIES_TOPIC = "More Stories"


class ContentStrategy(ABC):
    """Turns a run's articles into a newsletter document."""

    @abstractmethod
    async def render(
        self,
        articles: Sequence[Article],
        topics: Sequence[str],
        frequency: str,
        generated_at: datetime,
    ) -> NewsletterDocument:
        raise NotImplementedError


def build_document(
    articles: Sequence[Article],
    topics: Sequence[str],
    frequency: str,
    generated_at: datetime,
    max_articles_per_section: int = MAX_ARTICLES_PER_SECTION,
) -> NewsletterDocument:
    """Group, cap and summarise articles. Pure: same input, same document."""
    if not MIN_ARTICLES_PER_SECTION <= max_articles_per_section <= MAX_ARTICLES_PER_SECTION:
        raise ValueError(
            f"max_articles_per_section must be between {MIN_ARTICLES_PER_SECTION} "
            f"and {MAX_ARTICLES_PER_SECTION}"
        )
    ordered_topics = list(dict.fromkeys(topics))
    groups, unmatched = group_by_topic(articles, ordered_topics)

    sections = [
        TopicSection(topic=topic, articles=groups[topic][:max_articles_per_section])
        for topic in ordered_topics
        if groups[topic]
    ]
    if unmatched:
        sections.append(
            TopicSection(topic=MORE_STORIES_TOPIC, articles=unmatched[:max_articles_per_section])
        )

    included = [article for section in sections for article in section.articles]
    quick_links = [
        QuickLink(title=article.title, url=article.url)
        for article in included
        if article.url.startswith(("http://", "https://"))
    ][:QUICK_LINK_COUNT]

    return NewsletterDocument(
        sections=sections,
        summary=NewsletterSummary(
            topics=ordered_topics,
            article_count=len(articles),
            generated_at=generated_at,
            frequency=frequency,
        ),
        quick_links=quick_links,
    )


class TemplateContentStrategy(ContentStrategy):
    """Deterministic, template-only newsletter content."""

    def __init__(self, max_articles_per_section: int | None = None) -> None:
        self.max_articles_per_section = (
            max_articles_per_section or settings.max_articles_per_section
        )

    async def render(
        self,
        articles: Sequence[Article],
        topics: Sequence[str],
        frequency: str,
        generated_at: datetime,
    ) -> NewsletterDocument:
        return build_document(
            articles,
            topics,
            frequency,
            generated_at,
            max_articles_per_section=self.max_articles_per_section,
        )


class AISummaryContentStrategy(ContentStrategy):
    """Template content plus an editor's introduction written by the LLM."""

    def __init__(self, llm_client: LLMClient, base: ContentStrategy | None = None) -> None:
        self._llm_client = llm_client
        self._base = base or TemplateContentStrategy()

    async def render(
        self,
        articles: Sequence[Article],
        topics: Sequence[str],
        frequency: str,
        generated_at: datetime,
    ) -> NewsletterDocument:
        document = await self._base.render(articles, topics, frequency, generated_at)
        headlines = [article.title for article in document.included_articles]
        intro = await self._llm_client.write_intro(document.summary.topics, headlines, frequency)
        return document.model_copy(update={"intro": intro.text})
