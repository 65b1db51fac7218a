"""Unit tests for newsletter document building and rendering."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from sendly.content.grouping import group_by_topic
from sendly.content.html import build_subject, render_email_html
from sendly.content.strategies import (
    MORE_STORIES_TOPIC,
    AISummaryContentStrategy,
    TemplateContentStrategy,
    build_document,
)
from sendly.llm.schemas import NewsletterIntro
from sendly.news.fallback import placeholder_articles
from sendly.news.schemas import Article

GENERATED_AT = datetime(2026, 5, 20, 9, 0, tzinfo=UTC)


def _article(n: int, topic: str | None, title: str | None = None) -> Article:
    return Article(
        title=title or f"Story number {n} about {topic}",
        url=f"https://news.example.com/{topic}/{n}",
        description=f"Summary of story {n} with enough words to be useful.",
        source="Example Wire",
        published_at="2026-05-19T08:30:00Z",
        topic=topic,
    )


class TestGrouping:
    def test_tagged_articles_go_to_their_topic(self) -> None:
        articles = [_article(1, "ai"), _article(2, "blockchain"), _article(3, "ai")]

        groups, unmatched = group_by_topic(articles, ["ai", "blockchain"])

        assert [a.url for a in groups["ai"]] == [articles[0].url, articles[2].url]
        assert groups["blockchain"] == [articles[1]]
        assert unmatched == []

    def test_untagged_articles_matched_by_keywords(self) -> None:
        article = Article(
            title="Machine learning speeds up drug discovery",
            url="https://x.example.com/1",
            description="Labs adopt new models.",
        )

        groups, _ = group_by_topic([article], ["space", "machine learning"])

        assert groups["machine learning"] == [article]

    def test_keyword_tie_goes_to_earliest_topic(self) -> None:
        article = Article(
            title="Quantum computing and climate research collide",
            url="https://x.example.com/2",
            description="A joint program begins.",
        )

        groups, _ = group_by_topic([article], ["climate", "quantum"])

        assert groups["climate"] == [article]
        assert groups["quantum"] == []

    def test_unmatched_articles_returned_separately(self) -> None:
        article = Article(
            title="Local bakery wins award",
            url="https://x.example.com/3",
            description="Bread lovers rejoice downtown.",
        )

        groups, unmatched = group_by_topic([article], ["ai"])

        assert groups["ai"] == []
        assert unmatched == [article]


class TestBuildDocument:
    def test_sections_follow_topic_order_and_cap(self) -> None:
        # Arrange
        articles = [_article(i, "ai") for i in range(7)] + [_article(1, "blockchain")]

        # Act
        document = build_document(
            articles, ["blockchain", "ai"], "weekly", GENERATED_AT, max_articles_per_section=3
        )

        # Assert
        assert [s.topic for s in document.sections] == ["blockchain", "ai"]
        assert len(document.sections[1].articles) == 3
        assert document.summary.article_count == 8
        assert document.summary.topics == ["blockchain", "ai"]
        assert len(document.quick_links) == 3
        assert document.quick_links[0].url == articles[7].url

    def test_empty_topic_sections_are_omitted(self) -> None:
        document = build_document([_article(1, "ai")], ["ai", "space"], "daily", GENERATED_AT)

        assert [s.topic for s in document.sections] == ["ai"]

    def test_unmatched_articles_land_in_more_stories(self) -> None:
        stray = Article(
            title="Local bakery wins award",
            url="https://x.example.com/3",
            description="Bread lovers rejoice downtown.",
        )

        document = build_document([stray], ["ai"], "daily", GENERATED_AT)

        assert [s.topic for s in document.sections] == [MORE_STORIES_TOPIC]

    @pytest.mark.parametrize("cap", [1, 6])
    def test_section_cap_bounds(self, cap: int) -> None:
        with pytest.raises(ValueError):
            build_document([], ["ai"], "daily", GENERATED_AT, max_articles_per_section=cap)

    def test_placeholder_content_skips_quick_links(self) -> None:
        articles = placeholder_articles(["ai"], GENERATED_AT)

        document = build_document(articles, ["ai"], "weekly", GENERATED_AT)

        assert document.quick_links == []
        assert document.summary.article_count == 2


@pytest.mark.asyncio
async def test_template_strategy_is_deterministic() -> None:
    articles = [_article(1, "ai"), _article(2, "blockchain")]
    strategy = TemplateContentStrategy()

    first = await strategy.render(articles, ["ai", "blockchain"], "weekly", GENERATED_AT)
    second = await strategy.render(articles, ["ai", "blockchain"], "weekly", GENERATED_AT)

    assert first == second
    assert first.to_markdown() == second.to_markdown()
    assert render_email_html(first, "s") == render_email_html(second, "s")


def test_markdown_layout() -> None:
    document = build_document([_article(1, "ai")], ["ai"], "weekly", GENERATED_AT)

    markdown = document.to_markdown()

    assert markdown.startswith("# Your Personalized Newsletter")
    assert "## ai" in markdown
    assert "### 1. Story number 1 about ai" in markdown
    assert "**Published:** May 19, 2026" in markdown
    assert "- **Generated:** May 20, 2026" in markdown
    assert "- **Frequency:** weekly" in markdown
    assert "## Quick Links" in markdown


class TestEmailHtml:
    def test_keeps_article_order_and_escapes(self) -> None:
        # Arrange
        articles = [
            _article(1, "ai", title="First <b>bold</b> story"),
            _article(2, "ai", title="Second plain story"),
        ]
        document = build_document(articles, ["ai"], "daily", GENERATED_AT)

        # Act
        html = render_email_html(document, "Subject line")

        # Assert
        assert "max-width:680px" in html
        assert "First &lt;b&gt;bold&lt;/b&gt; story" in html
        assert html.index("First &lt;b&gt;") < html.index("Second plain story")
        assert "<title>Subject line</title>" in html

    def test_placeholder_links_not_rendered(self) -> None:
        articles = placeholder_articles(["ai"], GENERATED_AT)
        document = build_document(articles, ["ai"], "daily", GENERATED_AT)

        html = render_email_html(document, "s")

        assert 'href="#"' not in html

    def test_intro_rendered_when_present(self) -> None:
        document = build_document([_article(1, "ai")], ["ai"], "daily", GENERATED_AT)
        document = document.model_copy(update={"intro": "This week in AI."})

        assert "This week in AI." in render_email_html(document, "s")


@pytest.mark.parametrize(
    ("topics", "expected"),
    [
        ([], "Your weekly newsletter from Sendly"),
        (["ai", "space"], "Your weekly newsletter from Sendly: ai, space"),
        (["a", "b", "c", "d", "e"], "Your weekly newsletter from Sendly: a, b, c +2 more"),
    ],
)
def test_build_subject(topics: list[str], expected: str) -> None:
    assert build_subject("weekly", topics) == expected


@pytest.mark.asyncio
async def test_ai_strategy_adds_intro_from_llm() -> None:
    # Arrange
    llm_client = AsyncMock()
    llm_client.write_intro.return_value = NewsletterIntro(text="Big week for AI.")
    strategy = AISummaryContentStrategy(llm_client)
    articles = [_article(1, "ai")]

    # Act
    document = await strategy.render(articles, ["ai"], "weekly", GENERATED_AT)

    # Assert
    assert document.intro == "Big week for AI."
    assert document.sections[0].articles == articles
    llm_client.write_intro.assert_awaited_once_with(["ai"], [articles[0].title], "weekly")
