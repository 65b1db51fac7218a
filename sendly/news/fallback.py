from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sendly.news.schemas import Article


def placeholder_articles(topics: Sequence[str], generated_at: datetime) -> list[Article]:
    """Deterministic stand-in content for runs where every topic came back empty."""
    published_at = generated_at.isoformat()
    articles = [
        Article(
            title="Newsletter Service Update",
            url="#",
            description=(
                "We're currently experiencing high demand for news content. Your personalized "
                "newsletter will be populated with fresh articles in the next delivery."
            ),
            published_at=published_at,
            author="Sendly Team",
            source="Sendly",
            content=(
                "Thank you for your patience. We're working to bring you the latest news "
                "from your selected categories."
            ),
        )
    ]
    for topic in topics:
        articles.append(
            Article(
                title=f"Latest {topic} News and Updates",
                url="#",
                description=(
                    f"Stay informed with the latest developments in {topic}. We're working to "
                    "bring you the most relevant and up-to-date information from trusted sources."
                ),
                published_at=published_at,
                author="Sendly",
                source="Sendly",
                topic=topic,
            )
        )
    return articles
