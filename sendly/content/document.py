from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from sendly.news.schemas import Article

NEWSLETTER_TITLE = "Your Personalized Newsletter"
FOOTER_NOTE = (
    "This newsletter was automatically generated based on your selected categories. "
    "Stay informed with the latest news and insights!"
)
QUICK_LINK_COUNT = 3


class TopicSection(BaseModel):
    topic: str
    articles: list[Article] = Field(default_factory=list)


class NewsletterSummary(BaseModel):
    topics: list[str]
    article_count: int
    generated_at: datetime
    frequency: str


class QuickLink(BaseModel):
    title: str
    url: str


class NewsletterDocument(BaseModel):
    """Structured newsletter body, independent of its markdown or HTML rendering."""

    title: str = NEWSLETTER_TITLE
    intro: str | None = None
    sections: list[TopicSection]
    summary: NewsletterSummary
    quick_links: list[QuickLink] = Field(default_factory=list)

    @property
    def included_articles(self) -> list[Article]:
        return [article for section in self.sections for article in section.articles]

    def to_markdown(self) -> str:
        generated = format_date(self.summary.generated_at)
        lines = [f"# {self.title}", ""]
        if self.intro:
            lines += [self.intro, ""]
        for section in self.sections:
            lines += [f"## {section.topic}", ""]
            for index, article in enumerate(section.articles, start=1):
                lines += [
                    f"### {index}. {article.title}",
                    "",
                    article.description or "No description available for this article.",
                    "",
                    f"**Source:** {article.source or 'Unknown'}  ",
                    f"**Published:** {format_published(article.published_at)}  ",
                    f"**Read more:** [{article.title}]({article.url})",
                    "",
                ]
        lines += [
            "## Newsletter Summary",
            "",
            f"- **Categories:** {', '.join(self.summary.topics)}",
            f"- **Articles Analyzed:** {self.summary.article_count}",
            f"- **Generated:** {generated}",
            f"- **Frequency:** {self.summary.frequency}",
            "",
        ]
        if self.quick_links:
            lines += ["## Quick Links", ""]
            lines += [
                f"{index}. [{link.title}]({link.url})"
                for index, link in enumerate(self.quick_links, start=1)
            ]
            lines.append("")
        lines += ["---", "", f"*{FOOTER_NOTE}*"]
        return "\n".join(lines)


def format_date(value: datetime) -> str:
    return value.strftime("%B %d, %Y")


def format_published(published_at: str | None) -> str:
    if not published_at:
        return "Unknown date"
    try:
        return format_date(datetime.fromisoformat(published_at.replace("Z", "+00:00")))
    except ValueError:
        return published_at
