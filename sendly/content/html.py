from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, Template

from sendly.content.document import FOOTER_NOTE, NewsletterDocument, format_date, format_published

BRAND_NAME = "Sendly"
_TEMPLATE_DIR = Path(__file__).parent / "templates"
_TEMPLATE_NAME = "newsletter.html"


@lru_cache(maxsize=1)
def _template() -> Template:
    env = Environment(
        loader=FileSystemLoader(_TEMPLATE_DIR),
        autoescape=True,
        undefined=StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["published"] = format_published
    return env.get_template(_TEMPLATE_NAME)


def render_email_html(document: NewsletterDocument, subject: str) -> str:
    """Render the document into the email template; article order is kept as given."""
    return _template().render(
        document=document,
        subject=subject,
        brand=BRAND_NAME,
        generated=format_date(document.summary.generated_at),
        footer_note=FOOTER_NOTE,
    )


def build_subject(frequency: str, topics: list[str]) -> str:
    subject = f"Your {frequency} newsletter from {BRAND_NAME}"
    if topics:
        shown = ", ".join(topics[:3])
        if len(topics) > 3:
            shown += f" +{len(topics) - 3} more"
        subject += f": {shown}"
    return subject
