from sendly.content.document import NewsletterDocument
from sendly.content.html import build_subject, render_email_html
from sendly.content.strategies import (
    AISummaryContentStrategy,
    ContentStrategy,
    TemplateContentStrategy,
    build_document,
)

__all__ = [
    "AISummaryContentStrategy",
    "ContentStrategy",
    "NewsletterDocument",
    "TemplateContentStrategy",
    "build_document",
    "build_subject",
    "render_email_html",
]
