from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Article(BaseModel):
    """A normalized search result, transient for the duration of one run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str
    url: str
    description: str
    published_at: str | None = None
    author: str | None = None
    source: str | None = None
    url_to_image: str | None = None
    content: str | None = None
    topic: str | None = Field(
        default=None, description="Topic whose search produced this article, when known"
    )
