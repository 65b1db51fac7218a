from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

MAX_INTRO_LENGTH = 1200


class NewsletterIntro(BaseModel):
    """Structured output from LLM for a newsletter's opening paragraph."""

    text: str = Field(..., description="Two or three sentence editor's introduction")

    @field_validator("text")
    @classmethod
    def normalize_text(cls, value: str) -> str:
        """Collapse whitespace, reject empty text and trim overly long answers."""
        cleaned = " ".join(value.split())
        if not cleaned:
            raise ValueError("Introduction must not be empty")
        if len(cleaned) > MAX_INTRO_LENGTH:
            cleaned = cleaned[:MAX_INTRO_LENGTH].rsplit(" ", 1)[0] + "..."
        return cleaned
