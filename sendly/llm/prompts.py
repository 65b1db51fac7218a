"""Prompt templates for LLM interactions."""

from __future__ import annotations

from collections.abc import Sequence

NEWSLETTER_INTRO_SYSTEM_PROMPT = """You are the editor of a personalized email newsletter.

Write a short, friendly introduction (two or three sentences) for this issue.

Guidelines:
- Mention the reader's topics naturally; do not list every headline
- Only refer to stories that appear in the provided headlines
- No greetings with names, no sign-off, no markdown, no emojis
- Keep it under 80 words

Return your response as a JSON object with a single string field: "text".
"""


def get_newsletter_intro_prompt(
    topics: Sequence[str], headlines: Sequence[str], frequency: str
) -> str:
    """Generate the user prompt describing this issue."""
    headline_lines = "\n".join(f"- {headline}" for headline in headlines) or "- (no headlines)"
    return f"""Issue cadence: {frequency}
Reader topics: {", ".join(topics)}

Headlines in this issue:
{headline_lines}

Return a JSON object with a "text" field."""
