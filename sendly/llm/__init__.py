from sendly.llm.client import LLMClient, OpenAIClient
from sendly.llm.schemas import NewsletterIntro

__all__ = ["LLMClient", "NewsletterIntro", "OpenAIClient"]
