from sendly.news.client import NewsApiClient, NewsClient
from sendly.news.fallback import placeholder_articles
from sendly.news.schemas import Article

__all__ = ["Article", "NewsApiClient", "NewsClient", "placeholder_articles"]
