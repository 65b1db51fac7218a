from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from sendly.core.config import settings
from sendly.core.errors import ConfigurationError
from sendly.news.cache import TTLCache
from sendly.news.filters import deduplicate, select_articles
from sendly.news.schemas import Article

logger = logging.getLogger(__name__)

MIN_PER_TOPIC = 1
MAX_PER_TOPIC = 20
MIN_CONCURRENT = 1
MAX_CONCURRENT = 5
# Request extra results so filtering still leaves ``per_topic`` articles.
_OVERFETCH_FACTOR = 3
_MIN_PAGE_SIZE = 15
_MAX_PAGE_SIZE = 100

CacheKey = tuple[str, int]


class NewsClient(ABC):
    """Abstract base class for article search adapters."""

    @abstractmethod
    async def fetch(
        self, topics: Sequence[str], per_topic: int = 5, max_concurrent: int = 3
    ) -> list[Article]:
        """Fetch recent articles for each topic; failures only empty that topic."""
        raise NotImplementedError


def _validate_fetch_arguments(per_topic: int, max_concurrent: int) -> None:
    if not MIN_PER_TOPIC <= per_topic <= MAX_PER_TOPIC:
        raise ValueError(f"per_topic must be between {MIN_PER_TOPIC} and {MAX_PER_TOPIC}")
    if not MIN_CONCURRENT <= max_concurrent <= MAX_CONCURRENT:
        raise ValueError(
            f"max_concurrent must be between {MIN_CONCURRENT} and {MAX_CONCURRENT}"
        )


class NewsApiClient(NewsClient):
    """NewsAPI ``/v2/everything`` implementation of the article source."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache: TTLCache[CacheKey, list[Article]] | None = None,
        base_url: str | None = None,
        pacing_seconds: float | None = None,
        rate_limit_backoff_seconds: float | None = None,
        lookback_days: int | None = None,
        language: str | None = None,
        filter_low_value: bool | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.api_key = api_key or settings.news_api_key
        if not self.api_key:
            raise ConfigurationError("news_api_key", "NewsApiClient")
        self._http_client = http_client
        self.cache = cache if cache is not None else TTLCache(settings.article_cache_ttl_seconds)
        self._base_url = base_url or settings.news_api_base_url
        self._pacing_seconds = (
            settings.fetch_pacing_seconds if pacing_seconds is None else pacing_seconds
        )
        self._rate_limit_backoff_seconds = (
            settings.rate_limit_backoff_seconds
            if rate_limit_backoff_seconds is None
            else rate_limit_backoff_seconds
        )
        self._lookback_days = lookback_days or settings.article_lookback_days
        self._language = language or settings.article_language
        self._filter_low_value = (
            settings.filter_low_value_articles if filter_low_value is None else filter_low_value
        )
        self._sleep = sleep
        self._now = now

    async def fetch(
        self, topics: Sequence[str], per_topic: int = 5, max_concurrent: int = 3
    ) -> list[Article]:
        _validate_fetch_arguments(per_topic, max_concurrent)
        cleaned = [topic.strip() for topic in topics if topic and topic.strip()]
        if not cleaned:
            return []

        if self._http_client is not None:
            articles = await self._fetch_batches(
                self._http_client, cleaned, per_topic, max_concurrent
            )
        else:
            async with httpx.AsyncClient(timeout=settings.news_request_timeout_seconds) as client:
                articles = await self._fetch_batches(client, cleaned, per_topic, max_concurrent)

        unique = deduplicate(articles)
        logger.info(
            "Fetched articles",
            extra={"topics": cleaned, "article_count": len(unique)},
        )
        return unique

    async def _fetch_batches(
        self,
        client: httpx.AsyncClient,
        topics: list[str],
        per_topic: int,
        max_concurrent: int,
    ) -> list[Article]:
        articles: list[Article] = []
        for start in range(0, len(topics), max_concurrent):
            batch = topics[start : start + max_concurrent]
            results = await asyncio.gather(
                *(
                    self._fetch_topic(client, topic, per_topic, delay=index * self._pacing_seconds)
                    for index, topic in enumerate(batch)
                )
            )
            for topic_articles in results:
                articles.extend(topic_articles)
        return articles

    def _build_params(self, topic: str, per_topic: int) -> dict[str, Any]:
        since = (self._now() - timedelta(days=self._lookback_days)).date()
        page_size = min(max(per_topic * _OVERFETCH_FACTOR, _MIN_PAGE_SIZE), _MAX_PAGE_SIZE)
        return {
            "q": topic,
            "from": since.isoformat(),
            "sortBy": "publishedAt",
            "language": self._language,
            "pageSize": page_size,
        }

    async def _fetch_topic(
        self, client: httpx.AsyncClient, topic: str, per_topic: int, delay: float
    ) -> list[Article]:
        cache_key = (topic.casefold(), per_topic)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Article cache hit", extra={"topic": topic})
            return list(cached)

        if delay > 0:
            await self._sleep(delay)

        try:
            response = await client.get(
                self._base_url,
                params=self._build_params(topic, per_topic),
                headers={"X-Api-Key": str(self.api_key)},
            )
            if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                logger.warning(
                    "Article search rate limited; backing off",
                    extra={"topic": topic, "backoff_seconds": self._rate_limit_backoff_seconds},
                )
                await self._sleep(self._rate_limit_backoff_seconds)
                return []
            if response.status_code >= 500:
                logger.error(
                    "Article search upstream error",
                    extra={"topic": topic, "status_code": response.status_code},
                )
                return []
            if response.status_code != httpx.codes.OK:
                logger.error(
                    "Article search request rejected",
                    extra={
                        "topic": topic,
                        "status_code": response.status_code,
                        "body": response.text[:200],
                    },
                )
                return []

            data = response.json()
            if data.get("status") == "error":
                logger.error(
                    "Article search returned an error payload",
                    extra={"topic": topic, "code": data.get("code"), "detail": data.get("message")},
                )
                return []

            articles = select_articles(
                data.get("articles") or [],
                topic=topic,
                limit=per_topic,
                filter_low_value=self._filter_low_value,
            )
        except Exception:
            logger.exception("Article fetch failed", extra={"topic": topic})
            return []

        if not articles:
            logger.info("No usable articles for topic", extra={"topic": topic})
        self.cache.set(cache_key, articles)
        return list(articles)
