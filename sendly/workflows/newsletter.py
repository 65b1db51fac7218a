"""The newsletter pipeline: gate, fetch, render, deliver, reschedule.

Every stage runs through a ``StepRunner`` so a retried run replays completed
stages from their checkpoints instead of executing them again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from sendly.content.document import NewsletterDocument
from sendly.content.html import build_subject, render_email_html
from sendly.content.strategies import ContentStrategy
from sendly.core.config import settings
from sendly.db.base import utcnow
from sendly.delivery.client import EmailClient
from sendly.news.client import NewsClient
from sendly.news.fallback import placeholder_articles
from sendly.news.schemas import Article
from sendly.services.status_gate import REASON_CHECK_FAILED, ActivityStatusGate, GateResult
from sendly.workflows.events import EventPublisher, ScheduleEvent
from sendly.workflows.schedule import compute_next_run
from sendly.workflows.steps import StepRunner, StepStore

logger = logging.getLogger(__name__)

STEP_CHECK_STATUS = "check-user-status"
STEP_FETCH_NEWS = "fetch-news"
STEP_GENERATE = "generate-newsletter"
STEP_SEND_EMAIL = "send-email"
STEP_SCHEDULE_NEXT = "schedule-next"


class _RunResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_output(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SkippedRun(_RunResult):
    skipped: Literal[True] = True
    reason: str
    user_id: str
    run_id: str


class CompletedRun(_RunResult):
    newsletter: str
    article_count: int
    categories: list[str]
    email_sent: bool = True
    next_scheduled: bool
    success: bool = True
    run_id: str


RunResult = SkippedRun | CompletedRun


class NewsletterWorkflow:
    def __init__(
        self,
        gate: ActivityStatusGate,
        news_client: NewsClient,
        content_strategy: ContentStrategy,
        email_client: EmailClient,
        publisher: EventPublisher,
        step_store: StepStore,
        *,
        articles_per_topic: int | None = None,
        max_concurrent_fetches: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._gate = gate
        self._news_client = news_client
        self._content_strategy = content_strategy
        self._email_client = email_client
        self._publisher = publisher
        self._step_store = step_store
        self._articles_per_topic = articles_per_topic or settings.articles_per_topic
        self._max_concurrent = max_concurrent_fetches or settings.max_concurrent_fetches
        self._clock = clock

    async def run(self, event: ScheduleEvent, run_id: str) -> RunResult:
        steps = StepRunner(run_id, self._step_store)
        log_extra = {"user_id": event.user_id, "run_id": run_id}

        async def check_status() -> dict[str, Any]:
            return (await self._gate.check(event.user_id)).to_dict()

        status = GateResult.from_dict(await steps.run(STEP_CHECK_STATUS, check_status))
        if not status.is_active:
            reason = status.reason or "inactive"
            logger.info("Run skipped", extra={**log_extra, "reason": reason})
            if reason == REASON_CHECK_FAILED and not event.is_test:
                # Subscriber state unknown: keep the chain alive, the next run checks again.
                await self._schedule_next(event, steps, log_extra)
            return SkippedRun(reason=reason, user_id=event.user_id, run_id=run_id)

        async def fetch_news() -> list[dict[str, Any]]:
            articles = await self._news_client.fetch(
                event.categories,
                per_topic=self._articles_per_topic,
                max_concurrent=self._max_concurrent,
            )
            if not articles:
                logger.warning("No articles found, using placeholder content", extra=log_extra)
                articles = placeholder_articles(event.categories, self._clock())
            return [article.model_dump(mode="json", by_alias=True) for article in articles]

        raw_articles = await steps.run(STEP_FETCH_NEWS, fetch_news)
        articles = [Article.model_validate(item) for item in raw_articles]

        async def generate() -> dict[str, Any]:
            document = await self._content_strategy.render(
                articles, event.categories, event.frequency, self._clock()
            )
            return {
                "document": document.model_dump(mode="json"),
                "markdown": document.to_markdown(),
                "subject": build_subject(event.frequency, event.categories),
            }

        generated = await steps.run(STEP_GENERATE, generate)
        document = NewsletterDocument.model_validate(generated["document"])

        async def send_email() -> dict[str, Any]:
            html_body = render_email_html(document, generated["subject"])
            receipt = await self._email_client.send(event.email, generated["subject"], html_body)
            return receipt.model_dump(mode="json")

        await steps.run(STEP_SEND_EMAIL, send_email)

        next_scheduled = False
        if not event.is_test:
            await self._schedule_next(event, steps, log_extra)
            next_scheduled = True

        return CompletedRun(
            newsletter=generated["markdown"],
            article_count=document.summary.article_count,
            categories=event.categories,
            next_scheduled=next_scheduled,
            run_id=run_id,
        )

    async def _schedule_next(
        self, event: ScheduleEvent, steps: StepRunner, log_extra: dict[str, Any]
    ) -> dict[str, Any]:
        async def schedule_next() -> dict[str, Any]:
            next_run = compute_next_run(event.frequency, self._clock())
            successor = ScheduleEvent(
                user_id=event.user_id,
                email=event.email,
                categories=event.categories,
                frequency=event.frequency,
                scheduled_for=next_run,
                is_test=False,
            )
            event_id = await self._publisher.send(successor)
            logger.info(
                "Next newsletter scheduled",
                extra={**log_extra, "scheduled_for": next_run.isoformat()},
            )
            return {"eventId": event_id, "scheduledFor": next_run.isoformat()}

        return await steps.run(STEP_SCHEDULE_NEXT, schedule_next)
