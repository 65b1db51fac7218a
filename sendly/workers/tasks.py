"""
Celery tasks that drive the newsletter pipeline off the ``scheduled_events`` table.

- ``newsletter.dispatch_due`` (beat, every minute) claims due events and enqueues runs
- ``newsletter.run_scheduled`` executes one run, using the event id as the run id
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx
from celery import Task
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sendly.content.strategies import (
    AISummaryContentStrategy,
    ContentStrategy,
    TemplateContentStrategy,
)
from sendly.core.config import settings
from sendly.core.errors import ConfigurationError
from sendly.db.base import utcnow
from sendly.db.session import build_session_maker
from sendly.delivery.client import DeliveryUnavailableError, ResendEmailClient
from sendly.llm.client import LLMUnavailableError, OpenAIClient
from sendly.news.cache import TTLCache
from sendly.news.client import NewsApiClient
from sendly.services.status_gate import ActivityStatusGate
from sendly.workers.celery_app import celery_app
from sendly.workflows.audit import RunAudit
from sendly.workflows.events import DatabaseEventQueue, ScheduleEvent, TransactionalEventPublisher
from sendly.workflows.newsletter import CompletedRun, NewsletterWorkflow
from sendly.workflows.steps import SqlAlchemyStepStore

logger = logging.getLogger(__name__)

WorkflowFactory = Callable[[async_sessionmaker[AsyncSession]], NewsletterWorkflow]

FINISHED_EVENT_STATUSES = ("completed", "skipped", "cancelled", "failed")

# Failures worth another attempt. Configuration and rejection errors are final.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    DeliveryUnavailableError,
    LLMUnavailableError,
    SQLAlchemyError,
    httpx.TransportError,
)

# Shared by every run in this worker process.
_article_cache: TTLCache = TTLCache(settings.article_cache_ttl_seconds)


def build_content_strategy() -> ContentStrategy:
    if settings.content_strategy == "ai":
        return AISummaryContentStrategy(OpenAIClient())
    return TemplateContentStrategy()


def build_workflow(session_maker: async_sessionmaker[AsyncSession]) -> NewsletterWorkflow:
    """Wire the pipeline from settings. Missing credentials raise ``ConfigurationError``."""
    return NewsletterWorkflow(
        gate=ActivityStatusGate(session_maker),
        news_client=NewsApiClient(cache=_article_cache),
        content_strategy=build_content_strategy(),
        email_client=ResendEmailClient(),
        publisher=TransactionalEventPublisher(session_maker),
        step_store=SqlAlchemyStepStore(session_maker),
    )


async def _dispatch_due(
    session_maker: async_sessionmaker[AsyncSession],
    enqueue: Callable[[str], Any],
    now: datetime | None = None,
    limit: int | None = None,
) -> list[str]:
    """Claim due events in one transaction, then hand each to a worker."""
    async with session_maker() as session:
        try:
            event_ids = await DatabaseEventQueue(session).claim_due(
                now or utcnow(), limit or settings.dispatch_batch_size
            )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    for index, event_id in enumerate(event_ids):
        try:
            enqueue(event_id)
        except Exception:
            unsent = event_ids[index:]
            logger.exception(
                "Enqueue failed, releasing claimed events", extra={"count": len(unsent)}
            )
            await _release_events(session_maker, unsent)
            raise
    if event_ids:
        logger.info("Dispatched due newsletters", extra={"count": len(event_ids)})
    return event_ids


async def _release_events(
    session_maker: async_sessionmaker[AsyncSession], event_ids: list[str]
) -> None:
    async with session_maker() as session:
        await DatabaseEventQueue(session).release(event_ids)
        await session.commit()


async def _mark_event(
    session_maker: async_sessionmaker[AsyncSession], event_id: str, status: str
) -> None:
    async with session_maker() as session:
        await DatabaseEventQueue(session).mark(event_id, status)
        await session.commit()


async def _execute_event(
    event_id: str,
    session_maker: async_sessionmaker[AsyncSession],
    workflow_factory: WorkflowFactory = build_workflow,
    *,
    final_attempt: bool = True,
) -> dict[str, Any]:
    """Run the pipeline for one stored event and record the outcome."""
    async with session_maker() as session:
        row = await DatabaseEventQueue(session).get(event_id)
        if row is None:
            logger.warning("Scheduled event not found", extra={"event_id": event_id})
            return {"skipped": True, "reason": "event_not_found", "runId": event_id}
        if row.status in FINISHED_EVENT_STATUSES:
            return {"skipped": True, "reason": f"event_{row.status}", "runId": event_id}
        event = ScheduleEvent.model_validate(row.payload)

    audit = RunAudit(session_maker)
    log_extra = {"user_id": event.user_id, "run_id": event_id}
    try:
        workflow = workflow_factory(session_maker)
        result = await workflow.run(event, run_id=event_id)
    except ConfigurationError as exc:
        logger.error("Run cannot start: %s", exc, extra=log_extra)
        await audit.record_error(event.user_id, event_id, exc)
        await _mark_event(session_maker, event_id, "failed")
        raise
    except Exception as exc:
        logger.exception("Run failed", extra=log_extra)
        await audit.record_error(event.user_id, event_id, exc)
        if final_attempt or not isinstance(exc, RETRYABLE_ERRORS):
            await _mark_event(session_maker, event_id, "failed")
        raise

    output = result.to_output()
    if isinstance(result, CompletedRun):
        await audit.record_outcome(event.user_id, event_id, "sent", output)
        await _mark_event(session_maker, event_id, "completed")
    else:
        await audit.record_outcome(event.user_id, event_id, "skipped", output)
        await _mark_event(session_maker, event_id, "skipped")
    return output


async def _with_engine(work: Callable[[async_sessionmaker[AsyncSession]], Any]) -> Any:
    # Each task gets its own engine; pooled connections cannot cross event loops.
    engine, session_maker = build_session_maker(str(settings.database_url))
    try:
        return await work(session_maker)
    finally:
        await engine.dispose()


class NewsletterTask(Task):
    """Base task class with retry logic for transient pipeline failures."""

    autoretry_for = RETRYABLE_ERRORS
    max_retries = 5
    retry_backoff = 30
    retry_backoff_max = 30 * 60  # 30 minutes
    retry_jitter = True
    acks_late = True
    reject_on_worker_lost = True


@celery_app.task(name="newsletter.dispatch_due")
def dispatch_due() -> int:
    """Beat entry point: enqueue every event whose delivery time has passed."""
    event_ids = asyncio.run(
        _with_engine(lambda session_maker: _dispatch_due(session_maker, run_scheduled.delay))
    )
    return len(event_ids)


@celery_app.task(base=NewsletterTask, name="newsletter.run_scheduled", bind=True)
def run_scheduled(self: Task, event_id: str) -> dict[str, Any]:
    """Execute one newsletter run; the event id doubles as the run id."""
    final_attempt = self.request.retries >= (self.max_retries or 0)
    return asyncio.run(
        _with_engine(
            lambda session_maker: _execute_event(
                event_id, session_maker, final_attempt=final_attempt
            )
        )
    )
