from sendly.workflows.events import (
    DatabaseEventQueue,
    EventPublisher,
    ScheduleEvent,
    TransactionalEventPublisher,
)
from sendly.workflows.newsletter import CompletedRun, NewsletterWorkflow, SkippedRun
from sendly.workflows.schedule import Frequency, compute_next_run, reactivation_events
from sendly.workflows.steps import SqlAlchemyStepStore, StepRunner

__all__ = [
    "CompletedRun",
    "DatabaseEventQueue",
    "EventPublisher",
    "Frequency",
    "NewsletterWorkflow",
    "ScheduleEvent",
    "SkippedRun",
    "SqlAlchemyStepStore",
    "StepRunner",
    "TransactionalEventPublisher",
    "compute_next_run",
    "reactivation_events",
]
