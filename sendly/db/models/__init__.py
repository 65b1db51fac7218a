from sendly.db.models.newsletter_run import NewsletterError, NewsletterQueueEntry, WorkflowStep
from sendly.db.models.scheduled_event import ScheduledEvent
from sendly.db.models.user_preference import UserPreference

__all__ = [
    "NewsletterError",
    "NewsletterQueueEntry",
    "ScheduledEvent",
    "UserPreference",
    "WorkflowStep",
]
