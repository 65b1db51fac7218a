from sendly.services.billing_service import BillingService, BillingWebhookError
from sendly.services.preference_service import (
    InvalidPreferencesError,
    PreferenceError,
    PreferencesNotFoundError,
    PreferenceService,
)
from sendly.services.status_gate import ActivityStatusGate, GateResult

__all__ = [
    "ActivityStatusGate",
    "BillingService",
    "BillingWebhookError",
    "GateResult",
    "InvalidPreferencesError",
    "PreferenceError",
    "PreferenceService",
    "PreferencesNotFoundError",
]
