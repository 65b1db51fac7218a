from sendly.api.schemas.billing import PlansResponse, WebhookReceivedResponse
from sendly.api.schemas.meta import HealthResponse
from sendly.api.schemas.preferences import (
    PreferencesRequest,
    PreferencesResponse,
    PreferencesSavedResponse,
    PreferencesStatusRequest,
    SendTestResponse,
)

__all__ = [
    "HealthResponse",
    "PlansResponse",
    "PreferencesRequest",
    "PreferencesResponse",
    "PreferencesSavedResponse",
    "PreferencesStatusRequest",
    "SendTestResponse",
    "WebhookReceivedResponse",
]
