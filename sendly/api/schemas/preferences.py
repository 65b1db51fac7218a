from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PreferencesRequest(BaseModel):
    """Request model for saving newsletter preferences.

    Field rules (non-empty categories, known frequency, email shape) are checked by
    the preference service so failures come back as a single 400 with field details.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "categories": ["artificial intelligence", "blockchain"],
                    "frequency": "weekly",
                    "email": "reader@example.com",
                    "send_now": True,
                }
            ]
        }
    )

    categories: list[str] = Field(..., description="Topics to follow, in display order")
    frequency: str = Field(..., description="daily, weekly or biweekly", examples=["weekly"])
    email: str = Field(..., max_length=320, description="Delivery address")
    send_now: bool = Field(
        default=True, description="Also queue an immediate one-off newsletter"
    )


class PreferencesStatusRequest(BaseModel):
    """Request model for pausing or resuming the newsletter."""

    model_config = ConfigDict(json_schema_extra={"examples": [{"is_active": False}]})

    is_active: bool


class PreferencesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    categories: list[str]
    frequency: str
    email: str | None
    is_active: bool
    subscription_plan: str
    subscription_status: str
    created_at: datetime
    updated_at: datetime


class PreferencesSavedResponse(BaseModel):
    success: bool = True
    message: str
    preferences: PreferencesResponse
    schedule_ids: list[str] = Field(default_factory=list)


class SendTestResponse(BaseModel):
    success: bool = True
    message: str
    schedule_id: str
