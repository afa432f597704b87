"""
Pydantic schemas for the delivery and incident APIs.

Separated from the route handlers so they are reusable across the
codebase (background workers, tests). The generation endpoint reads its
body as raw JSON instead, because its validation rules (grouped missing
fields, defaulting of blank values) live in the generation orchestrator.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from backend.app.generation.models import Tone
from backend.app.incidents.models import FollowUpStatus


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

class SmsDeliveryRequest(BaseModel):
    message: str = Field("", description="SMS body", examples=["ALERT: Fire at 123 Main St. Evacuate now."])
    to: Optional[str] = Field(None, description="E.164 recipient; defaults to SMS_TO_NUMBER", examples=["+15551234567"])


class EmailDeliveryRequest(BaseModel):
    subject: str = Field("", examples=["Emergency Alert: Fire at 123 Main St"])
    body: str = Field("", description="Plain-text email body")
    to: Optional[str] = Field(None, description="Recipient; defaults to EMAIL_TO", examples=["residents@example.com"])


class SocialDeliveryRequest(BaseModel):
    """
    ``platform`` is a plain string so an unsupported value gets the
    channel's own 400 message rather than a schema error.
    """
    platform: str = Field("", examples=["twitter"])
    message: str = Field("", description="Post text")


# ---------------------------------------------------------------------------
# Incidents
# ---------------------------------------------------------------------------

class FollowUpEmailInput(BaseModel):
    subject: str = ""
    body: str = ""


class FollowUpChannelsInput(BaseModel):
    sms: bool = True
    email: bool = True


class FollowUpCreateRequest(BaseModel):
    """A hand-edited (or model-drafted) follow-up to attach to an incident."""
    status: FollowUpStatus = Field(FollowUpStatus.DRAFT, description="draft | scheduled | sent")
    sms: str = Field("", examples=["UPDATE: Fire at 123 Main St. Crews on scene."])
    email: FollowUpEmailInput = Field(default_factory=FollowUpEmailInput)
    channels: FollowUpChannelsInput = Field(default_factory=FollowUpChannelsInput)
    tone: Optional[Tone] = None
    scheduled_at: Optional[datetime] = Field(
        None, description="Required when status is 'scheduled'",
    )


class FollowUpDraftRequest(BaseModel):
    tone: Optional[Tone] = Field(None, description="Overrides the incident's tone for this update")
