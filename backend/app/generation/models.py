"""
models.py — Data structures shared across the generation pipeline.

Defines:
    • IncidentType / Severity / Tone / Stage — closed vocabularies
    • GenerateRequest   — raw inbound body (every field optional)
    • IncidentContext   — validated, defaulted context for one request
    • ResponseMetadata  — timestamp / sender / tone block
    • GenerateResponse  — initial-alert output contract
    • FollowUpGenerateResponse — follow-up output contract

The output models enforce the contract on construction: ``sms`` and every
translation value are clipped to 160 characters (never rejected) and
``compliance_flags`` is de-duplicated with the first occurrence winning.
Whatever path produced the response (model, parser, mock), the
invariants hold once the model object exists.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.generation.constants import (
    DEFAULT_READABILITY_GRADE,
    SMS_MAX_LENGTH,
)


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class IncidentType(str, Enum):
    GAS_LEAK       = "Gas Leak"
    FIRE           = "Fire"
    SEVERE_WEATHER = "Severe Weather"
    LOCKDOWN       = "Lockdown"
    UTILITY_OUTAGE = "Utility Outage"


class Severity(str, Enum):
    LOW    = "Low"
    MEDIUM = "Medium"
    HIGH   = "High"


class Tone(str, Enum):
    CALM    = "Calm"      # reassuring, steady
    NEUTRAL = "Neutral"   # clear and direct
    URGENT  = "Urgent"    # concise and commanding


class Stage(str, Enum):
    INITIAL   = "initial"
    FOLLOW_UP = "follow_up"


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def clip_sms(text: str) -> str:
    """Clip text to the SMS ceiling."""
    return text[:SMS_MAX_LENGTH]


def merge_compliance_flags(*sources: Iterable[str]) -> List[str]:
    """
    Merge flag lists in order, dropping repeats.

    The first source's order is preserved; later sources only append
    flags not already present (string equality).
    """
    merged: List[str] = []
    for source in sources:
        for flag in source:
            if flag not in merged:
                merged.append(flag)
    return merged


# ═══════════════════════════════════════════════════════════════════════════
# Input
# ═══════════════════════════════════════════════════════════════════════════

class GenerateRequest(BaseModel):
    """Raw inbound body before validation — nothing is required here."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    stage: Optional[str] = None
    incident_type: Optional[str] = Field(None, alias="incidentType")
    location: Optional[str] = None
    severity: Optional[str] = None
    confirmed_facts: Optional[str] = Field(None, alias="confirmedFacts")
    required_action: Optional[str] = Field(None, alias="requiredAction")
    audience: Optional[str] = None
    reading_level: Optional[Any] = Field(None, alias="readingLevel")
    tone: Optional[str] = None
    sender: Optional[str] = None
    previous_sms: Optional[str] = Field(None, alias="previousSms")
    last_follow_up_sms: Optional[str] = Field(None, alias="lastFollowUpSms")


@dataclass(frozen=True)
class IncidentContext:
    """
    Validated, defaulted representation of one notification request.

    Enum-typed fields are stored as their display strings so they can be
    embedded in prompts and templates directly.
    """
    incident_type: str
    location: str
    confirmed_facts: str
    severity: str
    audience: str
    reading_level: int
    tone: str
    sender: str
    required_action: Optional[str] = None

    @property
    def is_urgent(self) -> bool:
        return self.tone == Tone.URGENT.value


# ═══════════════════════════════════════════════════════════════════════════
# Output
# ═══════════════════════════════════════════════════════════════════════════

class EmailContent(BaseModel):
    subject: str = ""
    body: str = ""


class ResponseMetadata(BaseModel):
    timestamp_iso: str
    formatted_time: str
    sender: str
    tone: str


class GenerateResponse(BaseModel):
    """Multi-channel notification package for an initial alert."""
    sms: str
    voice_script: str = ""
    email: EmailContent = Field(default_factory=EmailContent)
    social_post: str = ""
    translations: Dict[str, str] = Field(default_factory=dict)
    readability_grade_estimate: Union[int, float] = DEFAULT_READABILITY_GRADE
    compliance_flags: List[str] = Field(default_factory=list)
    follow_up_suggestion: str = ""
    metadata: ResponseMetadata

    @field_validator("sms")
    @classmethod
    def _clip_sms(cls, value: str) -> str:
        return clip_sms(value)

    @field_validator("translations")
    @classmethod
    def _clip_translations(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {lang: clip_sms(text) for lang, text in value.items()}

    @field_validator("compliance_flags")
    @classmethod
    def _dedupe_flags(cls, value: List[str]) -> List[str]:
        return merge_compliance_flags(value)


class FollowUpContent(BaseModel):
    sms: str
    email: EmailContent = Field(default_factory=EmailContent)
    compliance_flags: List[str] = Field(default_factory=list)

    @field_validator("sms")
    @classmethod
    def _clip_sms(cls, value: str) -> str:
        return clip_sms(value)

    @field_validator("compliance_flags")
    @classmethod
    def _dedupe_flags(cls, value: List[str]) -> List[str]:
        return merge_compliance_flags(value)


class FollowUpGenerateResponse(BaseModel):
    """Update message package for the follow-up stage."""
    follow_up: FollowUpContent
