"""
models.py — Data structures for incident lifecycle tracking.

Defines:
    • LifecycleStage  — initial → follow_up → all_clear → resolved
    • StatusBadge     — at-a-glance status for incident lists
    • FollowUpStatus  — draft / scheduled / sent / failed
    • LifecycleData   — lifecycle timestamps for one incident
    • FollowUp        — one follow-up message attached to an incident
    • IncidentRecord  — an issued alert, its outputs, lifecycle and follow-ups

═══════════════════════════════════════════════════════════════════════════
COMMUNICATION CADENCE
═══════════════════════════════════════════════════════════════════════════

A follow-up is due a fixed time after the initial alert, by severity:

    Severity    Follow-up due after
    ────────    ───────────────────
    High        15 minutes
    Medium      30 minutes
    Low         60 minutes

The stage is derived from the timestamps, latest milestone winning:

    resolved_at set            → resolved
    all_clear_generated_at set → all_clear
    follow_up_sent_at set      → follow_up
    otherwise                  → initial
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.app.generation.models import GenerateResponse, Severity


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class LifecycleStage(str, Enum):
    INITIAL   = "initial"
    FOLLOW_UP = "follow_up"
    ALL_CLEAR = "all_clear"
    RESOLVED  = "resolved"


class StatusBadge(str, Enum):
    ACTIVE       = "Active"
    DUE_SOON     = "Follow-up Due Soon"
    OVERDUE      = "Overdue"
    RESOLVED     = "Resolved"


class FollowUpStatus(str, Enum):
    DRAFT     = "draft"
    SCHEDULED = "scheduled"
    SENT      = "sent"
    FAILED    = "failed"


FOLLOW_UP_OFFSETS: Dict[str, timedelta] = {
    Severity.HIGH.value:   timedelta(minutes=15),
    Severity.MEDIUM.value: timedelta(minutes=30),
    Severity.LOW.value:    timedelta(minutes=60),
}

DUE_SOON_WINDOW = timedelta(minutes=5)
ALL_CLEAR_EXCERPT_LENGTH = 80


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


# ═══════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class LifecycleData:
    initial_sent_at: datetime
    follow_up_due_at: datetime
    follow_up_sent_at: Optional[datetime] = None
    all_clear_generated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @property
    def stage(self) -> LifecycleStage:
        if self.resolved_at:
            return LifecycleStage.RESOLVED
        if self.all_clear_generated_at:
            return LifecycleStage.ALL_CLEAR
        if self.follow_up_sent_at:
            return LifecycleStage.FOLLOW_UP
        return LifecycleStage.INITIAL

    def is_follow_up_overdue(self, now: datetime) -> bool:
        return now > self.follow_up_due_at and self.follow_up_sent_at is None

    def status_badge(self, now: datetime) -> StatusBadge:
        if self.resolved_at:
            return StatusBadge.RESOLVED
        if self.follow_up_sent_at is None:
            until_due = self.follow_up_due_at - now
            if until_due < timedelta(0):
                return StatusBadge.OVERDUE
            if until_due <= DUE_SOON_WINDOW:
                return StatusBadge.DUE_SOON
        return StatusBadge.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_sent_at": _iso(self.initial_sent_at),
            "follow_up_due_at": _iso(self.follow_up_due_at),
            "follow_up_sent_at": _iso(self.follow_up_sent_at),
            "all_clear_generated_at": _iso(self.all_clear_generated_at),
            "resolved_at": _iso(self.resolved_at),
        }


@dataclass
class FollowUp:
    """One follow-up message (drafted, scheduled or sent)."""
    sms: str
    email_subject: str
    email_body: str
    status: FollowUpStatus = FollowUpStatus.DRAFT
    sms_enabled: bool = True
    email_enabled: bool = True
    tone: Optional[str] = None
    compliance_flags: List[str] = field(default_factory=list)
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    delivery: Optional[Dict[str, Any]] = None
    follow_up_id: str = field(default_factory=lambda: _new_id("FU"))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "follow_up_id": self.follow_up_id,
            "created_at": _iso(self.created_at),
            "status": self.status.value,
            "scheduled_at": _iso(self.scheduled_at),
            "sent_at": _iso(self.sent_at),
            "content": {
                "sms": self.sms,
                "email": {"subject": self.email_subject, "body": self.email_body},
            },
            "channels": {"sms": self.sms_enabled, "email": self.email_enabled},
            "tone": self.tone,
            "compliance_flags": list(self.compliance_flags),
            "delivery": self.delivery,
        }


@dataclass
class IncidentRecord:
    """An issued initial alert together with everything that followed it."""
    incident_type: str
    location: str
    severity: str
    tone: str
    sender: str
    confirmed_facts: str
    audience: str
    reading_level: int
    outputs: GenerateResponse
    lifecycle: LifecycleData
    required_action: Optional[str] = None
    follow_ups: List[FollowUp] = field(default_factory=list)  # newest first
    incident_id: str = field(default_factory=lambda: _new_id("INC"))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def stage(self) -> LifecycleStage:
        return self.lifecycle.stage

    @property
    def is_resolved(self) -> bool:
        return self.lifecycle.resolved_at is not None

    @property
    def last_follow_up_sms(self) -> Optional[str]:
        return self.follow_ups[0].sms if self.follow_ups else None

    @property
    def all_clear_message(self) -> str:
        excerpt = self.outputs.sms[:ALL_CLEAR_EXCERPT_LENGTH]
        return f"All clear: The situation has been resolved. {excerpt}... - {self.sender}"

    @property
    def all_clear_subject(self) -> str:
        return f"All Clear: {self.incident_type} at {self.location}"

    def needs_escalation(self, now: datetime) -> bool:
        """High-severity incident whose follow-up is overdue."""
        return (
            self.severity == Severity.HIGH.value
            and not self.is_resolved
            and self.lifecycle.is_follow_up_overdue(now)
        )

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or datetime.now(timezone.utc)
        return {
            "incident_id": self.incident_id,
            "created_at": _iso(self.created_at),
            "incident_type": self.incident_type,
            "location": self.location,
            "severity": self.severity,
            "tone": self.tone,
            "sender": self.sender,
            "confirmed_facts": self.confirmed_facts,
            "required_action": self.required_action,
            "audience": self.audience,
            "reading_level": self.reading_level,
            "outputs": self.outputs.model_dump(),
            "lifecycle": self.lifecycle.to_dict(),
            "stage": self.stage.value,
            "status_badge": self.lifecycle.status_badge(now).value,
            "follow_up_overdue": self.lifecycle.is_follow_up_overdue(now),
            "escalation_required": self.needs_escalation(now),
            "follow_ups": [fu.to_dict() for fu in self.follow_ups],
        }
