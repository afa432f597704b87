"""
service.py — Incident lifecycle tracking.

Keeps every issued alert in an in-memory store and moves it through its
communication lifecycle:

    create ─► follow-ups (draft / scheduled / sent) ─► all-clear ─► resolved

Rules:
    • Follow-up due time = initial send time + severity offset
    • Follow-up drafts are checked with the draft compliance rules and
      carry their flags; flags never block saving
    • Adding a follow-up with status "sent" (or sending a stored one)
      also stamps the lifecycle's follow_up_sent_at if it is unset
    • Once resolved, an incident is read-only (409 on any mutation)
    • Milestone timestamps are set once; repeating a milestone keeps
      the first timestamp
    • Only the newest MAX_RESOLVED_INCIDENTS resolved incidents are kept
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from backend.app.core.errors import ConflictError, NotFoundError, RequestValidationError
from backend.app.generation.compliance import evaluate_follow_up_draft
from backend.app.generation.models import (
    GenerateResponse,
    IncidentContext,
    Stage,
)
from backend.app.incidents.models import (
    FOLLOW_UP_OFFSETS,
    FollowUp,
    FollowUpStatus,
    IncidentRecord,
    LifecycleData,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# In-memory store
# ═══════════════════════════════════════════════════════════════════════════

# Resolved incidents kept for reference; the oldest resolved beyond this are
# dropped. Open incidents are never evicted.
MAX_RESOLVED_INCIDENTS = 500

_incidents: Dict[str, IncidentRecord] = {}


def get_incident(incident_id: str) -> IncidentRecord:
    record = _incidents.get(incident_id)
    if record is None:
        raise NotFoundError("Incident", incident_id=incident_id)
    return record


def list_incidents() -> List[IncidentRecord]:
    """All incidents, newest first."""
    return sorted(_incidents.values(), key=lambda r: r.created_at, reverse=True)


def get_active_incident(incident_id: str) -> IncidentRecord:
    record = get_incident(incident_id)
    if record.is_resolved:
        raise ConflictError(
            "Incident is resolved and can no longer be changed",
            incident_id=incident_id,
        )
    return record


# ═══════════════════════════════════════════════════════════════════════════
# Creation
# ═══════════════════════════════════════════════════════════════════════════

def create_incident(
    ctx: IncidentContext,
    outputs: GenerateResponse,
    *,
    now: Optional[datetime] = None,
) -> IncidentRecord:
    """Record an issued initial alert and start its follow-up clock."""
    now = now or _utcnow()
    offset = FOLLOW_UP_OFFSETS[ctx.severity]

    record = IncidentRecord(
        incident_type=ctx.incident_type,
        location=ctx.location,
        severity=ctx.severity,
        tone=ctx.tone,
        sender=ctx.sender,
        confirmed_facts=ctx.confirmed_facts,
        required_action=ctx.required_action,
        audience=ctx.audience,
        reading_level=ctx.reading_level,
        outputs=outputs,
        lifecycle=LifecycleData(initial_sent_at=now, follow_up_due_at=now + offset),
        created_at=now,
    )
    _incidents[record.incident_id] = record

    logger.info(
        "Incident %s recorded: %s at %s (follow-up due %s)",
        record.incident_id, record.incident_type, record.location,
        record.lifecycle.follow_up_due_at.isoformat(),
        extra={"incident_id": record.incident_id, "stage": record.stage.value},
    )
    return record


# ═══════════════════════════════════════════════════════════════════════════
# Follow-ups
# ═══════════════════════════════════════════════════════════════════════════

def build_follow_up_request(record: IncidentRecord, tone: Optional[str] = None) -> Dict[str, Any]:
    """
    Generation request body for drafting the next follow-up.

    Carries the initial SMS and the newest follow-up SMS so the model can
    avoid repeating them.
    """
    return {
        "stage": Stage.FOLLOW_UP.value,
        "incidentType": record.incident_type,
        "location": record.location,
        "severity": record.severity,
        "confirmedFacts": record.confirmed_facts,
        "requiredAction": record.required_action,
        "audience": record.audience,
        "readingLevel": record.reading_level,
        "tone": tone or record.tone,
        "sender": record.sender,
        "previousSms": record.outputs.sms,
        "lastFollowUpSms": record.last_follow_up_sms,
    }


def _queued_delivery(sms_enabled: bool, email_enabled: bool, now: datetime) -> Dict[str, Any]:
    return {
        "status": "queued",
        "channels": {
            "sms": "queued" if sms_enabled else "sent",
            "email": "queued" if email_enabled else "sent",
        },
        "queued_at": now.isoformat(),
        "sent_at": None,
    }


def _stamp_follow_up_sent(record: IncidentRecord, now: datetime) -> None:
    if record.lifecycle.follow_up_sent_at is None:
        record.lifecycle.follow_up_sent_at = now


def add_follow_up(
    incident_id: str,
    *,
    sms: str,
    email_subject: str,
    email_body: str,
    status: FollowUpStatus = FollowUpStatus.DRAFT,
    sms_enabled: bool = True,
    email_enabled: bool = True,
    tone: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> FollowUp:
    """
    Attach a follow-up to an incident.

    Raises
    ------
    NotFoundError       unknown incident
    ConflictError       incident already resolved
    RequestValidationError
                        scheduled without a time, or "failed" as a new status
    """
    now = now or _utcnow()
    status = FollowUpStatus(status)
    record = get_active_incident(incident_id)

    if status == FollowUpStatus.FAILED:
        raise RequestValidationError("A new follow-up cannot start as failed")
    if status == FollowUpStatus.SCHEDULED and scheduled_at is None:
        raise RequestValidationError("scheduled_at is required for a scheduled follow-up")

    follow_up = FollowUp(
        sms=sms,
        email_subject=email_subject,
        email_body=email_body,
        status=status,
        sms_enabled=sms_enabled,
        email_enabled=email_enabled,
        tone=tone,
        compliance_flags=evaluate_follow_up_draft(
            sms,
            sms_enabled=sms_enabled,
            severity=record.severity,
            required_action=record.required_action,
            confirmed_facts=record.confirmed_facts,
        ),
        scheduled_at=scheduled_at if status == FollowUpStatus.SCHEDULED else None,
        created_at=now,
    )

    if status == FollowUpStatus.SENT:
        follow_up.sent_at = now
        follow_up.delivery = _queued_delivery(sms_enabled, email_enabled, now)
        _stamp_follow_up_sent(record, now)

    record.follow_ups.insert(0, follow_up)

    logger.info(
        "Follow-up %s added to %s as %s (%d flag(s))",
        follow_up.follow_up_id, incident_id, status.value, len(follow_up.compliance_flags),
        extra={"incident_id": incident_id, "stage": record.stage.value},
    )
    return follow_up


def send_follow_up(
    incident_id: str,
    follow_up_id: str,
    *,
    now: Optional[datetime] = None,
) -> FollowUp:
    """Mark a stored draft or scheduled follow-up as sent."""
    now = now or _utcnow()
    record = get_active_incident(incident_id)

    follow_up = next((fu for fu in record.follow_ups if fu.follow_up_id == follow_up_id), None)
    if follow_up is None:
        raise NotFoundError("Follow-up", incident_id=incident_id, follow_up_id=follow_up_id)
    if follow_up.status == FollowUpStatus.SENT:
        raise ConflictError("Follow-up was already sent", follow_up_id=follow_up_id)

    follow_up.status = FollowUpStatus.SENT
    follow_up.sent_at = now
    follow_up.delivery = _queued_delivery(follow_up.sms_enabled, follow_up.email_enabled, now)
    _stamp_follow_up_sent(record, now)

    logger.info(
        "Follow-up %s sent for %s", follow_up_id, incident_id,
        extra={"incident_id": incident_id, "stage": record.stage.value},
    )
    return follow_up


def mark_follow_up_sent(incident_id: str, *, now: Optional[datetime] = None) -> IncidentRecord:
    """Record that a follow-up went out through some other route."""
    record = get_active_incident(incident_id)
    _stamp_follow_up_sent(record, now or _utcnow())
    logger.info(
        "Follow-up marked sent for %s", incident_id,
        extra={"incident_id": incident_id, "stage": record.stage.value},
    )
    return record


# ═══════════════════════════════════════════════════════════════════════════
# Closing out
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class AllClearNotice:
    incident_id: str
    subject: str
    message: str
    generated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "subject": self.subject,
            "message": self.message,
            "generated_at": self.generated_at.isoformat(),
        }


def generate_all_clear(incident_id: str, *, now: Optional[datetime] = None) -> AllClearNotice:
    """Stamp the all-clear milestone and return the all-clear SMS / email text."""
    record = get_active_incident(incident_id)
    if record.lifecycle.all_clear_generated_at is None:
        record.lifecycle.all_clear_generated_at = now or _utcnow()

    logger.info(
        "All-clear generated for %s", incident_id,
        extra={"incident_id": incident_id, "stage": record.stage.value},
    )
    return AllClearNotice(
        incident_id=incident_id,
        subject=record.all_clear_subject,
        message=record.all_clear_message,
        generated_at=record.lifecycle.all_clear_generated_at,
    )


def resolve_incident(incident_id: str, *, now: Optional[datetime] = None) -> IncidentRecord:
    record = get_active_incident(incident_id)
    record.lifecycle.resolved_at = now or _utcnow()
    logger.info(
        "Incident %s resolved", incident_id,
        extra={"incident_id": incident_id, "stage": record.stage.value},
    )
    _evict_resolved()
    return record


def _evict_resolved() -> None:
    resolved = sorted(
        (r for r in _incidents.values() if r.is_resolved),
        key=lambda r: r.lifecycle.resolved_at,
    )
    excess = len(resolved) - MAX_RESOLVED_INCIDENTS
    for record in resolved[:max(excess, 0)]:
        del _incidents[record.incident_id]
        logger.info(
            "Evicted resolved incident %s", record.incident_id,
            extra={"incident_id": record.incident_id},
        )
