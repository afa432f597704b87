"""
test_incidents.py — Tests for incident lifecycle tracking.

Covers:
    • Severity-based follow-up due times
    • Stage derivation (latest milestone wins)
    • Status badges and escalation
    • Follow-up drafts, scheduling, sending and their flags
    • All-clear text and resolution (read-only afterwards)

Run with:
    pytest tests/test_incidents.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.core.errors import ConflictError, NotFoundError, RequestValidationError
from backend.app.generation.constants import (
    FLAG_HIGH_SEVERITY_NO_ACTION,
    FLAG_SMS_TOO_LONG,
)
from backend.app.generation.metadata import build_metadata
from backend.app.generation.mock import build_mock_response
from backend.app.generation.models import IncidentContext
from backend.app.incidents import service
from backend.app.incidents.models import (
    FollowUpStatus,
    LifecycleData,
    LifecycleStage,
    StatusBadge,
)


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

T0 = datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clear_store():
    service._incidents.clear()
    yield
    service._incidents.clear()


def _ctx(**overrides) -> IncidentContext:
    values = dict(
        incident_type="Fire",
        location="123 Main St",
        confirmed_facts="Flames visible on 2nd floor",
        severity="Medium",
        audience="general public",
        reading_level=6,
        tone="Neutral",
        sender="City EMO",
        required_action="Avoid the area.",
    )
    values.update(overrides)
    return IncidentContext(**values)


def _create(now: datetime = T0, **overrides):
    ctx = _ctx(**overrides)
    outputs = build_mock_response(ctx, build_metadata(ctx.sender, ctx.tone, now=now))
    return service.create_incident(ctx, outputs, now=now)


def _draft(incident_id: str, **overrides):
    values = dict(
        sms="UPDATE: Fire contained. Avoid the area.",
        email_subject="Update: Fire",
        email_body="The fire is contained.",
        now=T0 + timedelta(minutes=10),
    )
    values.update(overrides)
    return service.add_follow_up(incident_id, **values)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Creation and cadence
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateIncident:

    @pytest.mark.parametrize("severity,minutes", [("High", 15), ("Medium", 30), ("Low", 60)])
    def test_follow_up_due_by_severity(self, severity, minutes):
        record = _create(severity=severity)
        assert record.lifecycle.initial_sent_at == T0
        assert record.lifecycle.follow_up_due_at == T0 + timedelta(minutes=minutes)

    def test_recorded_in_store(self):
        record = _create()
        assert record.incident_id.startswith("INC-")
        assert service.get_incident(record.incident_id) is record
        assert record.stage == LifecycleStage.INITIAL

    def test_list_newest_first(self):
        older = _create(now=T0)
        newer = _create(now=T0 + timedelta(hours=1))
        assert service.list_incidents() == [newer, older]

    def test_unknown_incident(self):
        with pytest.raises(NotFoundError) as info:
            service.get_incident("INC-missing")
        assert info.value.status_code == 404
        assert info.value.message == "Incident not found"


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Stage and status badges
# ═══════════════════════════════════════════════════════════════════════════

class TestLifecycle:

    def _lifecycle(self, **stamps) -> LifecycleData:
        return LifecycleData(
            initial_sent_at=T0, follow_up_due_at=T0 + timedelta(minutes=30), **stamps,
        )

    def test_stage_precedence(self):
        later = T0 + timedelta(hours=1)
        assert self._lifecycle().stage == LifecycleStage.INITIAL
        assert self._lifecycle(follow_up_sent_at=later).stage == LifecycleStage.FOLLOW_UP
        assert self._lifecycle(
            follow_up_sent_at=later, all_clear_generated_at=later,
        ).stage == LifecycleStage.ALL_CLEAR
        # resolved wins even without the earlier milestones
        assert self._lifecycle(resolved_at=later).stage == LifecycleStage.RESOLVED

    @pytest.mark.parametrize("minutes_after,badge", [
        (0, StatusBadge.ACTIVE),
        (24, StatusBadge.ACTIVE),
        (25, StatusBadge.DUE_SOON),
        (30, StatusBadge.DUE_SOON),
        (31, StatusBadge.OVERDUE),
    ])
    def test_badges(self, minutes_after, badge):
        now = T0 + timedelta(minutes=minutes_after)
        assert self._lifecycle().status_badge(now) == badge

    def test_sent_follow_up_is_active(self):
        lifecycle = self._lifecycle(follow_up_sent_at=T0 + timedelta(minutes=10))
        now = T0 + timedelta(hours=2)
        assert lifecycle.status_badge(now) == StatusBadge.ACTIVE
        assert not lifecycle.is_follow_up_overdue(now)

    def test_resolved_badge(self):
        lifecycle = self._lifecycle(resolved_at=T0 + timedelta(minutes=5))
        assert lifecycle.status_badge(T0 + timedelta(hours=2)) == StatusBadge.RESOLVED

    def test_escalation_only_for_high_severity(self):
        late = T0 + timedelta(minutes=20)
        high = _create(severity="High")
        medium = _create(severity="Medium")
        assert high.needs_escalation(late)
        assert not medium.needs_escalation(late)

    def test_to_dict_surface(self):
        record = _create(severity="High")
        data = record.to_dict(now=T0 + timedelta(minutes=20))
        assert data["stage"] == "initial"
        assert data["status_badge"] == "Overdue"
        assert data["follow_up_overdue"] is True
        assert data["escalation_required"] is True
        assert data["outputs"]["sms"] == record.outputs.sms
        assert data["lifecycle"]["follow_up_due_at"] == "2024-03-01T15:15:00+00:00"


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Follow-ups
# ═══════════════════════════════════════════════════════════════════════════

class TestFollowUps:

    def test_draft_does_not_advance_stage(self):
        record = _create()
        follow_up = _draft(record.incident_id)
        assert follow_up.status == FollowUpStatus.DRAFT
        assert follow_up.follow_up_id.startswith("FU-")
        assert follow_up.compliance_flags == []
        assert record.stage == LifecycleStage.INITIAL

    def test_newest_first(self):
        record = _create()
        first = _draft(record.incident_id, sms="UPDATE: one")
        second = _draft(record.incident_id, sms="UPDATE: two")
        assert record.follow_ups == [second, first]
        assert record.last_follow_up_sms == "UPDATE: two"

    def test_sent_stamps_lifecycle_once(self):
        record = _create()
        first_time = T0 + timedelta(minutes=10)
        _draft(record.incident_id, status=FollowUpStatus.SENT, now=first_time)
        _draft(record.incident_id, status="sent", now=T0 + timedelta(minutes=40))
        assert record.lifecycle.follow_up_sent_at == first_time
        assert record.stage == LifecycleStage.FOLLOW_UP

    def test_sent_delivery_record(self):
        record = _create()
        follow_up = _draft(record.incident_id, status="sent", email_enabled=False)
        assert follow_up.sent_at == T0 + timedelta(minutes=10)
        assert follow_up.delivery["status"] == "queued"
        assert follow_up.delivery["channels"] == {"sms": "queued", "email": "sent"}

    def test_scheduled_requires_time(self):
        record = _create()
        with pytest.raises(RequestValidationError):
            _draft(record.incident_id, status="scheduled")

        when = T0 + timedelta(hours=1)
        follow_up = _draft(record.incident_id, status="scheduled", scheduled_at=when)
        assert follow_up.scheduled_at == when

    def test_failed_cannot_be_created(self):
        record = _create()
        with pytest.raises(RequestValidationError):
            _draft(record.incident_id, status="failed")

    def test_draft_flags_do_not_block(self):
        record = _create(severity="High", required_action=None)
        follow_up = _draft(record.incident_id, sms="U" * 170)
        assert follow_up.compliance_flags == [FLAG_SMS_TOO_LONG, FLAG_HIGH_SEVERITY_NO_ACTION]
        assert record.follow_ups == [follow_up]

    def test_long_sms_ignored_when_sms_disabled(self):
        record = _create()
        follow_up = _draft(record.incident_id, sms="U" * 170, sms_enabled=False)
        assert FLAG_SMS_TOO_LONG not in follow_up.compliance_flags

    def test_send_stored_follow_up(self):
        record = _create()
        draft = _draft(record.incident_id)
        sent_at = T0 + timedelta(minutes=12)
        sent = service.send_follow_up(record.incident_id, draft.follow_up_id, now=sent_at)
        assert sent.status == FollowUpStatus.SENT
        assert sent.sent_at == sent_at
        assert record.lifecycle.follow_up_sent_at == sent_at

        with pytest.raises(ConflictError):
            service.send_follow_up(record.incident_id, draft.follow_up_id)

    def test_send_unknown_follow_up(self):
        record = _create()
        with pytest.raises(NotFoundError) as info:
            service.send_follow_up(record.incident_id, "FU-missing")
        assert info.value.message == "Follow-up not found"

    def test_mark_follow_up_sent(self):
        record = _create()
        stamp = T0 + timedelta(minutes=3)
        service.mark_follow_up_sent(record.incident_id, now=stamp)
        service.mark_follow_up_sent(record.incident_id, now=stamp + timedelta(minutes=1))
        assert record.lifecycle.follow_up_sent_at == stamp

    def test_follow_up_request_body(self):
        record = _create()
        _draft(record.incident_id, sms="UPDATE: latest")
        body = service.build_follow_up_request(record, tone="Calm")
        assert body["stage"] == "follow_up"
        assert body["previousSms"] == record.outputs.sms
        assert body["lastFollowUpSms"] == "UPDATE: latest"
        assert body["tone"] == "Calm"
        assert body["requiredAction"] == "Avoid the area."

    def test_follow_up_request_defaults_to_incident_tone(self):
        record = _create(tone="Urgent")
        body = service.build_follow_up_request(record)
        assert body["tone"] == "Urgent"
        assert body["lastFollowUpSms"] is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: All-clear and resolution
# ═══════════════════════════════════════════════════════════════════════════

class TestClosingOut:

    def test_all_clear_text(self):
        record = _create()
        notice = service.generate_all_clear(record.incident_id, now=T0 + timedelta(hours=1))
        assert notice.subject == "All Clear: Fire at 123 Main St"
        assert notice.message == (
            "All clear: The situation has been resolved. "
            f"{record.outputs.sms[:80]}... - City EMO"
        )
        assert record.stage == LifecycleStage.ALL_CLEAR

    def test_all_clear_stamp_kept(self):
        record = _create()
        first = T0 + timedelta(hours=1)
        service.generate_all_clear(record.incident_id, now=first)
        notice = service.generate_all_clear(record.incident_id, now=first + timedelta(hours=1))
        assert notice.generated_at == first

    def test_resolved_is_read_only(self):
        record = _create()
        service.resolve_incident(record.incident_id, now=T0 + timedelta(hours=2))
        assert record.stage == LifecycleStage.RESOLVED
        assert record.is_resolved

        with pytest.raises(ConflictError) as info:
            _draft(record.incident_id)
        assert info.value.status_code == 409
        with pytest.raises(ConflictError):
            service.generate_all_clear(record.incident_id)
        with pytest.raises(ConflictError):
            service.resolve_incident(record.incident_id)
        with pytest.raises(ConflictError):
            service.mark_follow_up_sent(record.incident_id)

    def test_resolved_still_readable(self):
        record = _create()
        service.resolve_incident(record.incident_id)
        assert service.get_incident(record.incident_id) is record


class TestResolvedRetention:

    def test_oldest_resolved_evicted_beyond_cap(self, monkeypatch):
        monkeypatch.setattr(service, "MAX_RESOLVED_INCIDENTS", 2)
        records = [_create() for _ in range(3)]
        for minutes, record in enumerate(records, start=1):
            service.resolve_incident(record.incident_id, now=T0 + timedelta(minutes=minutes))

        with pytest.raises(NotFoundError):
            service.get_incident(records[0].incident_id)
        assert service.get_incident(records[1].incident_id) is records[1]
        assert service.get_incident(records[2].incident_id) is records[2]

    def test_open_incidents_never_evicted(self, monkeypatch):
        monkeypatch.setattr(service, "MAX_RESOLVED_INCIDENTS", 0)
        open_record = _create()
        resolved = _create()
        service.resolve_incident(resolved.incident_id, now=T0 + timedelta(hours=1))

        assert service.list_incidents() == [open_record]
