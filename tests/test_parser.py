"""
test_parser.py — Tests for turning model text into validated responses.

Covers:
    • JSON extraction (strict, fenced, prose-wrapped, hopeless)
    • Minimum shape check (sms + email.subject)
    • Defensive coercion of every field
    • Compliance flag merging with server flags
    • Follow-up parsing (wrapped and unwrapped)

Run with:
    pytest tests/test_parser.py -v
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from backend.app.generation.constants import FLAG_INSUFFICIENT_DETAILS, FLAG_MISSING_ACTION
from backend.app.generation.metadata import build_metadata
from backend.app.generation.parser import (
    ParseStatus,
    extract_json_object,
    parse_follow_up_response,
    parse_generate_response,
)


METADATA = build_metadata(
    "Emergency Management Office", "Neutral",
    now=datetime(2024, 3, 1, 15, 5, tzinfo=timezone.utc),
)
SERVER_FLAGS = [FLAG_MISSING_ACTION]


def _valid_payload(**overrides) -> dict:
    payload = {
        "sms": "ALERT: Fire at 123 Main St. Evacuate now.",
        "voice_script": "Attention residents.",
        "email": {"subject": "Emergency Alert: Fire", "body": "Details follow."},
        "social_post": "Fire at 123 Main St.",
        "translations": {"es": "ALERTA: Incendio."},
        "readability_grade_estimate": 5,
        "compliance_flags": ["Model flag"],
        "follow_up_suggestion": "Update in 30 minutes.",
    }
    payload.update(overrides)
    return payload


def _parse(text: str):
    return parse_generate_response(text, METADATA, SERVER_FLAGS)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Extraction
# ═══════════════════════════════════════════════════════════════════════════

class TestExtractJsonObject:

    def test_strict_json(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        text = '```json\n{"sms": "hi"}\n```'
        assert extract_json_object(text) == {"sms": "hi"}

    def test_prose_around_object(self):
        text = 'Here you go: {"sms": "hi", "email": {"subject": "s"}} Hope that helps!'
        assert extract_json_object(text) == {"sms": "hi", "email": {"subject": "s"}}

    @pytest.mark.parametrize("text", ["", "no json here", "{not json}", "[1, 2, 3]", '"just a string"'])
    def test_unusable(self, text):
        assert extract_json_object(text) is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Initial-stage parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParseGenerateResponse:

    def test_valid_payload(self):
        result = _parse(json.dumps(_valid_payload()))
        assert result.status == ParseStatus.VALID
        assert result.is_usable
        assert result.response.sms == "ALERT: Fire at 123 Main St. Evacuate now."
        assert result.response.email.subject == "Emergency Alert: Fire"
        assert result.response.metadata == METADATA

    def test_missing_sms_is_unusable(self):
        payload = _valid_payload()
        del payload["sms"]
        result = _parse(json.dumps(payload))
        assert result.status == ParseStatus.UNUSABLE
        assert result.response is None

    def test_empty_sms_is_unusable(self):
        assert not _parse(json.dumps(_valid_payload(sms=""))).is_usable

    def test_missing_subject_is_unusable(self):
        assert not _parse(json.dumps(_valid_payload(email={"body": "x"}))).is_usable
        assert not _parse(json.dumps(_valid_payload(email="not an object"))).is_usable

    def test_non_json_is_unusable(self):
        result = _parse("I'm sorry, I can't help with that.")
        assert result.status == ParseStatus.UNUSABLE
        assert result.reason

    def test_sms_clipped(self):
        result = _parse(json.dumps(_valid_payload(sms="S" * 400)))
        assert result.response.sms == "S" * 160

    def test_translations_open_mapping_clipped_and_filtered(self):
        translations = {"es": "E" * 200, "de": "Hallo", "fr": 42, "zh": None}
        result = _parse(json.dumps(_valid_payload(translations=translations)))
        assert result.response.translations == {"es": "E" * 160, "de": "Hallo"}

    def test_wrong_types_default(self):
        payload = _valid_payload(
            voice_script=123,
            social_post=["x"],
            translations="nope",
            readability_grade_estimate="grade 5",
            follow_up_suggestion=None,
        )
        resp = _parse(json.dumps(payload)).response
        assert resp.voice_script == ""
        assert resp.social_post == ""
        assert resp.translations == {}
        assert resp.readability_grade_estimate == 6
        assert resp.follow_up_suggestion == ""

    def test_boolean_readability_defaults(self):
        resp = _parse(json.dumps(_valid_payload(readability_grade_estimate=True))).response
        assert resp.readability_grade_estimate == 6

    def test_float_readability_kept(self):
        resp = _parse(json.dumps(_valid_payload(readability_grade_estimate=7.5))).response
        assert resp.readability_grade_estimate == 7.5

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity", "1e400"])
    def test_non_finite_readability_defaults(self, literal):
        text = json.dumps(_valid_payload(readability_grade_estimate=0)).replace(
            '"readability_grade_estimate": 0', f'"readability_grade_estimate": {literal}',
        )
        result = _parse(text)
        assert result.status == ParseStatus.VALID
        assert result.response.readability_grade_estimate == 6
        json.dumps(result.response.model_dump(by_alias=True), allow_nan=False)

    def test_email_body_missing_defaults(self):
        resp = _parse(json.dumps(_valid_payload(email={"subject": "S"}))).response
        assert resp.email.body == ""

    def test_flags_merged_model_first(self):
        resp = _parse(json.dumps(_valid_payload(
            compliance_flags=["Model flag", 7, FLAG_MISSING_ACTION, None],
        ))).response
        assert resp.compliance_flags == ["Model flag", FLAG_MISSING_ACTION]

    def test_server_flags_appended_when_absent(self):
        result = parse_generate_response(
            json.dumps(_valid_payload(compliance_flags="not a list")),
            METADATA,
            [FLAG_MISSING_ACTION, FLAG_INSUFFICIENT_DETAILS],
        )
        assert result.response.compliance_flags == [FLAG_MISSING_ACTION, FLAG_INSUFFICIENT_DETAILS]

    def test_fenced_payload(self):
        text = "```json\n" + json.dumps(_valid_payload()) + "\n```"
        assert _parse(text).is_usable


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Follow-up parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParseFollowUpResponse:

    def _inner(self, **overrides):
        inner = {
            "sms": "UPDATE: Fire contained.",
            "email": {"subject": "Update: Fire", "body": "Fire contained."},
            "compliance_flags": [],
        }
        inner.update(overrides)
        return inner

    def test_wrapped(self):
        result = parse_follow_up_response(json.dumps({"follow_up": self._inner()}), SERVER_FLAGS)
        assert result.is_usable
        assert result.response.follow_up.sms == "UPDATE: Fire contained."
        assert result.response.follow_up.compliance_flags == [FLAG_MISSING_ACTION]

    def test_unwrapped_fields_accepted(self):
        result = parse_follow_up_response(json.dumps(self._inner()), [])
        assert result.is_usable
        assert result.response.follow_up.email.subject == "Update: Fire"

    def test_non_object_follow_up_unusable(self):
        result = parse_follow_up_response(json.dumps({"follow_up": "text"}), [])
        assert result.status == ParseStatus.UNUSABLE

    def test_missing_sms_unusable(self):
        result = parse_follow_up_response(json.dumps({"follow_up": self._inner(sms="")}), [])
        assert not result.is_usable

    def test_sms_clipped(self):
        result = parse_follow_up_response(json.dumps({"follow_up": self._inner(sms="U" * 170)}), [])
        assert len(result.response.follow_up.sms) == 160
