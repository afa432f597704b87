"""
test_orchestrator.py — Tests for the per-request generation state machine.

Covers:
    • Request validation (grouped missing fields, enums, defaults, clamping)
    • Mock mode and the configuration error without a key
    • Live path: success, upstream failure, empty content, unusable output
    • Fallback guarantee: every model-output fault yields a mock response
    • Unexpected exceptions become a generic generation error
    • Follow-up stage routing

The provider client is replaced by a scripted fake; no network is used.

Run with:
    pytest tests/test_orchestrator.py -v
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import List, Optional

import pytest

from backend.app.core.errors import (
    ConfigurationError,
    RequestValidationError,
    UnexpectedGenerationError,
    UpstreamServiceError,
)
from backend.app.generation.client import CompletionResult
from backend.app.generation.constants import FLAG_INSUFFICIENT_DETAILS, FLAG_MISSING_ACTION
from backend.app.generation.models import FollowUpGenerateResponse, GenerateResponse, Stage
from backend.app.generation.orchestrator import (
    GenerationConfig,
    generate,
    validate_request,
)


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

FROZEN_NOW = datetime(2024, 3, 1, 15, 5, tzinfo=timezone.utc)

LIVE = GenerationConfig(api_key="test-key")
MOCK = GenerationConfig(mock_mode=True)
NO_KEY = GenerationConfig()


def _body(**overrides) -> dict:
    body = {
        "incidentType": "Fire",
        "location": "123 Main St",
        "confirmedFacts": "Flames visible on 2nd floor",
    }
    body.update(overrides)
    return body


class _FakeClient:
    """Stands in for AnthropicClient: returns a canned result or raises."""

    def __init__(self, result: Optional[CompletionResult] = None, exc: Optional[Exception] = None):
        self.result = result
        self.exc = exc
        self.calls: List[tuple] = []

    async def complete(self, system: str, user_prompt: str) -> CompletionResult:
        self.calls.append((system, user_prompt))
        if self.exc is not None:
            raise self.exc
        return self.result


def _ok(content: str) -> _FakeClient:
    return _FakeClient(CompletionResult.success(content, attempts=1))


def _run(body, config=LIVE, client=None):
    return asyncio.run(generate(body, config, client=client, now=FROZEN_NOW))


def _model_json(**overrides) -> str:
    payload = {
        "sms": "ALERT: Fire at 123 Main St. Stay away.",
        "voice_script": "Voice.",
        "email": {"subject": "Fire alert", "body": "Body."},
        "social_post": "Post.",
        "translations": {"es": "ALERTA"},
        "readability_grade_estimate": 5,
        "compliance_flags": [],
        "follow_up_suggestion": "Later.",
    }
    payload.update(overrides)
    return json.dumps(payload)


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Validation
# ═══════════════════════════════════════════════════════════════════════════

class TestValidateRequest:

    def test_defaults_applied(self):
        outcome = validate_request(_body())
        assert outcome.valid
        ctx = outcome.context
        assert ctx.severity == "Medium"
        assert ctx.audience == "general public"
        assert ctx.reading_level == 6
        assert ctx.tone == "Neutral"
        assert ctx.sender == "Emergency Management Office"
        assert ctx.required_action is None
        assert outcome.stage == Stage.INITIAL

    def test_missing_fields_listed_together(self):
        outcome = validate_request({"location": "123 Main St"})
        assert not outcome.valid
        assert outcome.missing_fields == ["incidentType", "confirmedFacts"]
        assert outcome.error == "All fields are required: incidentType, confirmedFacts"

    def test_blank_counts_as_missing(self):
        outcome = validate_request(_body(location="   "))
        assert outcome.missing_fields == ["location"]

    def test_blank_optionals_use_defaults(self):
        outcome = validate_request(_body(sender="", requiredAction="", audience=" "))
        assert outcome.context.sender == "Emergency Management Office"
        assert outcome.context.required_action is None
        assert outcome.context.audience == "general public"

    @pytest.mark.parametrize("field,value", [
        ("incidentType", "Alien Invasion"),
        ("severity", "Extreme"),
        ("tone", "Panicked"),
        ("stage", "final"),
    ])
    def test_enum_violations_rejected(self, field, value):
        outcome = validate_request(_body(**{field: value}))
        assert not outcome.valid
        assert field in outcome.error

    @pytest.mark.parametrize("value,expected", [
        (8, 8), (0, 1), (40, 12), (7.6, 8), ("9", 6), (None, 6), (True, 6),
        (float("nan"), 6), (float("inf"), 6), (float("-inf"), 6), (10 ** 400, 12),
    ])
    def test_reading_level(self, value, expected):
        assert validate_request(_body(readingLevel=value)).context.reading_level == expected

    def test_non_object_body(self):
        assert validate_request(["not", "a", "dict"]).error == "Invalid request body"

    def test_wrong_field_type(self):
        assert validate_request(_body(location={"lat": 1})).error == "Invalid request body"

    def test_follow_up_history_kept(self):
        outcome = validate_request(_body(stage="follow_up", previousSms="ALERT: x", lastFollowUpSms=""))
        assert outcome.stage == Stage.FOLLOW_UP
        assert outcome.previous_sms == "ALERT: x"
        assert outcome.last_follow_up_sms is None


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Terminal errors and mock mode
# ═══════════════════════════════════════════════════════════════════════════

class TestGenerateGuards:

    def test_validation_error(self):
        with pytest.raises(RequestValidationError) as info:
            _run({"incidentType": "Fire"})
        assert info.value.status_code == 400
        assert "location" in info.value.message

    def test_missing_key_is_configuration_error(self):
        client = _ok(_model_json())
        with pytest.raises(ConfigurationError) as info:
            _run(_body(), config=NO_KEY, client=client)
        assert info.value.status_code == 500
        assert info.value.message == "Server configuration error: missing API key"
        assert client.calls == []

    def test_mock_mode_never_calls_client(self):
        client = _ok(_model_json())
        resp = _run(_body(), config=MOCK, client=client)
        assert isinstance(resp, GenerateResponse)
        assert resp.sms == "ALERT: Fire at 123 Main St. Follow official guidance."
        assert client.calls == []

    def test_mock_mode_wins_over_key(self):
        config = GenerationConfig(api_key="k", mock_mode=True)
        client = _ok(_model_json())
        _run(_body(), config=config, client=client)
        assert client.calls == []

    def test_mock_mode_without_key(self):
        resp = _run(_body(), config=MOCK)
        assert resp.metadata.formatted_time == "3:05 PM"

    def test_mock_mode_uses_configured_languages(self):
        resp = _run(_body(), config=GenerationConfig(mock_mode=True, languages=("es",)))
        assert list(resp.translations) == ["es"]


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Live path
# ═══════════════════════════════════════════════════════════════════════════

class TestGenerateLive:

    def test_parsed_response(self):
        client = _ok(_model_json())
        resp = _run(_body(), client=client)
        assert resp.sms == "ALERT: Fire at 123 Main St. Stay away."
        assert resp.compliance_flags == [FLAG_MISSING_ACTION]
        assert resp.metadata.timestamp_iso == "2024-03-01T15:05:00.000Z"
        system, prompt = client.calls[0]
        assert "Crisis Communication Copilot" in system
        assert "Incident Type: Fire" in prompt

    def test_non_finite_grade_kept_serialisable(self):
        content = _model_json(readability_grade_estimate=0).replace(
            '"readability_grade_estimate": 0', '"readability_grade_estimate": 1e400',
        )
        resp = _run(_body(), client=_ok(content))
        assert resp.sms == "ALERT: Fire at 123 Main St. Stay away."
        assert resp.readability_grade_estimate == 6

    def test_initial_prompt_uses_configured_languages(self):
        client = _ok(_model_json())
        _run(_body(), config=GenerationConfig(api_key="k", languages=("es", "pt")), client=client)
        assert '"pt": "..."' in client.calls[0][1]

    def test_upstream_failure(self):
        client = _FakeClient(CompletionResult.failure("Anthropic API error (401): nope", attempts=1))
        with pytest.raises(UpstreamServiceError) as info:
            _run(_body(), client=client)
        assert info.value.status_code == 500
        assert info.value.message == "Anthropic API error (401): nope"

    def test_unexpected_exception(self):
        client = _FakeClient(exc=RuntimeError("connection reset"))
        with pytest.raises(UnexpectedGenerationError) as info:
            _run(_body(), client=client)
        assert info.value.message == "An unexpected error occurred"
        assert "connection reset" not in info.value.message

    def test_short_facts_example_flags(self):
        resp = _run(_body(confirmedFacts="ok"), client=_ok(_model_json()))
        assert resp.compliance_flags == [FLAG_MISSING_ACTION, FLAG_INSUFFICIENT_DETAILS]


class TestFallbackGuarantee:

    @pytest.mark.parametrize("content", [
        "",
        "Sorry, I cannot comply.",
        "{broken json",
        json.dumps({"voice_script": "no sms"}),
        json.dumps({"sms": "hi", "email": {"body": "no subject"}}),
        json.dumps([1, 2, 3]),
    ])
    def test_bad_output_yields_mock(self, content):
        resp = _run(_body(), client=_ok(content))
        assert isinstance(resp, GenerateResponse)
        assert resp.sms == "ALERT: Fire at 123 Main St. Follow official guidance."
        assert resp.compliance_flags == [FLAG_MISSING_ACTION]
        assert resp.metadata.formatted_time == "3:05 PM"

    def test_follow_up_bad_output_yields_mock(self):
        resp = _run(_body(stage="follow_up"), client=_ok("nonsense"))
        assert isinstance(resp, FollowUpGenerateResponse)
        assert resp.follow_up.sms.startswith("UPDATE: Fire at 123 Main St.")


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Follow-up stage
# ═══════════════════════════════════════════════════════════════════════════

class TestFollowUpStage:

    def test_follow_up_parsed(self):
        content = json.dumps({"follow_up": {
            "sms": "UPDATE: Fire under control.",
            "email": {"subject": "Update: Fire", "body": "Under control."},
            "compliance_flags": [],
        }})
        client = _ok(content)
        resp = _run(
            _body(stage="follow_up", previousSms="ALERT: Fire at 123 Main St."),
            client=client,
        )
        assert isinstance(resp, FollowUpGenerateResponse)
        assert resp.follow_up.sms == "UPDATE: Fire under control."
        assert resp.follow_up.compliance_flags == [FLAG_MISSING_ACTION]
        prompt = client.calls[0][1]
        assert "FOLLOW-UP" in prompt
        assert '"ALERT: Fire at 123 Main St."' in prompt

    def test_follow_up_mock_mode(self):
        resp = _run(_body(stage="follow_up"), config=MOCK)
        assert resp.follow_up.sms == "UPDATE: Fire at 123 Main St. Continue to follow official guidance."


class TestGenerationConfig:

    def test_mode(self):
        assert MOCK.mode == "mock"
        assert LIVE.mode == "live"
        assert NO_KEY.mode == "unconfigured"

    def test_from_settings(self):
        from backend.app.core.config import Settings

        config = GenerationConfig.from_settings(Settings(
            ANTHROPIC_API_KEY="k", ANTHROPIC_MODEL="", LLM_MOCK=False,
            TRANSLATION_LANGUAGES=["es"], DISPLAY_TIMEZONE="UTC",
        ))
        assert config.api_key == "k"
        assert config.model is None
        assert config.languages == ("es",)
