"""
orchestrator.py — One generation request, from raw body to final response.

═══════════════════════════════════════════════════════════════════════════
REQUEST STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    validating ──invalid──────────────────────────────► 400 RequestValidationError
        │
        ├── mock mode ────────────────────────────────► mock response
        │
        ├── no API key ───────────────────────────────► 500 ConfigurationError
        │
        ▼
    prompting → calling_model
                    │
                    ├── client failure ───────────────► 500 UpstreamServiceError
                    ├── empty content ────────────────► mock response (fallback)
                    ▼
                 parsing
                    ├── unusable ─────────────────────► mock response (fallback)
                    └── valid ────────────────────────► parsed response

    Anything raised unexpectedly in the live branch ──► 500 UnexpectedGenerationError

Every path ends in exactly one response or one error. Faults caused by the
model's output quality never surface as errors; the deterministic mock
answers instead.

The orchestrator never reads the environment. A frozen GenerationConfig is
built from settings once per request and passed in.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from backend.app.core.config import Settings
from backend.app.core.errors import (
    ConfigurationError,
    CopilotAPIError,
    RequestValidationError,
    UnexpectedGenerationError,
    UpstreamServiceError,
)
from backend.app.generation.client import AnthropicClient
from backend.app.generation.compliance import evaluate_compliance
from backend.app.generation.constants import (
    DEFAULT_AUDIENCE,
    DEFAULT_READING_LEVEL,
    DEFAULT_SENDER,
    DEFAULT_SEVERITY,
    DEFAULT_TONE,
    MAX_READING_LEVEL,
    MIN_READING_LEVEL,
)
from backend.app.generation.metadata import build_metadata
from backend.app.generation.mock import (
    build_mock_follow_up_response,
    build_mock_response,
)
from backend.app.generation.models import (
    FollowUpGenerateResponse,
    GenerateRequest,
    GenerateResponse,
    IncidentContext,
    IncidentType,
    ResponseMetadata,
    Severity,
    Stage,
    Tone,
)
from backend.app.generation.parser import (
    parse_follow_up_response,
    parse_generate_response,
)
from backend.app.generation.prompts import (
    SYSTEM_PROMPT,
    build_follow_up_prompt,
    build_user_prompt,
)

logger = logging.getLogger(__name__)

AnyResponse = Union[GenerateResponse, FollowUpGenerateResponse]

REQUIRED_FIELDS = ("incidentType", "location", "confirmedFacts")


# ═══════════════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GenerationConfig:
    """Environment-derived settings the pipeline needs, captured once per request."""
    api_key: Optional[str] = None
    mock_mode: bool = False
    model: Optional[str] = None
    languages: Tuple[str, ...] = ("es", "fr", "ar", "zh", "hi")
    display_timezone: str = "UTC"
    request_timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "GenerationConfig":
        return cls(
            api_key=settings.ANTHROPIC_API_KEY or None,
            mock_mode=settings.LLM_MOCK,
            model=settings.ANTHROPIC_MODEL or None,
            languages=tuple(settings.TRANSLATION_LANGUAGES),
            display_timezone=settings.DISPLAY_TIMEZONE,
            request_timeout=settings.LLM_REQUEST_TIMEOUT,
        )

    @property
    def mode(self) -> str:
        if self.mock_mode:
            return "mock"
        return "live" if self.api_key else "unconfigured"


# ═══════════════════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class ValidationOutcome:
    """Tagged validation result: either a context or an error message."""
    context: Optional[IncidentContext] = None
    stage: Stage = Stage.INITIAL
    previous_sms: Optional[str] = None
    last_follow_up_sms: Optional[str] = None
    error: str = ""
    missing_fields: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.context is not None


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip text; empty or whitespace-only becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


def _reading_level(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_READING_LEVEL
    if isinstance(value, float) and not math.isfinite(value):
        return DEFAULT_READING_LEVEL
    return max(MIN_READING_LEVEL, min(MAX_READING_LEVEL, int(round(value))))


def _check_choice(value: Optional[str], enum_cls, name: str) -> Optional[str]:
    """Return an error message if ``value`` is set but not a member value."""
    if value is None:
        return None
    allowed = [member.value for member in enum_cls]
    if value not in allowed:
        return f"Invalid {name} '{value}'. Must be one of: {', '.join(allowed)}"
    return None


def validate_request(body: Any) -> ValidationOutcome:
    """
    Validate a raw request body and build the defaulted IncidentContext.

    Missing incidentType / location / confirmedFacts are reported together.
    Optional fields fall back to their defaults when absent or blank.
    """
    if not isinstance(body, dict):
        return ValidationOutcome(error="Invalid request body")

    try:
        request = GenerateRequest.model_validate(body)
    except PydanticValidationError:
        return ValidationOutcome(error="Invalid request body")

    incident_type = _clean(request.incident_type)
    location = _clean(request.location)
    confirmed_facts = _clean(request.confirmed_facts)

    missing = [
        name for name, value in zip(
            REQUIRED_FIELDS, (incident_type, location, confirmed_facts),
        )
        if value is None
    ]
    if missing:
        return ValidationOutcome(
            error=f"All fields are required: {', '.join(missing)}",
            missing_fields=missing,
        )

    stage_value = _clean(request.stage) or Stage.INITIAL.value
    severity = _clean(request.severity)
    tone = _clean(request.tone)

    for problem in (
        _check_choice(stage_value, Stage, "stage"),
        _check_choice(incident_type, IncidentType, "incidentType"),
        _check_choice(severity, Severity, "severity"),
        _check_choice(tone, Tone, "tone"),
    ):
        if problem:
            return ValidationOutcome(error=problem)

    context = IncidentContext(
        incident_type=incident_type,
        location=location,
        confirmed_facts=confirmed_facts,
        severity=severity or DEFAULT_SEVERITY,
        audience=_clean(request.audience) or DEFAULT_AUDIENCE,
        reading_level=_reading_level(request.reading_level),
        tone=tone or DEFAULT_TONE,
        sender=_clean(request.sender) or DEFAULT_SENDER,
        required_action=_clean(request.required_action),
    )
    return ValidationOutcome(
        context=context,
        stage=Stage(stage_value),
        previous_sms=_clean(request.previous_sms),
        last_follow_up_sms=_clean(request.last_follow_up_sms),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Mock path
# ═══════════════════════════════════════════════════════════════════════════

def _mock_for_stage(
    outcome: ValidationOutcome,
    metadata: ResponseMetadata,
    config: GenerationConfig,
) -> AnyResponse:
    if outcome.stage == Stage.FOLLOW_UP:
        return build_mock_follow_up_response(outcome.context, metadata)
    return build_mock_response(outcome.context, metadata, config.languages)


# ═══════════════════════════════════════════════════════════════════════════
# Live path
# ═══════════════════════════════════════════════════════════════════════════

async def _generate_live(
    outcome: ValidationOutcome,
    metadata: ResponseMetadata,
    server_flags: List[str],
    config: GenerationConfig,
    client: AnthropicClient,
) -> AnyResponse:
    ctx = outcome.context
    stage = outcome.stage

    # prompting
    if stage == Stage.FOLLOW_UP:
        user_prompt = build_follow_up_prompt(
            ctx, metadata.formatted_time,
            outcome.previous_sms, outcome.last_follow_up_sms,
        )
    else:
        user_prompt = build_user_prompt(ctx, metadata.formatted_time, config.languages)

    # calling_model
    result = await client.complete(SYSTEM_PROMPT, user_prompt)
    if not result.ok:
        raise UpstreamServiceError(result.error, attempts=result.attempts)

    if not result.content:
        logger.warning(
            "Model returned no text content; falling back to mock",
            extra={"stage": stage.value, "generation_path": "fallback"},
        )
        return _mock_for_stage(outcome, metadata, config)

    # parsing
    if stage == Stage.FOLLOW_UP:
        parsed = parse_follow_up_response(result.content, server_flags)
    else:
        parsed = parse_generate_response(result.content, metadata, server_flags)

    if not parsed.is_usable:
        logger.warning(
            "Model output unusable (%s); falling back to mock", parsed.reason,
            extra={"stage": stage.value, "generation_path": "fallback"},
        )
        return _mock_for_stage(outcome, metadata, config)

    logger.info(
        "Generated %s messages from model output", stage.value,
        extra={"stage": stage.value, "generation_path": "live"},
    )
    return parsed.response


# ═══════════════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════════════

async def generate(
    body: Any,
    config: GenerationConfig,
    *,
    client: Optional[AnthropicClient] = None,
    now: Optional[datetime] = None,
) -> AnyResponse:
    """
    Run one generation request.

    Parameters
    ----------
    body : Any
        Decoded JSON request body.
    config : GenerationConfig
        Per-request configuration snapshot.
    client : AnthropicClient | None
        Provider client; built from ``config`` when omitted.
    now : datetime | None
        Clock override for the metadata block (tests freeze it).

    Returns
    -------
    GenerateResponse | FollowUpGenerateResponse

    Raises
    ------
    RequestValidationError, ConfigurationError, UpstreamServiceError,
    UnexpectedGenerationError
    """
    outcome = validate_request(body)
    if not outcome.valid:
        raise RequestValidationError(outcome.error, missing_fields=outcome.missing_fields)

    ctx = outcome.context
    metadata = build_metadata(ctx.sender, ctx.tone, now=now, tz_name=config.display_timezone)
    server_flags = evaluate_compliance(ctx.required_action, ctx.confirmed_facts)

    if config.mock_mode:
        logger.info(
            "Mock mode enabled; generating %s messages from templates", outcome.stage.value,
            extra={"stage": outcome.stage.value, "generation_path": "mock"},
        )
        return _mock_for_stage(outcome, metadata, config)

    if not config.api_key:
        raise ConfigurationError("Server configuration error: missing API key")

    if client is None:
        client = AnthropicClient(
            config.api_key, model=config.model, timeout=config.request_timeout,
        )

    try:
        return await _generate_live(outcome, metadata, server_flags, config, client)
    except CopilotAPIError:
        raise
    except Exception as exc:
        logger.exception(
            "Unexpected error during live generation",
            extra={"stage": outcome.stage.value},
        )
        raise UnexpectedGenerationError() from exc
