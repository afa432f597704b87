"""
mock.py — Deterministic, network-free response generator.

Used whenever live generation is disabled (LLM_MOCK), unavailable, or
produced unusable output. Given the same IncidentContext and the same
metadata (i.e. a frozen clock) the output is byte-identical.

Templates:

    SMS       "[URGENT: ]ALERT: {type} at {location}.{ action | ' Follow official guidance.'}"
    Voice     tone intro + audience / sender / time / incident / facts / action
    Email     "[URGENT - ]Emergency Alert: {type} at {location}" + structured body
    Social    🚨 (Urgent) or ⚠️ + summary with the first 80 chars of facts
    Translate one SMS-sized template per language code (es, fr, ar, zh, hi)
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Sequence

from backend.app.generation.compliance import evaluate_compliance
from backend.app.generation.constants import (
    FOLLOW_UP_WINDOW_MINUTES,
    SOCIAL_FACTS_EXCERPT_LENGTH,
)
from backend.app.generation.metadata import build_metadata
from backend.app.generation.models import (
    EmailContent,
    FollowUpContent,
    FollowUpGenerateResponse,
    GenerateResponse,
    IncidentContext,
    ResponseMetadata,
    Tone,
    clip_sms,
)

logger = logging.getLogger(__name__)

DEFAULT_GUIDANCE = "Follow official guidance."
FOLLOW_UP_GUIDANCE = "Continue to follow official guidance."

_VOICE_INTROS = {
    Tone.CALM.value: "Please remain calm. ",
    Tone.URGENT.value: "This is an urgent message. ",
}

# Placeholders: {type}, {location}, {action}. Rendered text is clipped to 160.
TRANSLATION_TEMPLATES: Dict[str, str] = {
    "es": "ALERTA: {type} en {location}. {action}",
    "fr": "ALERTE: {type} a {location}. {action}",
    "ar": "تنبيه: {type} في {location}. {action}",
    "zh": "警报: {location} 发生 {type}。{action}",
    "hi": "अलर्ट: {location} पर {type}। {action}",
}

_EMOJI_URGENT = "\U0001f6a8"
_EMOJI_WARNING = "\u26a0\ufe0f"


def _action_suffix(ctx: IncidentContext, fallback: str = "") -> str:
    """`` {action}`` when present, else `` {fallback}`` (or nothing)."""
    if ctx.required_action:
        return f" {ctx.required_action}"
    return f" {fallback}" if fallback else ""


def build_mock_sms(ctx: IncidentContext) -> str:
    prefix = "URGENT: " if ctx.is_urgent else ""
    return clip_sms(
        f"{prefix}ALERT: {ctx.incident_type} at {ctx.location}."
        f"{_action_suffix(ctx, DEFAULT_GUIDANCE)}"
    )


def build_mock_voice_script(ctx: IncidentContext, formatted_time: str) -> str:
    intro = _VOICE_INTROS.get(ctx.tone, "")
    return (
        f"{intro}Attention {ctx.audience}. "
        f"This is an emergency alert from {ctx.sender} at {formatted_time}. "
        f"A {ctx.incident_type} has been reported at {ctx.location}. "
        f"{ctx.confirmed_facts}{_action_suffix(ctx)} "
        "Please follow all official instructions and stay tuned for updates."
    )


def build_mock_email(ctx: IncidentContext, formatted_time: str) -> EmailContent:
    subject_prefix = "URGENT - " if ctx.is_urgent else ""
    action_section = (
        f"\n\nRequired Action:\n{ctx.required_action}" if ctx.required_action else ""
    )
    return EmailContent(
        subject=f"{subject_prefix}Emergency Alert: {ctx.incident_type} at {ctx.location}",
        body=(
            f"This is an official emergency notification from {ctx.sender}.\n"
            f"Issued: {formatted_time}\n\n"
            f"Incident: {ctx.incident_type}\n"
            f"Location: {ctx.location}\n\n"
            f"Confirmed details:\n{ctx.confirmed_facts}"
            f"{action_section}\n\n"
            "Please follow all official instructions and monitor local news for updates."
        ),
    )


def build_mock_social_post(ctx: IncidentContext, formatted_time: str) -> str:
    emoji = _EMOJI_URGENT if ctx.is_urgent else _EMOJI_WARNING
    excerpt = ctx.confirmed_facts[:SOCIAL_FACTS_EXCERPT_LENGTH]
    return (
        f"{emoji} EMERGENCY: {ctx.incident_type} reported at {ctx.location} "
        f"({formatted_time}). {excerpt}{_action_suffix(ctx, DEFAULT_GUIDANCE)} "
        f"\u2014 {ctx.sender}"
    )


def build_mock_translations(
    ctx: IncidentContext,
    languages: Sequence[str] = tuple(TRANSLATION_TEMPLATES),
) -> Dict[str, str]:
    action = ctx.required_action or DEFAULT_GUIDANCE
    translations: Dict[str, str] = {}
    for lang in languages:
        template = TRANSLATION_TEMPLATES.get(lang)
        if template is None:
            logger.debug("No mock translation template for '%s'", lang)
            continue
        translations[lang] = clip_sms(
            template.format(type=ctx.incident_type, location=ctx.location, action=action)
        )
    return translations


def build_mock_response(
    ctx: IncidentContext,
    metadata: Optional[ResponseMetadata] = None,
    languages: Sequence[str] = tuple(TRANSLATION_TEMPLATES),
) -> GenerateResponse:
    """Full initial-alert package built from templates."""
    metadata = metadata or build_metadata(ctx.sender, ctx.tone)
    time_str = metadata.formatted_time

    return GenerateResponse(
        sms=build_mock_sms(ctx),
        voice_script=build_mock_voice_script(ctx, time_str),
        email=build_mock_email(ctx, time_str),
        social_post=build_mock_social_post(ctx, time_str),
        translations=build_mock_translations(ctx, languages),
        readability_grade_estimate=ctx.reading_level,
        compliance_flags=evaluate_compliance(ctx.required_action, ctx.confirmed_facts),
        follow_up_suggestion=(
            f"Send a follow-up message in {FOLLOW_UP_WINDOW_MINUTES} minutes with "
            f"updated status on the {ctx.incident_type} at {ctx.location}."
        ),
        metadata=metadata,
    )


def build_mock_follow_up_response(
    ctx: IncidentContext,
    metadata: Optional[ResponseMetadata] = None,
) -> FollowUpGenerateResponse:
    """Update-stage package: UPDATE-prefixed SMS and an update email."""
    metadata = metadata or build_metadata(ctx.sender, ctx.tone)
    subject_prefix = "URGENT - " if ctx.is_urgent else ""
    action_section = (
        f"\n\nRequired Action:\n{ctx.required_action}" if ctx.required_action else ""
    )

    content = FollowUpContent(
        sms=clip_sms(
            f"UPDATE: {ctx.incident_type} at {ctx.location}."
            f"{_action_suffix(ctx, FOLLOW_UP_GUIDANCE)}"
        ),
        email=EmailContent(
            subject=f"{subject_prefix}Update: {ctx.incident_type} at {ctx.location}",
            body=(
                f"This is a follow-up notification from {ctx.sender}.\n"
                f"Updated: {metadata.formatted_time}\n\n"
                f"Incident: {ctx.incident_type}\n"
                f"Location: {ctx.location}\n\n"
                f"Current confirmed details:\n{ctx.confirmed_facts}"
                f"{action_section}\n\n"
                "We will continue to share updates as new information is confirmed."
            ),
        ),
        compliance_flags=evaluate_compliance(ctx.required_action, ctx.confirmed_facts),
    )
    return FollowUpGenerateResponse(follow_up=content)
