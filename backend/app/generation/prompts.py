"""
prompts.py — System and user prompts for the model provider.

Pure string construction: given a validated IncidentContext and the
request's formatted time, produce the instructions sent to the model.

Two user-prompt variants exist:
    initial    — full multi-channel package (sms, voice, email, social,
                 translations, readability, flags, follow-up suggestion)
    follow_up  — update message only, with the previously sent SMS and the
                 latest follow-up SMS so the model does not repeat itself
"""

from __future__ import annotations

import json
from typing import Optional, Sequence

from backend.app.generation.constants import SMS_MAX_LENGTH
from backend.app.generation.models import IncidentContext

SYSTEM_PROMPT = f"""You are an AI Crisis Communication Copilot for emergency mass notification systems.

Rules:
- Use ONLY confirmed facts.
- Never invent details.
- Avoid speculation or blame.
- Include requiredAction explicitly in every channel if provided.
- If requiredAction is missing, add a compliance flag.
- Adapt tone based on:
    Calm → reassuring, steady
    Neutral → clear and direct
    Urgent → concise and commanding
- Use plain language at the requested reading level.
- SMS must be <= {SMS_MAX_LENGTH} characters.
- Include sender name when appropriate.
- Include timestamp naturally in longer channels (voice/email/social).
- Return ONLY valid JSON matching schema exactly. No prose, no markdown code fences."""


def _required_action_line(ctx: IncidentContext) -> str:
    if ctx.required_action:
        return f"Required Action: {ctx.required_action}"
    return "Required Action: (not specified — flag this in compliance_flags)"


def _incident_details(ctx: IncidentContext, formatted_time: str) -> str:
    return "\n".join([
        f"Incident Type: {ctx.incident_type}",
        f"Location: {ctx.location}",
        f"Severity: {ctx.severity}",
        f"Confirmed Facts: {ctx.confirmed_facts}",
        _required_action_line(ctx),
        f"Audience: {ctx.audience}",
        f"Reading Level: Grade {ctx.reading_level}",
        f"Tone: {ctx.tone}",
        f"Sender: {ctx.sender}",
        f"Time: {formatted_time}",
    ])


def _initial_schema(ctx: IncidentContext, languages: Sequence[str]) -> str:
    translations = ", ".join(f'"{lang}": "..."' for lang in languages)
    return (
        "{\n"
        '  "sms": "...",\n'
        '  "voice_script": "...",\n'
        '  "email": { "subject": "...", "body": "..." },\n'
        '  "social_post": "...",\n'
        f'  "translations": {{ {translations} }},\n'
        f'  "readability_grade_estimate": {ctx.reading_level},\n'
        '  "compliance_flags": [],\n'
        '  "follow_up_suggestion": "..."\n'
        "}"
    )


_FOLLOW_UP_SCHEMA = (
    "{\n"
    '  "follow_up": {\n'
    '    "sms": "...",\n'
    '    "email": { "subject": "...", "body": "..." },\n'
    '    "compliance_flags": []\n'
    "  }\n"
    "}"
)


def build_user_prompt(
    ctx: IncidentContext,
    formatted_time: str,
    languages: Sequence[str] = ("es", "fr", "ar", "zh", "hi"),
) -> str:
    """User prompt for the initial alert package."""
    return (
        "Generate emergency messages based on the following incident details:\n\n"
        f"{_incident_details(ctx, formatted_time)}\n\n"
        "Return STRICT JSON with this exact schema:\n\n"
        f"{_initial_schema(ctx, languages)}\n\n"
        "Do not include explanations. No extra keys. No markdown. No commentary."
    )


def build_follow_up_prompt(
    ctx: IncidentContext,
    formatted_time: str,
    previous_sms: Optional[str] = None,
    last_follow_up_sms: Optional[str] = None,
) -> str:
    """User prompt for a follow-up update to an already-issued alert."""
    history = [
        "Initial alert SMS already sent: "
        + (json.dumps(previous_sms, ensure_ascii=False) if previous_sms else "(not available)"),
        "Most recent follow-up SMS: "
        + (json.dumps(last_follow_up_sms, ensure_ascii=False) if last_follow_up_sms else "(none sent yet)"),
    ]

    return (
        "Generate a FOLLOW-UP status update for an ongoing incident.\n\n"
        f"{_incident_details(ctx, formatted_time)}\n\n"
        "Message history:\n"
        + "\n".join(history)
        + "\n\n"
        "The update must move the communication forward: do not repeat the "
        "wording of the messages above, restate only confirmed facts, and "
        "say when the next update can be expected.\n"
        f"The SMS must start with \"UPDATE:\" and be <= {SMS_MAX_LENGTH} characters.\n\n"
        "Return STRICT JSON with this exact schema:\n\n"
        f"{_FOLLOW_UP_SCHEMA}\n\n"
        "Do not include explanations. No extra keys. No markdown. No commentary."
    )
