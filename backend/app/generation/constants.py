"""
constants.py — Fixed parameters of the generation pipeline.

Anything a deployment may want to change (API key, model override, mock
flag, translation languages) lives in core.config instead.
"""

from __future__ import annotations

from typing import FrozenSet, Tuple

# ── Model provider wire contract ──
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MODEL = "claude-sonnet-4-20250514"
MAX_TOKENS = 1000
TEMPERATURE = 0.3

# ── Retry policy ──
MAX_RETRIES = 3
RETRY_DELAYS_SECONDS: Tuple[float, ...] = (1.0, 2.0, 4.0)  # indexed by attempt
RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 502, 503, 529})

# ── Field defaults ──
DEFAULT_AUDIENCE = "general public"
DEFAULT_READING_LEVEL = 6
DEFAULT_TONE = "Neutral"
DEFAULT_SENDER = "Emergency Management Office"
DEFAULT_SEVERITY = "Medium"
MIN_READING_LEVEL = 1
MAX_READING_LEVEL = 12

# ── Output contract ──
SMS_MAX_LENGTH = 160
DEFAULT_READABILITY_GRADE = 6
SOCIAL_FACTS_EXCERPT_LENGTH = 80
FOLLOW_UP_WINDOW_MINUTES = 30

# ── Compliance ──
MIN_CONFIRMED_FACTS_LENGTH = 15
FLAG_MISSING_ACTION = "Missing required action step."
FLAG_INSUFFICIENT_DETAILS = "Insufficient confirmed details provided."
FLAG_SMS_TOO_LONG = "SMS exceeds 160 character limit."
FLAG_HIGH_SEVERITY_NO_ACTION = "Missing required action for high severity incident."
