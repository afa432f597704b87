"""
compliance.py — Server-computed compliance flags.

These checks depend only on the incident input, never on model output, so
they are trusted over whatever the model declares and always end up in the
final response.
"""

from __future__ import annotations

from typing import List, Optional

from backend.app.generation.constants import (
    FLAG_HIGH_SEVERITY_NO_ACTION,
    FLAG_INSUFFICIENT_DETAILS,
    FLAG_MISSING_ACTION,
    FLAG_SMS_TOO_LONG,
    MIN_CONFIRMED_FACTS_LENGTH,
    SMS_MAX_LENGTH,
)
from backend.app.generation.models import Severity


def evaluate_compliance(
    required_action: Optional[str],
    confirmed_facts: str,
) -> List[str]:
    """
    Compute compliance flags for an incident.

    Order is fixed: missing action first, then insufficient details.
    Both checks are independent and may both fire.
    """
    flags: List[str] = []
    if not required_action:
        flags.append(FLAG_MISSING_ACTION)
    if len(confirmed_facts) < MIN_CONFIRMED_FACTS_LENGTH:
        flags.append(FLAG_INSUFFICIENT_DETAILS)
    return flags


def evaluate_follow_up_draft(
    sms: str,
    *,
    sms_enabled: bool,
    severity: str,
    required_action: Optional[str],
    confirmed_facts: str,
) -> List[str]:
    """Flags for a hand-edited follow-up draft before it is saved or sent."""
    flags: List[str] = []
    if sms_enabled and len(sms) > SMS_MAX_LENGTH:
        flags.append(FLAG_SMS_TOO_LONG)
    if severity == Severity.HIGH.value and not required_action:
        flags.append(FLAG_HIGH_SEVERITY_NO_ACTION)
    if len(confirmed_facts) < MIN_CONFIRMED_FACTS_LENGTH:
        flags.append(FLAG_INSUFFICIENT_DETAILS)
    return flags
