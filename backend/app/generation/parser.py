"""
parser.py — Turn raw model text into a validated response, or flag it unusable.

Model output is untrusted, semi-structured text. Parsing happens in three
steps:

    1. Extraction   strict json.loads of the whole text; failing that, the
                    greedy first-"{" to last-"}" span (handles prose and
                    ```json fences around the payload)
    2. Shape check  the object must carry a non-empty string ``sms`` and a
                    non-empty string ``email.subject``
    3. Coercion     every field is read tolerantly; wrong types become
                    defaults, sms/translations are clipped, model flags are
                    merged with the server's flags

Failures never raise: the result is a tagged ParseResult whose status is
UNUSABLE, and the orchestrator answers with the mock generator instead.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from backend.app.generation.constants import DEFAULT_READABILITY_GRADE
from backend.app.generation.models import (
    EmailContent,
    FollowUpContent,
    FollowUpGenerateResponse,
    GenerateResponse,
    ResponseMetadata,
    merge_compliance_flags,
)

logger = logging.getLogger(__name__)

_JSON_SPAN = re.compile(r"\{[\s\S]*\}")


class ParseStatus(str, Enum):
    VALID    = "valid"
    UNUSABLE = "unusable"


@dataclass
class ParseResult:
    """Tagged parser outcome — ``response`` is None whenever status is UNUSABLE."""
    status: ParseStatus
    response: Optional[Union[GenerateResponse, FollowUpGenerateResponse]] = None
    reason: str = ""

    @property
    def is_usable(self) -> bool:
        return self.status == ParseStatus.VALID

    @classmethod
    def unusable(cls, reason: str) -> "ParseResult":
        return cls(status=ParseStatus.UNUSABLE, reason=reason)


# ═══════════════════════════════════════════════════════════════════════════
# Extraction
# ═══════════════════════════════════════════════════════════════════════════

def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """
    Pull a JSON object out of model text.

    Returns None if neither the whole text nor the greedy ``{...}`` span
    parses to a JSON object.
    """
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        match = _JSON_SPAN.search(text or "")
        if match is None:
            return None
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            return None

    return parsed if isinstance(parsed, dict) else None


# ═══════════════════════════════════════════════════════════════════════════
# Coercion helpers
# ═══════════════════════════════════════════════════════════════════════════

def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _email(value: Any) -> EmailContent:
    email = _mapping(value)
    return EmailContent(subject=_string(email.get("subject")), body=_string(email.get("body")))


def _translations(value: Any) -> Dict[str, str]:
    # Open mapping: any language key, non-string values dropped
    return {
        str(lang): text
        for lang, text in _mapping(value).items()
        if isinstance(text, str)
    }


def _readability(value: Any) -> Union[int, float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_READABILITY_GRADE
    # json.loads yields nan / inf for NaN, Infinity and 1e400
    if isinstance(value, float) and not math.isfinite(value):
        return DEFAULT_READABILITY_GRADE
    return value


def _model_flags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [flag for flag in value if isinstance(flag, str)]


def _shape_problem(obj: Dict[str, Any]) -> Optional[str]:
    """Describe why an object lacks the minimum shape, or None if it is fine."""
    sms = obj.get("sms")
    if not isinstance(sms, str) or not sms.strip():
        return "missing sms"
    subject = _mapping(obj.get("email")).get("subject")
    if not isinstance(subject, str) or not subject.strip():
        return "missing email.subject"
    return None


# ═══════════════════════════════════════════════════════════════════════════
# Parsers
# ═══════════════════════════════════════════════════════════════════════════

def sanitize_response(
    raw: Dict[str, Any],
    metadata: ResponseMetadata,
    server_flags: Sequence[str],
) -> GenerateResponse:
    """Coerce an already shape-checked object into a GenerateResponse."""
    return GenerateResponse(
        sms=_string(raw.get("sms")),
        voice_script=_string(raw.get("voice_script")),
        email=_email(raw.get("email")),
        social_post=_string(raw.get("social_post")),
        translations=_translations(raw.get("translations")),
        readability_grade_estimate=_readability(raw.get("readability_grade_estimate")),
        compliance_flags=merge_compliance_flags(
            _model_flags(raw.get("compliance_flags")), server_flags,
        ),
        follow_up_suggestion=_string(raw.get("follow_up_suggestion")),
        metadata=metadata,
    )


def parse_generate_response(
    text: str,
    metadata: ResponseMetadata,
    server_flags: Sequence[str],
) -> ParseResult:
    """Parse initial-stage model output."""
    raw = extract_json_object(text)
    if raw is None:
        logger.info("Model output unusable: no JSON object found")
        return ParseResult.unusable("no JSON object found")

    problem = _shape_problem(raw)
    if problem:
        logger.info("Model output unusable: %s", problem)
        return ParseResult.unusable(problem)

    return ParseResult(
        status=ParseStatus.VALID,
        response=sanitize_response(raw, metadata, server_flags),
    )


def parse_follow_up_response(
    text: str,
    server_flags: Sequence[str],
) -> ParseResult:
    """
    Parse follow-up-stage model output.

    Reads the ``follow_up`` sub-object; if the model dropped the wrapper
    and returned the fields at the top level, those are used instead.
    """
    raw = extract_json_object(text)
    if raw is None:
        logger.info("Follow-up output unusable: no JSON object found")
        return ParseResult.unusable("no JSON object found")

    inner = raw.get("follow_up", raw)
    if not isinstance(inner, dict):
        logger.info("Follow-up output unusable: follow_up is not an object")
        return ParseResult.unusable("follow_up is not an object")

    problem = _shape_problem(inner)
    if problem:
        logger.info("Follow-up output unusable: %s", problem)
        return ParseResult.unusable(problem)

    content = FollowUpContent(
        sms=_string(inner.get("sms")),
        email=_email(inner.get("email")),
        compliance_flags=merge_compliance_flags(
            _model_flags(inner.get("compliance_flags")), server_flags,
        ),
    )
    return ParseResult(
        status=ParseStatus.VALID,
        response=FollowUpGenerateResponse(follow_up=content),
    )
