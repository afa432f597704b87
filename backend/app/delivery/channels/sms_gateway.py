"""
sms_gateway.py — SMS delivery channel via gateway integration.

Delivery mechanism:
    • Primary: Twilio Programmable Messaging REST API
    • Payload: the generated SMS (already clipped to ≤160 chars upstream)
    • Recipient: explicit ``to`` or the deployment's SMS_TO_NUMBER

═══════════════════════════════════════════════════════════════════════════
SMS GATEWAY ARCHITECTURE
═══════════════════════════════════════════════════════════════════════════

    App  →  HTTP POST  →  Twilio API  →  Carrier  →  Handset

    Twilio:
        POST https://api.twilio.com/2010-04-01/Accounts/{SID}/Messages.json
        Basic auth (account SID, auth token), form fields Body / From / To
        Response JSON carries the message ``sid``

    Default: simulation mode for development (logs, sends nothing).
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from backend.app.delivery.models import (
    DeliveryChannel,
    DeliveryResult,
    DeliveryStatus,
)

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
SMS_SEGMENT_LENGTH = 160

NOT_CONFIGURED_MESSAGE = (
    "Twilio is not configured. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, "
    "and TWILIO_PHONE_NUMBER."
)
NO_RECIPIENT_MESSAGE = "No recipient. Provide 'to' in the body or set SMS_TO_NUMBER."


def _twilio_error(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"Twilio API {response.status_code}: {response.text}"
    message = data.get("message") if isinstance(data, dict) else None
    return message or f"Twilio API {response.status_code}: {response.text}"


def _send_twilio(
    result: DeliveryResult,
    message: str,
    recipient: str,
    *,
    account_sid: str,
    auth_token: str,
    from_number: str,
    http_client: httpx.Client,
) -> DeliveryResult:
    response = http_client.post(
        f"{TWILIO_API_BASE}/Accounts/{account_sid}/Messages.json",
        data={"Body": message, "From": from_number, "To": recipient},
        auth=(account_sid, auth_token),
    )
    if not response.is_success:
        error = _twilio_error(response)
        logger.error(
            "[SMS/Twilio] Rejected (%d): %s", response.status_code, error,
            extra={"channel": "sms", "status_code": response.status_code},
        )
        return result.finish(DeliveryStatus.FAILED, error)

    try:
        data = response.json()
    except ValueError:
        error = f"Twilio API {response.status_code}: unreadable response: {response.text}"
        logger.error("[SMS/Twilio] %s", error, extra={"channel": "sms"})
        return result.finish(DeliveryStatus.FAILED, error)

    sid = data.get("sid") if isinstance(data, dict) else None
    logger.info("[SMS/Twilio] Sent %s", sid, extra={"channel": "sms"})
    result.provider_response = {"sid": sid}
    return result.finish(DeliveryStatus.DELIVERED)


def send(
    message: str,
    to: Optional[str] = None,
    *,
    provider: str = "simulation",
    default_recipient: Optional[str] = None,
    account_sid: Optional[str] = None,
    auth_token: Optional[str] = None,
    from_number: Optional[str] = None,
    timeout_seconds: float = 15.0,
    http_client: Optional[httpx.Client] = None,
) -> DeliveryResult:
    """
    Send an SMS.

    Parameters
    ----------
    message : str
        SMS body.
    to : str | None
        Recipient phone number (E.164); falls back to ``default_recipient``.
    provider : str
        "twilio" or "simulation".
    account_sid, auth_token, from_number : str | None
        Twilio credentials (not needed for simulation).
    timeout_seconds : float
        HTTP timeout for the gateway call.
    http_client : httpx.Client | None
        Reused client (tests pass one backed by a MockTransport).

    Returns
    -------
    DeliveryResult
    """
    result = DeliveryResult(channel=DeliveryChannel.SMS, provider=provider)

    recipient = (to or "").strip() or default_recipient
    if not recipient:
        return result.finish(DeliveryStatus.SKIPPED, NO_RECIPIENT_MESSAGE)
    result.recipient = recipient

    if provider == "simulation":
        logger.info(
            "[SMS] → %s: %d chars → '%s'",
            recipient, len(message),
            message[:80] + ("..." if len(message) > 80 else ""),
            extra={"channel": "sms"},
        )
        result.provider_response = {
            "mode": "simulated",
            "message_length": len(message),
            "segments": 1 + (len(message) - 1) // SMS_SEGMENT_LENGTH if message else 0,
        }
        return result.finish(DeliveryStatus.DELIVERED)

    if provider != "twilio":
        return result.finish(DeliveryStatus.FAILED, f"Unknown SMS provider: {provider}")

    if not (account_sid and auth_token and from_number):
        return result.finish(DeliveryStatus.FAILED, NOT_CONFIGURED_MESSAGE)

    try:
        if http_client is not None:
            return _send_twilio(
                result, message, recipient,
                account_sid=account_sid, auth_token=auth_token,
                from_number=from_number, http_client=http_client,
            )
        with httpx.Client(timeout=timeout_seconds) as client:
            return _send_twilio(
                result, message, recipient,
                account_sid=account_sid, auth_token=auth_token,
                from_number=from_number, http_client=client,
            )
    except httpx.HTTPError as exc:
        logger.error("[SMS] Failed for %s: %s", recipient, exc, extra={"channel": "sms"})
        return result.finish(DeliveryStatus.FAILED, str(exc) or "Unknown Twilio error")
