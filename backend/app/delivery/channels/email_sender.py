"""
email_sender.py — Email delivery channel.

Delivery mechanism:
    • SMTP via the standard library (smtplib + EmailMessage)
    • Plain-text body exactly as generated (subject / body from the package)
    • Port 465 → implicit TLS (SMTP_SSL); any other port → STARTTLS

Email carries the long-form notice. It complements SMS rather than
replacing it: delivery is slower and may land in a spam folder.

═══════════════════════════════════════════════════════════════════════════
MESSAGE STRUCTURE
═══════════════════════════════════════════════════════════════════════════

    From:    EMAIL_FROM (or the SMTP user)
    To:      explicit ``to`` or EMAIL_TO
    Subject: generated subject, e.g. "URGENT - Emergency Alert: Fire at 123 Main St"
    Body:    generated plain-text notice
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from backend.app.delivery.models import (
    DeliveryChannel,
    DeliveryResult,
    DeliveryStatus,
)

logger = logging.getLogger(__name__)

SMTP_SSL_PORT = 465

NOT_CONFIGURED_MESSAGE = (
    "SMTP is not configured. Set SMTP_HOST, SMTP_PORT, SMTP_USER, and SMTP_PASSWORD."
)
NO_RECIPIENT_MESSAGE = "No recipient. Provide 'to' in the body or set EMAIL_TO."


def build_message(subject: str, body: str, sender: str, recipient: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = recipient
    msg.set_content(body)
    return msg


def _deliver_smtp(
    msg: EmailMessage,
    *,
    host: str,
    port: int,
    user: str,
    password: str,
    timeout_seconds: float,
) -> None:
    if port == SMTP_SSL_PORT:
        with smtplib.SMTP_SSL(host, port, timeout=timeout_seconds) as server:
            server.login(user, password)
            server.send_message(msg)
        return

    with smtplib.SMTP(host, port, timeout=timeout_seconds) as server:
        server.starttls()
        server.login(user, password)
        server.send_message(msg)


def send(
    subject: str,
    body: str,
    to: Optional[str] = None,
    *,
    provider: str = "simulation",
    default_recipient: Optional[str] = None,
    smtp_host: Optional[str] = None,
    smtp_port: Optional[int] = None,
    smtp_user: Optional[str] = None,
    smtp_password: Optional[str] = None,
    from_address: Optional[str] = None,
    timeout_seconds: float = 20.0,
) -> DeliveryResult:
    """
    Send a plain-text email.

    Parameters
    ----------
    subject, body : str
        Generated email content.
    to : str | None
        Recipient address; falls back to ``default_recipient``.
    provider : str
        "smtp" or "simulation".
    smtp_host, smtp_port, smtp_user, smtp_password : SMTP server config
    from_address : str | None
        Sender address; defaults to the SMTP user.
    timeout_seconds : float

    Returns
    -------
    DeliveryResult
    """
    result = DeliveryResult(channel=DeliveryChannel.EMAIL, provider=provider)

    recipient = (to or "").strip() or default_recipient
    if not recipient:
        return result.finish(DeliveryStatus.SKIPPED, NO_RECIPIENT_MESSAGE)
    result.recipient = recipient

    if provider == "simulation":
        logger.info(
            "[EMAIL] → %s: Subject='%s'", recipient, subject,
            extra={"channel": "email"},
        )
        result.provider_response = {
            "mode": "simulated",
            "subject": subject,
            "body_size": len(body),
        }
        return result.finish(DeliveryStatus.DELIVERED)

    if provider != "smtp":
        return result.finish(DeliveryStatus.FAILED, f"Unknown email provider: {provider}")

    if not (smtp_host and smtp_port and smtp_user and smtp_password):
        return result.finish(DeliveryStatus.FAILED, NOT_CONFIGURED_MESSAGE)

    try:
        # EmailMessage rejects header values containing CR or LF
        msg = build_message(subject, body, from_address or smtp_user, recipient)
        _deliver_smtp(
            msg,
            host=smtp_host,
            port=smtp_port,
            user=smtp_user,
            password=smtp_password,
            timeout_seconds=timeout_seconds,
        )
    except (smtplib.SMTPException, OSError, ValueError) as exc:
        logger.error("[EMAIL] Failed for %s: %s", recipient, exc, extra={"channel": "email"})
        return result.finish(DeliveryStatus.FAILED, str(exc) or "Unknown SMTP error")

    logger.info("[EMAIL/SMTP] Sent to %s via %s:%d", recipient, smtp_host, smtp_port,
                extra={"channel": "email"})
    result.provider_response = {"mode": "smtp", "host": smtp_host, "port": smtp_port}
    return result.finish(DeliveryStatus.DELIVERED)
