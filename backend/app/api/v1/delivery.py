"""
FastAPI route: Message delivery endpoints.

Provides:
    POST /api/v1/delivery/sms      — send an SMS (Twilio or simulation)
    POST /api/v1/delivery/email    — send an email (SMTP or simulation)
    POST /api/v1/delivery/social   — post to Twitter / Facebook (or simulation)
    GET  /api/v1/delivery/channels — configured provider per channel

Handlers are plain functions: the channel backends do blocking I/O and
FastAPI runs them in its thread pool.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from backend.app.api.schemas import (
    EmailDeliveryRequest,
    SmsDeliveryRequest,
    SocialDeliveryRequest,
)
from backend.app.core.config import Settings, get_settings
from backend.app.core.errors import DeliveryError, RequestValidationError
from backend.app.delivery.channels import email_sender, sms_gateway, social_poster
from backend.app.delivery.models import DeliveryResult, DeliveryStatus, SocialPlatform

router = APIRouter(prefix="/api/v1/delivery", tags=["delivery"])


def _raise_for_result(result: DeliveryResult) -> None:
    """SKIPPED → 400 (caller must supply a recipient); FAILED → 500."""
    if result.status == DeliveryStatus.SKIPPED:
        raise RequestValidationError(result.error_message or "Nothing to deliver")
    if result.status == DeliveryStatus.FAILED:
        raise DeliveryError(result.channel.value, result.error_message or "Delivery failed")


def _multiline(value: str) -> bool:
    return "\r" in value or "\n" in value


@router.post("/sms", summary="Send an SMS")
def send_sms(
    request: SmsDeliveryRequest,
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if not request.message.strip():
        raise RequestValidationError("message is required.")

    result = sms_gateway.send(
        request.message,
        request.to,
        provider=settings.SMS_PROVIDER,
        default_recipient=settings.SMS_TO_NUMBER,
        account_sid=settings.TWILIO_ACCOUNT_SID,
        auth_token=settings.TWILIO_AUTH_TOKEN,
        from_number=settings.TWILIO_PHONE_NUMBER,
        timeout_seconds=settings.DELIVERY_TIMEOUT,
    )
    _raise_for_result(result)
    return {"success": True, "sid": result.provider_response.get("sid"), "delivery": result.to_dict()}


@router.post("/email", summary="Send an email")
def send_email(
    request: EmailDeliveryRequest,
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if not request.subject.strip() or not request.body.strip():
        raise RequestValidationError("subject and body are required.")
    if _multiline(request.subject) or _multiline(request.to or ""):
        raise RequestValidationError("subject and to must be a single line.")

    result = email_sender.send(
        request.subject,
        request.body,
        request.to,
        provider=settings.EMAIL_PROVIDER,
        default_recipient=settings.EMAIL_TO,
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        from_address=settings.EMAIL_FROM,
        timeout_seconds=settings.DELIVERY_TIMEOUT,
    )
    _raise_for_result(result)
    return {"success": True, "delivery": result.to_dict()}


@router.post("/social", summary="Publish a social media post")
def post_social(
    request: SocialDeliveryRequest,
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    if not request.message.strip():
        raise RequestValidationError("message is required.")
    if request.platform not in {p.value for p in SocialPlatform}:
        raise RequestValidationError("platform must be 'twitter' or 'facebook'.")

    result = social_poster.send(
        SocialPlatform(request.platform),
        request.message,
        provider=settings.SOCIAL_PROVIDER,
        twitter_bearer_token=settings.TWITTER_BEARER_TOKEN,
        facebook_page_id=settings.FACEBOOK_PAGE_ID,
        facebook_page_access_token=settings.FACEBOOK_PAGE_ACCESS_TOKEN,
        timeout_seconds=settings.DELIVERY_TIMEOUT,
    )
    _raise_for_result(result)
    return {"success": True, "delivery": result.to_dict()}


@router.get("/channels", summary="List delivery channels and their providers")
def list_channels(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return {
        "channels": [
            {"name": "sms", "provider": settings.SMS_PROVIDER},
            {"name": "email", "provider": settings.EMAIL_PROVIDER},
            {
                "name": "social",
                "provider": settings.SOCIAL_PROVIDER,
                "platforms": [p.value for p in SocialPlatform],
            },
        ],
    }
