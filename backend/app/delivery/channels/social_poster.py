"""
social_poster.py — Social media posting channel.

Platforms:
    twitter    POST https://api.twitter.com/2/tweets
               Authorization: Bearer <TWITTER_BEARER_TOKEN>, body {"text": ...}
    facebook   POST https://graph.facebook.com/v19.0/{page_id}/feed
               body {"message": ..., "access_token": <page token>}

Provider errors come back as "<Platform> API <status>: <body>". Default
provider is simulation (logs the post, sends nothing).
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from backend.app.delivery.models import (
    DeliveryChannel,
    DeliveryResult,
    DeliveryStatus,
    SocialPlatform,
)

logger = logging.getLogger(__name__)

TWITTER_TWEETS_URL = "https://api.twitter.com/2/tweets"
FACEBOOK_GRAPH_BASE = "https://graph.facebook.com/v19.0"


def _json_object(response: httpx.Response) -> Optional[dict]:
    """Decoded JSON object body, or None when the body is not one."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _post_twitter(
    result: DeliveryResult,
    message: str,
    bearer_token: Optional[str],
    http_client: httpx.Client,
) -> DeliveryResult:
    if not bearer_token:
        return result.finish(DeliveryStatus.FAILED, "Twitter API keys not configured.")

    response = http_client.post(
        TWITTER_TWEETS_URL,
        headers={"Authorization": f"Bearer {bearer_token}"},
        json={"text": message},
    )
    if not response.is_success:
        return result.finish(
            DeliveryStatus.FAILED,
            f"Twitter API {response.status_code}: {response.text}",
        )

    body = _json_object(response)
    if body is None:
        return result.finish(
            DeliveryStatus.FAILED,
            f"Twitter API {response.status_code}: unreadable response: {response.text}",
        )
    data = body.get("data")
    result.provider_response = {"id": data.get("id") if isinstance(data, dict) else None}
    return result.finish(DeliveryStatus.DELIVERED)


def _post_facebook(
    result: DeliveryResult,
    message: str,
    page_id: Optional[str],
    page_token: Optional[str],
    http_client: httpx.Client,
) -> DeliveryResult:
    if not (page_id and page_token):
        return result.finish(
            DeliveryStatus.FAILED, "Facebook Page credentials not configured.",
        )

    response = http_client.post(
        f"{FACEBOOK_GRAPH_BASE}/{page_id}/feed",
        json={"message": message, "access_token": page_token},
    )
    if not response.is_success:
        return result.finish(
            DeliveryStatus.FAILED,
            f"Facebook API {response.status_code}: {response.text}",
        )

    body = _json_object(response)
    if body is None:
        return result.finish(
            DeliveryStatus.FAILED,
            f"Facebook API {response.status_code}: unreadable response: {response.text}",
        )
    result.provider_response = {"id": body.get("id")}
    return result.finish(DeliveryStatus.DELIVERED)


def _dispatch(
    result: DeliveryResult,
    platform: SocialPlatform,
    message: str,
    http_client: httpx.Client,
    *,
    twitter_bearer_token: Optional[str],
    facebook_page_id: Optional[str],
    facebook_page_access_token: Optional[str],
) -> DeliveryResult:
    if platform == SocialPlatform.TWITTER:
        return _post_twitter(result, message, twitter_bearer_token, http_client)
    return _post_facebook(
        result, message, facebook_page_id, facebook_page_access_token, http_client,
    )


def send(
    platform: SocialPlatform,
    message: str,
    *,
    provider: str = "simulation",
    twitter_bearer_token: Optional[str] = None,
    facebook_page_id: Optional[str] = None,
    facebook_page_access_token: Optional[str] = None,
    timeout_seconds: float = 15.0,
    http_client: Optional[httpx.Client] = None,
) -> DeliveryResult:
    """
    Publish a post to one social platform.

    Parameters
    ----------
    platform : SocialPlatform
    message : str
        Post text.
    provider : str
        "live" or "simulation".
    twitter_bearer_token : str | None
    facebook_page_id, facebook_page_access_token : str | None
    timeout_seconds : float
    http_client : httpx.Client | None

    Returns
    -------
    DeliveryResult
    """
    platform = SocialPlatform(platform)
    result = DeliveryResult(
        channel=DeliveryChannel.SOCIAL, provider=provider, recipient=platform.value,
    )

    if provider == "simulation":
        logger.info(
            "[SOCIAL/%s] %d chars → '%s'",
            platform.value, len(message),
            message[:80] + ("..." if len(message) > 80 else ""),
            extra={"channel": "social", "platform": platform.value},
        )
        result.provider_response = {"mode": "simulated", "length": len(message)}
        return result.finish(DeliveryStatus.DELIVERED)

    if provider != "live":
        return result.finish(DeliveryStatus.FAILED, f"Unknown social provider: {provider}")

    credentials = dict(
        twitter_bearer_token=twitter_bearer_token,
        facebook_page_id=facebook_page_id,
        facebook_page_access_token=facebook_page_access_token,
    )
    try:
        if http_client is not None:
            result = _dispatch(result, platform, message, http_client, **credentials)
        else:
            with httpx.Client(timeout=timeout_seconds) as client:
                result = _dispatch(result, platform, message, client, **credentials)
    except httpx.HTTPError as exc:
        logger.error(
            "[SOCIAL/%s] Failed: %s", platform.value, exc,
            extra={"channel": "social", "platform": platform.value},
        )
        return result.finish(DeliveryStatus.FAILED, str(exc) or "Unknown social API error")

    if result.delivered:
        logger.info("[SOCIAL/%s] Posted", platform.value,
                    extra={"channel": "social", "platform": platform.value})
    else:
        logger.error("[SOCIAL/%s] %s", platform.value, result.error_message,
                     extra={"channel": "social", "platform": platform.value})
    return result
