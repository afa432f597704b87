"""
models.py — Shared data structures for message delivery.

Defines:
    • DeliveryChannel  — SMS / email / social
    • DeliveryStatus   — outcome of one send
    • SocialPlatform   — supported social networks
    • DeliveryResult   — single send record returned by every channel

Status meaning at the API boundary:

    Status       HTTP    Meaning
    ─────────    ────    ─────────────────────────────────────────────
    DELIVERED    200     provider accepted the message (or simulated)
    SKIPPED      400     caller-side problem: no recipient available
    FAILED       500     provider missing configuration or rejected it
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class DeliveryChannel(str, Enum):
    SMS    = "sms"
    EMAIL  = "email"
    SOCIAL = "social"


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FAILED    = "failed"
    SKIPPED   = "skipped"   # nothing to send to


class SocialPlatform(str, Enum):
    TWITTER  = "twitter"
    FACEBOOK = "facebook"


@dataclass
class DeliveryResult:
    """Record of one delivery attempt on one channel."""
    channel: DeliveryChannel
    status: DeliveryStatus = DeliveryStatus.FAILED
    recipient: Optional[str] = None
    provider: str = "simulation"
    provider_response: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def delivered(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    def finish(self, status: DeliveryStatus, error_message: Optional[str] = None) -> "DeliveryResult":
        self.status = status
        self.error_message = error_message
        self.completed_at = datetime.now(timezone.utc)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "status": self.status.value,
            "recipient": self.recipient,
            "provider": self.provider,
            "provider_response": self.provider_response,
            "error_message": self.error_message,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
