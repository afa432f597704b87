"""
Health check aggregation — deep health probe for all subsystems.

Checks:
    • Generation mode (live / mock / unconfigured) and display timezone
    • SMS, email and social delivery provider configuration
    • Incident store size

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards

No check contacts a third party and no credential value is reported, only
which settings are present.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = ""
    environment: str = ""
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def _missing(settings: Settings, *names: str) -> List[str]:
    return [name for name in names if not getattr(settings, name)]


def _provider_check(
    name: str,
    provider: str,
    live_provider: str,
    missing: List[str],
) -> ComponentHealth:
    """Shared logic for a channel with one simulation and one live provider."""
    comp = ComponentHealth(name=name, details={"provider": provider})
    if provider == "simulation":
        comp.message = "Simulation mode (messages are logged, not sent)"
    elif provider != live_provider:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Unknown provider: {provider}"
    elif missing:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"Missing settings: {', '.join(missing)}"
        comp.details["missing"] = missing
    else:
        comp.message = f"{live_provider} configured"
    return comp


async def check_generation(settings: Settings) -> ComponentHealth:
    """Report how /generate will answer: live model, mock, or not at all."""
    comp = ComponentHealth(name="generation")
    start = time.monotonic()

    if settings.LLM_MOCK:
        mode = "mock"
        comp.message = "Mock mode enabled; responses come from templates"
    elif settings.ANTHROPIC_API_KEY:
        mode = "live"
        comp.message = "Model provider configured"
    else:
        mode = "unconfigured"
        comp.status = HealthStatus.DEGRADED
        comp.message = "ANTHROPIC_API_KEY not set and mock mode off"

    try:
        ZoneInfo(settings.DISPLAY_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Unknown DISPLAY_TIMEZONE: {settings.DISPLAY_TIMEZONE}"

    comp.details = {
        "mode": mode,
        "model_override": bool(settings.ANTHROPIC_MODEL),
        "translation_languages": list(settings.TRANSLATION_LANGUAGES),
        "display_timezone": settings.DISPLAY_TIMEZONE,
    }
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_sms_delivery(settings: Settings) -> ComponentHealth:
    start = time.monotonic()
    comp = _provider_check(
        "sms_delivery", settings.SMS_PROVIDER, "twilio",
        _missing(settings, "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"),
    )
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_email_delivery(settings: Settings) -> ComponentHealth:
    start = time.monotonic()
    comp = _provider_check(
        "email_delivery", settings.EMAIL_PROVIDER, "smtp",
        _missing(settings, "SMTP_HOST", "SMTP_USER", "SMTP_PASSWORD"),
    )
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_social_delivery(settings: Settings) -> ComponentHealth:
    """Live social posting is healthy if at least one platform is configured."""
    start = time.monotonic()
    platforms = {
        "twitter": not _missing(settings, "TWITTER_BEARER_TOKEN"),
        "facebook": not _missing(settings, "FACEBOOK_PAGE_ID", "FACEBOOK_PAGE_ACCESS_TOKEN"),
    }
    unconfigured = [] if any(platforms.values()) else ["TWITTER_BEARER_TOKEN or FACEBOOK_PAGE_*"]
    comp = _provider_check("social_delivery", settings.SOCIAL_PROVIDER, "live", unconfigured)
    comp.details["platforms"] = platforms
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_incident_store() -> ComponentHealth:
    from backend.app.incidents.service import list_incidents

    start = time.monotonic()
    records = list_incidents()
    comp = ComponentHealth(
        name="incident_store",
        message="In-memory store",
        details={
            "incidents": len(records),
            "unresolved": sum(1 for r in records if not r.is_resolved),
        },
    )
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(settings: Optional[Settings] = None) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    settings = settings or get_settings()
    report = HealthReport(
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    checks = [
        check_generation(settings),
        check_sms_delivery(settings),
        check_email_delivery(settings),
        check_social_delivery(settings),
        check_incident_store(),
    ]

    # Run all checks
    for coro in checks:
        comp = await coro
        report.components.append(comp)

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
