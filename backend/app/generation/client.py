"""
client.py — Model provider client (Anthropic Messages API) with bounded retry.

═══════════════════════════════════════════════════════════════════════════
RETRY POLICY
═══════════════════════════════════════════════════════════════════════════

    Attempt    Outcome                      Action
    ───────    ─────────────────────────    ─────────────────────────────
    0..N-1     429 / 502 / 503 / 529        sleep delays[attempt], retry
    N          429 / 502 / 503 / 529        fail: "rate limited after N retries"
    any        other non-2xx                fail immediately (status → 500)
    any        2xx                          extract first text block

    N = max_retries, so a provider that keeps answering with a retryable
    status sees exactly N + 1 requests. Delays come from a fixed ordered
    list indexed by attempt number; nothing depends on wall-clock time.

The sleep between attempts is an awaitable (asyncio.sleep by default), so
cancelling the surrounding task cancels the wait. Tests inject a no-op.

Upstream status codes are never surfaced to the caller: every failure
result carries status 500 and a message containing the provider's body.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Optional, Tuple

import httpx

from backend.app.generation.constants import (
    ANTHROPIC_API_URL,
    ANTHROPIC_VERSION,
    DEFAULT_MODEL,
    MAX_RETRIES,
    MAX_TOKENS,
    RETRY_DELAYS_SECONDS,
    RETRYABLE_STATUS_CODES,
    TEMPERATURE,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


# ═══════════════════════════════════════════════════════════════════════════
# Retry Configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry parameters for provider calls."""
    max_retries: int = MAX_RETRIES
    delays: Tuple[float, ...] = RETRY_DELAYS_SECONDS
    retryable_statuses: FrozenSet[int] = RETRYABLE_STATUS_CODES

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if len(self.delays) < self.max_retries:
            raise ValueError(
                f"RetryPolicy needs at least {self.max_retries} delays, "
                f"got {len(self.delays)}"
            )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, status_code: int, attempt: int) -> bool:
        """True if a response with this status on this attempt (0-based) is retried."""
        return status_code in self.retryable_statuses and attempt < self.max_retries

    def delay_for(self, attempt: int) -> float:
        return self.delays[attempt]


# ═══════════════════════════════════════════════════════════════════════════
# Result
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class CompletionResult:
    """
    Tagged outcome of one provider call (including its retries).

    ok=True with empty content means the provider answered but produced no
    text block; the orchestrator treats that as "fall back to mock".
    """
    ok: bool
    content: str = ""
    error: str = ""
    status: int = 200
    attempts: int = 0

    @classmethod
    def success(cls, content: str, attempts: int) -> "CompletionResult":
        return cls(ok=True, content=content, attempts=attempts)

    @classmethod
    def failure(cls, error: str, attempts: int) -> "CompletionResult":
        return cls(ok=False, error=error, status=500, attempts=attempts)


def extract_text(data: Any) -> str:
    """Return the first ``type == "text"`` content block's text, or ""."""
    if not isinstance(data, dict):
        return ""
    blocks = data.get("content")
    if not isinstance(blocks, list):
        return ""
    for block in blocks:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            return text if isinstance(text, str) else ""
    return ""


# ═══════════════════════════════════════════════════════════════════════════
# Client
# ═══════════════════════════════════════════════════════════════════════════

class AnthropicClient:
    """
    Minimal async client for the Anthropic Messages endpoint.

    Usage:
        client = AnthropicClient(api_key)
        result = await client.complete(SYSTEM_PROMPT, user_prompt)

    Pass ``http_client`` to reuse a connection pool (or a MockTransport in
    tests); otherwise a short-lived AsyncClient is opened per call.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        timeout: float = 60.0,
        api_url: str = ANTHROPIC_API_URL,
    ):
        self._api_key = api_key
        self.model = model or DEFAULT_MODEL
        self._http_client = http_client
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self.timeout = timeout
        self.api_url = api_url

    def build_headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def build_body(self, system: str, user_prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
            "system": system,
            "messages": [{"role": "user", "content": user_prompt}],
        }

    async def complete(self, system: str, user_prompt: str) -> CompletionResult:
        """Send one prompt, retrying transient statuses per the retry policy."""
        if self._http_client is not None:
            return await self._attempt_loop(self._http_client, system, user_prompt)

        async with httpx.AsyncClient(timeout=self.timeout) as http_client:
            return await self._attempt_loop(http_client, system, user_prompt)

    async def _attempt_loop(
        self,
        http_client: httpx.AsyncClient,
        system: str,
        user_prompt: str,
    ) -> CompletionResult:
        headers = self.build_headers()
        body = self.build_body(system, user_prompt)
        policy = self.retry_policy
        last_error = ""

        for attempt in range(policy.max_attempts):
            response = await http_client.post(self.api_url, headers=headers, json=body)
            status = response.status_code

            if status in policy.retryable_statuses:
                last_error = response.text
                if not policy.should_retry(status, attempt):
                    break
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Model provider returned %d, retry %d/%d in %.1fs",
                    status, attempt + 1, policy.max_retries, delay,
                    extra={"attempt": attempt + 1, "status_code": status},
                )
                await self._sleep(delay)
                continue

            if not response.is_success:
                logger.error(
                    "Model provider error %d on attempt %d",
                    status, attempt + 1,
                    extra={"attempt": attempt + 1, "status_code": status},
                )
                return CompletionResult.failure(
                    f"Anthropic API error ({status}): {response.text}",
                    attempts=attempt + 1,
                )

            content = extract_text(response.json())
            logger.info(
                "Model completion received (%d chars, %d attempt(s))",
                len(content), attempt + 1,
                extra={"attempt": attempt + 1, "status_code": status},
            )
            return CompletionResult.success(content, attempts=attempt + 1)

        return CompletionResult.failure(
            f"Anthropic API rate limited after {policy.max_retries} retries: {last_error}",
            attempts=policy.max_attempts,
        )
