"""
FastAPI route: Emergency message generation endpoint.

Provides:
    POST /api/v1/generate   — initial alert package or follow-up update

The body is read as raw JSON and handed to the generation orchestrator,
which owns validation. Errors come back as {"error": ..., "code": ...}
through the application's error handlers.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, Request

from backend.app.core.config import get_settings
from backend.app.core.errors import RequestValidationError
from backend.app.generation.client import AnthropicClient
from backend.app.generation.orchestrator import GenerationConfig, generate

router = APIRouter(prefix="/api/v1", tags=["generation"])


# ═══════════════════════════════════════════════════════════════════════════
# Dependencies
# ═══════════════════════════════════════════════════════════════════════════

def get_generation_config() -> GenerationConfig:
    """Per-request configuration snapshot."""
    return GenerationConfig.from_settings(get_settings())


async def get_model_client(
    config: GenerationConfig = Depends(get_generation_config),
) -> AsyncIterator[Optional[AnthropicClient]]:
    """
    Provider client for one request, or None when generation will not
    reach the provider (mock mode, or no key so the orchestrator raises
    its configuration error).
    """
    if config.mock_mode or not config.api_key:
        yield None
        return

    async with httpx.AsyncClient(timeout=config.request_timeout) as http_client:
        yield AnthropicClient(config.api_key, model=config.model, http_client=http_client)


async def read_json_object(request: Request) -> Dict[str, Any]:
    """Decode the request body; anything but a JSON object is a 400."""
    try:
        body = await request.json()
    except ValueError:
        raise RequestValidationError("Invalid request body") from None
    if not isinstance(body, dict):
        raise RequestValidationError("Invalid request body")
    return body


# ═══════════════════════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════════════════════

@router.post(
    "/generate",
    summary="Generate a multi-channel emergency notification package",
    description=(
        "Stage 'initial' (default) returns SMS, voice script, email, social "
        "post, translations, readability, compliance flags, follow-up "
        "suggestion and metadata. Stage 'follow_up' returns an update SMS and "
        "email. Falls back to deterministic templates when the model output "
        "is unusable."
    ),
)
async def generate_messages(
    request: Request,
    config: GenerationConfig = Depends(get_generation_config),
    client: Optional[AnthropicClient] = Depends(get_model_client),
):
    body = await read_json_object(request)
    response = await generate(body, config, client=client)
    return response.model_dump()
