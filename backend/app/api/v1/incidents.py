"""
FastAPI route: Incident lifecycle endpoints.

Provides:
    POST /api/v1/incidents                                  — generate + record an initial alert
    GET  /api/v1/incidents                                  — list (newest first)
    GET  /api/v1/incidents/{id}                             — one incident
    POST /api/v1/incidents/{id}/follow-ups                  — attach a follow-up
    POST /api/v1/incidents/{id}/follow-ups/draft            — model-drafted follow-up text
    POST /api/v1/incidents/{id}/follow-ups/{fid}/send       — send a stored follow-up
    POST /api/v1/incidents/{id}/follow-up-sent              — mark follow-up milestone
    POST /api/v1/incidents/{id}/all-clear                   — all-clear text + milestone
    POST /api/v1/incidents/{id}/resolve                     — close the incident
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request

from backend.app.api.schemas import FollowUpCreateRequest, FollowUpDraftRequest
from backend.app.api.v1.generate import (
    get_generation_config,
    get_model_client,
    read_json_object,
)
from backend.app.core.errors import RequestValidationError
from backend.app.generation.client import AnthropicClient
from backend.app.generation.models import Stage
from backend.app.generation.orchestrator import (
    GenerationConfig,
    generate,
    validate_request,
)
from backend.app.incidents import service

router = APIRouter(prefix="/api/v1/incidents", tags=["incidents"])


@router.post(
    "",
    status_code=201,
    summary="Generate an initial alert and start tracking it",
    description="Accepts the same body as /api/v1/generate; the stage is always 'initial'.",
)
async def create_incident(
    request: Request,
    config: GenerationConfig = Depends(get_generation_config),
    client: Optional[AnthropicClient] = Depends(get_model_client),
) -> Dict[str, Any]:
    body = await read_json_object(request)
    body["stage"] = Stage.INITIAL.value

    outcome = validate_request(body)
    if not outcome.valid:
        raise RequestValidationError(outcome.error, missing_fields=outcome.missing_fields)

    outputs = await generate(body, config, client=client)
    record = service.create_incident(outcome.context, outputs)
    return record.to_dict()


@router.get("", summary="List incidents")
async def list_incidents() -> Dict[str, Any]:
    records = service.list_incidents()
    return {"count": len(records), "incidents": [r.to_dict() for r in records]}


@router.get("/{incident_id}", summary="Get one incident")
async def get_incident(incident_id: str) -> Dict[str, Any]:
    return service.get_incident(incident_id).to_dict()


@router.post("/{incident_id}/follow-ups", status_code=201, summary="Attach a follow-up")
async def add_follow_up(incident_id: str, request: FollowUpCreateRequest) -> Dict[str, Any]:
    follow_up = service.add_follow_up(
        incident_id,
        sms=request.sms,
        email_subject=request.email.subject,
        email_body=request.email.body,
        status=request.status,
        sms_enabled=request.channels.sms,
        email_enabled=request.channels.email,
        tone=request.tone.value if request.tone else None,
        scheduled_at=request.scheduled_at,
    )
    return follow_up.to_dict()


@router.post(
    "/{incident_id}/follow-ups/draft",
    summary="Draft the next follow-up with the generation pipeline",
    description="Nothing is stored; save the result with POST .../follow-ups.",
)
async def draft_follow_up(
    incident_id: str,
    request: Optional[FollowUpDraftRequest] = None,
    config: GenerationConfig = Depends(get_generation_config),
    client: Optional[AnthropicClient] = Depends(get_model_client),
) -> Dict[str, Any]:
    record = service.get_active_incident(incident_id)
    tone = request.tone.value if request and request.tone else None
    body = service.build_follow_up_request(record, tone)
    response = await generate(body, config, client=client)
    return response.model_dump()


@router.post("/{incident_id}/follow-ups/{follow_up_id}/send", summary="Send a stored follow-up")
async def send_follow_up(incident_id: str, follow_up_id: str) -> Dict[str, Any]:
    return service.send_follow_up(incident_id, follow_up_id).to_dict()


@router.post("/{incident_id}/follow-up-sent", summary="Mark the follow-up milestone")
async def mark_follow_up_sent(incident_id: str) -> Dict[str, Any]:
    return service.mark_follow_up_sent(incident_id).to_dict()


@router.post("/{incident_id}/all-clear", summary="Generate the all-clear message")
async def generate_all_clear(incident_id: str) -> Dict[str, Any]:
    return service.generate_all_clear(incident_id).to_dict()


@router.post("/{incident_id}/resolve", summary="Resolve an incident")
async def resolve_incident(incident_id: str) -> Dict[str, Any]:
    return service.resolve_incident(incident_id).to_dict()
