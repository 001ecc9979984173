"""Trigger API routes — inbound events that start workflow runs."""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status as http_status
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.dependencies import get_gateway
from triggers.base import TriggerEvent
from triggers.gateway import TriggerGateway
from triggers.webhook import SIGNATURE_HEADER, verify_signature

router = APIRouter()


@router.post("/events", summary="Start a workflow run from an event")
async def receive_event(
    request: Request,
    gateway: TriggerGateway = Depends(get_gateway),
):
    """Accept any JSON event and hand it to the Trigger Gateway.

    Returns ``{statusCode, body: {message, runId}}`` with the same HTTP
    status: 200 when the run started, 500 when it could not be scheduled.
    """
    body = await request.body()
    settings = get_settings()
    if not verify_signature(settings.WEBHOOK_SECRET, body, request.headers.get(SIGNATURE_HEADER)):
        raise HTTPException(status_code=http_status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        raw = json.loads(body) if body else {}
    except json.JSONDecodeError:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail="Body must be JSON")

    event = TriggerEvent.from_dict(
        raw,
        source="webhook",
        correlation_id=getattr(request.state, "request_id", None),
    )
    response = await gateway.on_event(event)
    return JSONResponse(status_code=response.status_code, content=response.to_dict())
