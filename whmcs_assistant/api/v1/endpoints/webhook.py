import json
import time
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from whmcs_assistant.api.deps import get_container, get_request_id, require_non_production
from whmcs_assistant.core.container import Container
from whmcs_assistant.services import webhook_normalizer

router = APIRouter()
logger = structlog.get_logger(__name__)


def sample_payload() -> dict:
    return {
        "event": "message",
        "ticket": {
            "id": 123,
            "contact": {"number": "5511999999999", "name": "Teste Usuario"},
            "whatsapp": {"id": 1, "name": "WhatsApp Instance"},
        },
        "message": {
            "id": f"test_msg_{int(time.time() * 1000)}",
            "body": "Olá, esta é uma mensagem de teste para o assistente WHMCS!",
            "fromMe": False,
            "timestamp": time.time(),
        },
    }


async def read_body(request: Request, limit: int) -> Optional[bytes]:
    """Raw request body, or None once it grows past ``limit`` bytes."""
    declared = request.headers.get("content-length", "")
    if declared.isdigit() and int(declared) > limit:
        return None
    chunks = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def payload_too_large(request_id: str, limit: int) -> JSONResponse:
    logger.warning("webhook_payload_too_large", request_id=request_id, limit=limit)
    return JSONResponse(status_code=413, content={"error": "Payload too large", "maxBytes": limit})


async def accept_webhook(
    body: Any,
    request_id: str,
    background_tasks: BackgroundTasks,
    container: Container,
):
    """Validate, filter and dedupe a decoded webhook body, then queue it."""
    payload = webhook_normalizer.parse_webhook_payload(body)
    message = webhook_normalizer.normalize(payload)
    if message is None:
        logger.warning("webhook_invalid_payload", request_id=request_id, payload_type=type(body).__name__)
        return JSONResponse(status_code=400, content=webhook_normalizer.invalid_payload_body(body))

    if not webhook_normalizer.is_relevant(message):
        reason = webhook_normalizer.ignore_reason(message)
        logger.info("webhook_ignored", request_id=request_id, reason=reason, event=message.event)
        return {"status": "ignored", "reason": reason}

    message_id = message.message_id or request_id
    if await container.webhook_service.is_duplicate(message_id):
        logger.info("webhook_duplicate", request_id=request_id, message_id=message_id)
        return {"status": "duplicate", "messageId": message_id}

    background_tasks.add_task(container.webhook_service.process_message, message, request_id, message_id)
    logger.info("webhook_accepted", request_id=request_id, message_id=message_id, variant=message.variant)
    return {
        "status": "accepted",
        "requestId": request_id,
        "messageId": message_id,
        "processingAsync": True,
    }


@router.post("/webhook")
@router.post("/webhook/whaticket")
@router.post("/api/v1/webhook")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    container: Container = Depends(get_container),
    request_id: str = Depends(get_request_id),
):
    limit = container.settings.MAX_REQUEST_SIZE
    raw_body = await read_body(request, limit)
    if raw_body is None:
        return payload_too_large(request_id, limit)
    logger.info("webhook_received", request_id=request_id, size=len(raw_body))

    if not container.webhook_service.authenticate(raw_body, request.headers):
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    try:
        body = json.loads(raw_body) if raw_body else {}
    except ValueError:
        body = None
    return await accept_webhook(body, request_id, background_tasks, container)


@router.get("/webhook")
async def webhook_probe():
    return {
        "status": "ok",
        "message": "Webhook ativo e funcionando",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/webhook/status")
async def webhook_status(container: Container = Depends(get_container)):
    settings = container.settings
    return {
        "webhook": {
            "status": "active",
            "endpoint": "/webhook",
            "aliases": ["/webhook/whaticket", "/api/v1/webhook"],
            "testEndpoint": "/webhook/test",
        },
        "config": {
            **container.webhook_service.status(),
            "whaticket_url": settings.WHATICKET_URL,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/webhook/test", dependencies=[Depends(require_non_production)])
async def webhook_test(
    request: Request,
    background_tasks: BackgroundTasks,
    container: Container = Depends(get_container),
    request_id: str = Depends(get_request_id),
):
    limit = container.settings.MAX_REQUEST_SIZE
    raw_body = await read_body(request, limit)
    if raw_body is None:
        return payload_too_large(request_id, limit)
    try:
        body = json.loads(raw_body) if raw_body else None
    except ValueError:
        body = None
    if not body:
        body = sample_payload()
    logger.info("webhook_test_started", request_id=request_id)
    return await accept_webhook(body, request_id, background_tasks, container)
