from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from whmcs_assistant.api.deps import get_container, get_request_id, require_non_production
from whmcs_assistant.core.container import Container

router = APIRouter(prefix="/test", dependencies=[Depends(require_non_production)])
logger = structlog.get_logger(__name__)


class OpenAITestRequest(BaseModel):
    message: str = Field(min_length=1)
    userId: Optional[str] = None


class WhmcsTestRequest(BaseModel):
    action: Literal["find_client", "get_invoices"] = "find_client"
    client_identifier: str = Field(min_length=1)


@router.post("/openai")
async def test_openai(
    request: OpenAITestRequest,
    container: Container = Depends(get_container),
    request_id: str = Depends(get_request_id),
):
    logger.info("test_openai_requested", request_id=request_id, message_length=len(request.message))
    result = await container.assistant_service.process_message(
        request.message,
        request.userId or f"test_{request_id}",
        {"session_id": request_id, "source": "test_endpoint"},
    )
    return {
        "success": result.success,
        "response": result.response,
        "error": result.error,
        "requestId": request_id,
    }


@router.post("/whmcs")
async def test_whmcs(
    request: WhmcsTestRequest,
    container: Container = Depends(get_container),
    request_id: str = Depends(get_request_id),
):
    logger.info("test_whmcs_requested", request_id=request_id, action=request.action)
    whmcs = container.whmcs_service
    client = await whmcs.find_client(request.client_identifier)

    if request.action == "find_client":
        result = client.model_dump() if client else None
    elif client is None:
        result = {"error": "Client not found"}
    else:
        invoices = await whmcs.get_invoices(client.id)
        result = [invoice.model_dump() for invoice in invoices]

    return {"action": request.action, "result": result, "requestId": request_id}


@router.delete("/threads/{user_id}")
async def clear_thread(user_id: str, container: Container = Depends(get_container)):
    cleared = await container.assistant_service.clear_user_thread(user_id)
    return {"user_id": user_id, "cleared": cleared}
