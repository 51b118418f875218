from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends

from whmcs_assistant.api.deps import get_container, get_request_id, require_non_production
from whmcs_assistant.core.container import Container
from whmcs_assistant.models.function import FunctionContext

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/functions")
async def list_functions(container: Container = Depends(get_container)):
    registry = container.registry
    return {
        "available": registry.names(),
        "stats": registry.stats(),
        "definitions": registry.list_definitions(),
        "health_check": registry.health_check(),
    }


@router.post("/test-function/{name}", dependencies=[Depends(require_non_production)])
async def run_function(
    name: str,
    args: Optional[Dict[str, Any]] = Body(default=None),
    container: Container = Depends(get_container),
    request_id: str = Depends(get_request_id),
):
    logger.info("test_function_requested", function=name, request_id=request_id)
    context = FunctionContext(session_id=request_id, user_id="test-user", metadata={"source": "api-test"})
    result = await container.registry.execute(name, args or {}, context)
    return result.to_output()
