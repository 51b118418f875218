from fastapi import HTTPException, Request

from whmcs_assistant.core.container import Container


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "req_unknown")


def require_non_production(request: Request) -> None:
    if get_container(request).settings.is_production:
        raise HTTPException(status_code=404, detail="Not available in production")
