from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class FunctionContext(BaseModel):
    """Where a tool call came from; attached to logs and ticket footers."""
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FunctionResult(BaseModel):
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "FunctionResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: Optional[str] = None) -> "FunctionResult":
        return cls(success=False, message=message, error=error)

    def to_output(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
