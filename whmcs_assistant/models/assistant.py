from pydantic import BaseModel
from typing import Optional


class ProcessResult(BaseModel):
    success: bool
    response: Optional[str] = None
    error: Optional[str] = None
    thread_id: Optional[str] = None
    run_id: Optional[str] = None
