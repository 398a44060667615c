import uuid
from typing import Any, Optional

from pydantic import BaseModel, Field


def _rid():
    """Generates a unique request ID for tracing."""
    return uuid.uuid4().hex


class SuccessResponse(BaseModel):
    """Envelope for every successful API call."""
    success: bool = True
    request_id: str = Field(default_factory=_rid)
    data: Optional[Any] = None


class ErrorDetail(BaseModel):
    code: str = Field(..., description="Stable machine-readable error code (e.g., insufficient_stock).")
    message: Any
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    """Envelope for failed calls, built by the exception handlers."""
    success: bool = False
    request_id: str = Field(default_factory=_rid)
    error: ErrorDetail
