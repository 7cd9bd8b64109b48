"""
Pydantic models for API responses.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema with common configuration."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class HealthResponse(BaseSchema):
    """Health check response."""
    status: str
    version: str
    timestamp: datetime


class ConnectionStatusResponse(BaseSchema):
    """Whether a YouTube account is connected, and which one publishes."""
    connected: bool
    email: Optional[str] = None


class UploadAcceptedResponse(BaseSchema):
    trace_id: str = Field(..., description="Trace ID of the pipeline run")


class TraceStateResponse(BaseSchema):
    trace_id: str
    state: Dict[str, Any] = Field(default_factory=dict, description="Every recorded trace field")
