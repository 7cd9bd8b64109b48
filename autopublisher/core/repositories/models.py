"""
Pydantic models for stored YouTube credentials.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from autopublisher.core.utils import normalize_email


class ConnectedUser(BaseModel):
    """One connected YouTube account and its OAuth tokens."""

    email: str = Field(..., min_length=3, max_length=320)
    tokens: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v = normalize_email(v)
        if "@" not in v:
            raise ValueError(f"Invalid email: {v}")
        return v

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectedUser":
        """Create from Firestore document dictionary."""
        return cls.model_validate(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to Firestore-compatible dictionary."""
        return self.model_dump(exclude_none=True)
