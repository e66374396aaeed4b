from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class PasteCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, description="Paste content")
    max_views: Optional[int] = Field(
        default=None,
        ge=0,
        description="Maximum allowed views (>= 0); omit for unlimited",
    )
    ttl_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        allow_inf_nan=False,
        description="Lifetime in seconds (> 0); omit for no expiry",
    )

    @field_validator("max_views", "ttl_seconds", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        # HTML forms submit untouched inputs as empty strings.
        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, bool):
            raise ValueError("must be a number, not a boolean")
        return value


class PasteCreatedResponse(BaseModel):
    id: str
    url: str


class PasteViewResponse(BaseModel):
    content: str
    remaining_views: Optional[int]
    expires_at: Optional[str]


class HealthResponse(BaseModel):
    ok: bool = True
