from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SetupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: Optional[str] = None
    org_id: Optional[str] = Field(default=None, alias="orgId")

    @field_validator("token", "org_id")
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None


class SetupResponse(BaseModel):
    ok: bool
    session_count: Optional[int] = Field(default=None, serialization_alias="sessionCount")
    error: Optional[str] = None
