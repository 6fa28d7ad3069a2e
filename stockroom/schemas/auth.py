"""
Pydantic schemas for authentication endpoints.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class SyncUserRequest(BaseModel):
    """Request schema for provisioning the caller's user row after signup."""

    email: Optional[str] = Field(default=None, description="Must match the signed-in email when given")
    name: Optional[str] = Field(default=None, max_length=255, description="Display name")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "jane@example.com",
                "name": "Jane Doe"
            }
        }
    )


class CheckAdminResponse(BaseModel):
    """Response schema for the admin check."""

    isAdmin: bool
