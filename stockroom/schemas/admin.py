"""
Pydantic schemas for admin user management.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class CreateUserRequest(BaseModel):
    email: str = Field(..., description="User email")
    name: str = Field(..., description="Display name")
    role: str = Field(default="user", description="'admin' or 'user'")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "new.hire@example.com",
                "name": "New Hire",
                "role": "user"
            }
        }
    )


class UpdateUserRequest(BaseModel):
    name: str = Field(..., description="Display name")
    role: str = Field(..., description="'admin' or 'user'")


class UpdateUserRoleRequest(BaseModel):
    role: Optional[str] = Field(default=None, description="'admin' or 'user'")
