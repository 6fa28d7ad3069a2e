"""
Pydantic schemas for crew endpoints.
"""

from datetime import date
from pydantic import BaseModel, Field
from typing import Optional


class CrewMemberRequest(BaseModel):
    name: str = Field(..., description="Full name")
    role: str = Field(..., description="'Own Crew' or 'Freelancer'")
    email: Optional[str] = Field(default=None, description="Optional, unique per tenant")
    contact: Optional[str] = Field(default=None, description="Phone or other contact")


class CrewLeaveRequest(BaseModel):
    on_leave: bool = Field(..., description="Whether the member is on leave")
    leave_start_date: Optional[date] = None
    leave_end_date: Optional[date] = None
    leave_reason: Optional[str] = None
