"""
Pydantic schemas for event endpoints.
"""

from datetime import date
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class EventRequest(BaseModel):
    """Request schema for creating or editing an event."""

    name: str = Field(..., description="Event name")
    start_date: date = Field(..., description="Event start (YYYY-MM-DD)")
    end_date: date = Field(..., description="Event end (YYYY-MM-DD)")
    description: Optional[str] = Field(default=None, description="Free text")
    location: Optional[str] = Field(default=None, description="Venue")
    status: Optional[str] = Field(
        default=None,
        description="draft, confirmed, in_progress, completed or cancelled"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Summer Festival",
                "start_date": "2026-07-10",
                "end_date": "2026-07-13",
                "location": "Riverside Park",
                "status": "confirmed"
            }
        }
    )


class CreateEventRequest(EventRequest):
    quote_id: Optional[str] = Field(default=None, description="Quote whose lines become the event inventory")
