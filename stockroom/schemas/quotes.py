"""
Pydantic schemas for quote endpoints.
"""

from datetime import date
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class QuoteRequest(BaseModel):
    """Request schema for creating or editing a quote."""

    name: str = Field(..., description="Quote name")
    start_date: date = Field(..., description="First rental day (YYYY-MM-DD)")
    end_date: date = Field(..., description="Last rental day (YYYY-MM-DD)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Summer Festival Stage",
                "start_date": "2026-07-10",
                "end_date": "2026-07-13"
            }
        }
    )


class QuoteStatusRequest(BaseModel):
    status: Optional[str] = Field(default=None, description="draft, sent, accepted or rejected")


class AddQuoteItemRequest(BaseModel):
    item_id: str = Field(..., description="Inventory item to add")
    quantity: int = Field(..., description="Requested quantity")


class UpdateQuoteItemRequest(BaseModel):
    quantity: int = Field(..., description="Requested quantity")
