"""
Pydantic schemas for inventory, stock and catalog endpoints.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Dict


class UpdateStockRequest(BaseModel):
    """Request schema for setting a non-serialized item's stock levels."""

    total_quantity: int = Field(..., description="Total units owned")
    out_of_service_quantity: int = Field(default=0, description="Units that cannot be rented")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total_quantity": 40,
                "out_of_service_quantity": 2
            }
        }
    )


class UpdateUnitStatusRequest(BaseModel):
    status: str = Field(..., description="available, out or maintenance")


class MaintenanceLogRequest(BaseModel):
    note: str = Field(..., description="Maintenance note")


class CreateItemRequest(BaseModel):
    name: str = Field(..., description="Item name, unique within the tenant")
    group_id: str = Field(..., description="Group the item belongs to")
    is_serialized: bool = Field(default=False, description="Track individual units")


class UpdateItemRequest(BaseModel):
    name: str = Field(..., description="Item name")
    price: float = Field(..., description="Rental price per day")


class ReorderItemsRequest(BaseModel):
    group_id: str = Field(..., description="Group being reordered")
    item_orders: Dict[str, int] = Field(..., description="Item id to display order")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "group_id": "6a1f0c52-33e4-4b71-9a0e-2b8d7c6e5f41",
                "item_orders": {
                    "0b6f4c8e-1d2a-4e3b-9c5d-7f8e9a0b1c2d": 1,
                    "5e4d3c2b-1a09-48f7-b6e5-d4c3b2a10f9e": 2
                }
            }
        }
    )


class CreateGroupRequest(BaseModel):
    name: str = Field(..., description="Group name")


class ReorderGroupsRequest(BaseModel):
    group_orders: Dict[str, int] = Field(..., description="Group id to display order")

