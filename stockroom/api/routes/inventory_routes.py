"""
Inventory API Routes.
Inventory overview, search, stock adjustments and catalog maintenance.
"""

from fastapi import APIRouter, HTTPException, Query, status, Depends
from typing import Dict, Any, Optional
from stockroom.schemas.inventory import (
    UpdateStockRequest,
    UpdateUnitStatusRequest,
    MaintenanceLogRequest,
    CreateItemRequest,
    UpdateItemRequest,
    ReorderItemsRequest,
    CreateGroupRequest,
    ReorderGroupsRequest,
)
from stockroom.core.inventory_service import InventoryService
from stockroom.core.stock_service import StockService
from stockroom.core.catalog_service import CatalogService
from stockroom.core.responses import ResponseHandler
from stockroom.core.exceptions import AppException
from stockroom.api.dependencies import get_user_context, require_inventory_writer
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.get("", response_model=Dict[str, Any])
async def get_inventory(context: Dict[str, Any] = Depends(get_user_context)):
    """
    Groups in display order with their active items and availability.
    """
    try:
        groups = InventoryService.get_inventory_overview(context)
        return ResponseHandler.list_response(data=groups)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in get_inventory: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/search", response_model=Dict[str, Any])
async def search_inventory(
    q: Optional[str] = Query(default=None, description="Case-insensitive item name fragment"),
    context: Dict[str, Any] = Depends(get_user_context)
):
    results = InventoryService.search_inventory(context, q)
    return ResponseHandler.list_response(data=results)


@router.get("/items/{item_id}", response_model=Dict[str, Any])
async def get_item_details(
    item_id: str,
    context: Dict[str, Any] = Depends(get_user_context)
):
    """
    Item with stock, units and maintenance history.
    """
    try:
        details = InventoryService.get_item_details(context, item_id)
        return ResponseHandler.success(data=details)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in get_item_details: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


# ---------------------------------------------------------------- stock

@router.put("/items/{item_id}/stock", response_model=Dict[str, Any])
async def update_stock(
    item_id: str,
    request: UpdateStockRequest,
    context: Dict[str, Any] = Depends(get_user_context)
):
    try:
        result = StockService.update_stock(
            context,
            item_id,
            request.total_quantity,
            request.out_of_service_quantity
        )
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_stock: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/units/{unit_id}/status", response_model=Dict[str, Any])
async def update_unit_status(
    unit_id: str,
    request: UpdateUnitStatusRequest,
    context: Dict[str, Any] = Depends(get_user_context)
):
    try:
        result = StockService.update_unit_status(context, unit_id, request.status)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_unit_status: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/units/{unit_id}/toggle", response_model=Dict[str, Any])
async def toggle_unit_status(
    unit_id: str,
    context: Dict[str, Any] = Depends(get_user_context)
):
    """
    Check a unit out, or back in.
    """
    try:
        result = StockService.toggle_unit_status(context, unit_id)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in toggle_unit_status: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/items/{item_id}/maintenance-logs", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def add_maintenance_log(
    item_id: str,
    request: MaintenanceLogRequest,
    context: Dict[str, Any] = Depends(get_user_context)
):
    try:
        log = StockService.add_maintenance_log(context, item_id, request.note)
        return ResponseHandler.success(data=log, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in add_maintenance_log: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


# -------------------------------------------------------------- catalog

@router.post("/items", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def create_item(
    request: CreateItemRequest,
    context: Dict[str, Any] = Depends(require_inventory_writer)
):
    try:
        item = CatalogService.create_item(context, request.name, request.group_id, request.is_serialized)
        return ResponseHandler.success(data=item, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in create_item: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/items/reorder", response_model=Dict[str, Any])
async def reorder_items(
    request: ReorderItemsRequest,
    context: Dict[str, Any] = Depends(require_inventory_writer)
):
    try:
        result = CatalogService.reorder_items(context, request.group_id, request.item_orders)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in reorder_items: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/items/{item_id}", response_model=Dict[str, Any])
async def update_item(
    item_id: str,
    request: UpdateItemRequest,
    context: Dict[str, Any] = Depends(require_inventory_writer)
):
    """
    Rename or re-price an item. Draft quotes pick up the new price.
    """
    try:
        item = CatalogService.update_item(context, item_id, request.name, request.price)
        return ResponseHandler.success(data=item)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_item: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/items/{item_id}", response_model=Dict[str, Any])
async def delete_item(
    item_id: str,
    context: Dict[str, Any] = Depends(require_inventory_writer)
):
    """
    Archive an item. Its history stays, the name becomes free again.
    """
    try:
        result = CatalogService.delete_item(context, item_id)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in delete_item: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/groups", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def create_group(
    request: CreateGroupRequest,
    context: Dict[str, Any] = Depends(require_inventory_writer)
):
    try:
        group = CatalogService.create_group(context, request.name)
        return ResponseHandler.success(data=group, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in create_group: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/groups/reorder", response_model=Dict[str, Any])
async def reorder_groups(
    request: ReorderGroupsRequest,
    context: Dict[str, Any] = Depends(require_inventory_writer)
):
    try:
        result = CatalogService.reorder_groups(context, request.group_orders)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in reorder_groups: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/groups/{group_id}", response_model=Dict[str, Any])
async def delete_group(
    group_id: str,
    context: Dict[str, Any] = Depends(require_inventory_writer)
):
    """
    Delete a group after moving its items to Uncategorized.
    """
    try:
        result = CatalogService.delete_group(context, group_id)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in delete_group: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")
