"""
Event API Routes.
Event scheduling and the event detail view.
"""

from fastapi import APIRouter, HTTPException, status, Depends
from typing import Dict, Any
from stockroom.schemas.events import EventRequest, CreateEventRequest
from stockroom.core.event_service import EventService
from stockroom.core.responses import ResponseHandler
from stockroom.core.exceptions import AppException
from stockroom.api.dependencies import get_user_context, require_event_writer
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=Dict[str, Any])
async def list_events(context: Dict[str, Any] = Depends(get_user_context)):
    """
    Events, latest start date first.
    """
    try:
        events = EventService.get_events(context)
        return ResponseHandler.list_response(data=events)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in list_events: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def create_event(
    request: CreateEventRequest,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        event = EventService.create_event(
            context,
            name=request.name,
            start_date=request.start_date,
            end_date=request.end_date,
            description=request.description,
            location=request.location,
            quote_id=request.quote_id,
            status=request.status
        )
        return ResponseHandler.success(data=event, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in create_event: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/from-quote/{quote_id}", response_model=Dict[str, Any])
async def create_event_from_quote(
    quote_id: str,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    """
    Event for an accepted quote (returns the existing one if already created).
    """
    try:
        event = EventService.create_event_for_accepted_quote(context, quote_id)
        return ResponseHandler.success(data=event)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in create_event_from_quote: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{event_id}", response_model=Dict[str, Any])
async def get_event(
    event_id: str,
    context: Dict[str, Any] = Depends(get_user_context)
):
    """
    Event with inventory, crew and tasks.
    """
    try:
        details = EventService.get_event_with_details(context, event_id)
        return ResponseHandler.success(data=details)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in get_event: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/{event_id}", response_model=Dict[str, Any])
async def update_event(
    event_id: str,
    request: EventRequest,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        event = EventService.update_event(
            context,
            event_id,
            name=request.name,
            start_date=request.start_date,
            end_date=request.end_date,
            description=request.description,
            location=request.location,
            status=request.status
        )
        return ResponseHandler.success(data=event)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_event: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/{event_id}", response_model=Dict[str, Any])
async def delete_event(
    event_id: str,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        EventService.delete_event(context, event_id)
        return ResponseHandler.success(data={"id": event_id, "deleted": True})

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in delete_event: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{event_id}/inventory/from-quote/{quote_id}", response_model=Dict[str, Any])
async def copy_quote_items_to_event(
    event_id: str,
    quote_id: str,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    """
    Copy a quote's lines into the event inventory. No-op if the event already has inventory.
    """
    copied = EventService.copy_quote_items_to_event(context, event_id, quote_id)
    return ResponseHandler.success(data={"event_id": event_id, "quote_id": quote_id, "copied": copied})
