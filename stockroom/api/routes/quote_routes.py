"""
Quote API Routes.
Quotes, quote lines, availability planning and export.
"""

from datetime import date
from fastapi import APIRouter, HTTPException, Query, status, Depends
from fastapi.responses import StreamingResponse
from typing import Dict, Any, Optional
from stockroom.schemas.quotes import (
    QuoteRequest,
    QuoteStatusRequest,
    AddQuoteItemRequest,
    UpdateQuoteItemRequest,
)
from stockroom.core.quote_service import QuoteService
from stockroom.core.responses import ResponseHandler
from stockroom.core.exceptions import AppException
from stockroom.api.dependencies import get_user_context, require_event_writer
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["Quotes"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _quote_context(
    quote_id: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date]
) -> Optional[Dict[str, Any]]:
    """Date-aware availability needs all three values; otherwise plain availability applies."""
    if quote_id and start_date and end_date:
        return {"quote_id": quote_id, "start_date": start_date, "end_date": end_date}
    return None


@router.get("", response_model=Dict[str, Any])
async def list_quotes(context: Dict[str, Any] = Depends(get_user_context)):
    try:
        quotes = QuoteService.get_quotes(context)
        return ResponseHandler.list_response(data=quotes)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in list_quotes: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def create_quote(
    request: QuoteRequest,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        quote = QuoteService.create_quote(context, request.name, request.start_date, request.end_date)
        return ResponseHandler.success(data=quote, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in create_quote: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/search-items", response_model=Dict[str, Any])
async def search_quote_items(
    q: Optional[str] = Query(default=None, description="Item name fragment"),
    quote_id: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    context: Dict[str, Any] = Depends(get_user_context)
):
    """
    Items to add to a quote. Pass quote_id, start_date and end_date for
    availability that accounts for overlapping quotes.
    """
    results = QuoteService.search_inventory_items(context, q, _quote_context(quote_id, start_date, end_date))
    return ResponseHandler.list_response(data=results)


@router.get("/availability/{item_id}", response_model=Dict[str, Any])
async def get_item_availability(
    item_id: str,
    quote_id: Optional[str] = Query(default=None),
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    context: Dict[str, Any] = Depends(get_user_context)
):
    """
    Availability breakdown (available, reserved, in transit, out of service, total).
    """
    breakdown = QuoteService.get_item_availability_breakdown(
        context,
        item_id,
        _quote_context(quote_id, start_date, end_date)
    )
    return ResponseHandler.success(data=breakdown)


@router.put("/items/{quote_item_id}", response_model=Dict[str, Any])
async def update_quote_item(
    quote_item_id: str,
    request: UpdateQuoteItemRequest,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        result = QuoteService.update_quote_item(context, quote_item_id, request.quantity)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_quote_item: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/items/{quote_item_id}", response_model=Dict[str, Any])
async def delete_quote_item(
    quote_item_id: str,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        QuoteService.delete_quote_item(context, quote_item_id)
        return ResponseHandler.success(data={"id": quote_item_id, "deleted": True})

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in delete_quote_item: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{quote_id}", response_model=Dict[str, Any])
async def get_quote(
    quote_id: str,
    context: Dict[str, Any] = Depends(get_user_context)
):
    try:
        quote = QuoteService.get_quote_with_items(context, quote_id)
        return ResponseHandler.success(data=quote)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in get_quote: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/{quote_id}", response_model=Dict[str, Any])
async def update_quote(
    quote_id: str,
    request: QuoteRequest,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        quote = QuoteService.update_quote(context, quote_id, request.name, request.start_date, request.end_date)
        return ResponseHandler.success(data=quote)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_quote: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.patch("/{quote_id}/status", response_model=Dict[str, Any])
async def update_quote_status(
    quote_id: str,
    request: QuoteStatusRequest,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    """
    Change the quote status. Accepting a quote creates its event.
    """
    try:
        result = QuoteService.update_quote_status(context, quote_id, request.status)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_quote_status: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/{quote_id}", response_model=Dict[str, Any])
async def delete_quote(
    quote_id: str,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        QuoteService.delete_quote(context, quote_id)
        return ResponseHandler.success(data={"id": quote_id, "deleted": True})

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in delete_quote: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/{quote_id}/items", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def add_quote_item(
    quote_id: str,
    request: AddQuoteItemRequest,
    context: Dict[str, Any] = Depends(require_event_writer)
):
    try:
        quote_item = QuoteService.add_quote_item(context, quote_id, request.item_id, request.quantity)
        return ResponseHandler.success(data=quote_item, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in add_quote_item: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{quote_id}/risk", response_model=Dict[str, Any])
async def get_quote_risk(
    quote_id: str,
    context: Dict[str, Any] = Depends(get_user_context)
):
    """
    Green / yellow / red risk for the quote with per-line availability.
    """
    try:
        result = QuoteService.get_quote_risk(context, quote_id)
        return ResponseHandler.success(data=result)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in get_quote_risk: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/{quote_id}/export")
async def export_quote(
    quote_id: str,
    context: Dict[str, Any] = Depends(get_user_context)
):
    """
    Download the quote as an Excel workbook.
    """
    try:
        filename, output = QuoteService.export_quote(context, quote_id)

        headers = {
            "Content-Disposition": f"attachment; filename={filename}"
        }
        return StreamingResponse(output, media_type=XLSX_MEDIA_TYPE, headers=headers)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in export_quote: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")
