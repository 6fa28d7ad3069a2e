"""
Crew API Routes.
Crew roster and leave status.
"""

from fastapi import APIRouter, HTTPException, status, Depends
from typing import Dict, Any
from stockroom.schemas.crew import CrewMemberRequest, CrewLeaveRequest
from stockroom.core.crew_service import CrewService
from stockroom.core.responses import ResponseHandler
from stockroom.core.exceptions import AppException
from stockroom.api.dependencies import get_user_context, require_crew_writer
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/crew", tags=["Crew"])


@router.get("", response_model=Dict[str, Any])
async def list_crew(context: Dict[str, Any] = Depends(get_user_context)):
    crew = CrewService.get_crew_members(context)
    return ResponseHandler.list_response(data=crew)


@router.post("", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def create_crew_member(
    request: CrewMemberRequest,
    context: Dict[str, Any] = Depends(require_crew_writer)
):
    try:
        member = CrewService.create_crew_member(
            context,
            name=request.name,
            role=request.role,
            email=request.email,
            contact=request.contact
        )
        return ResponseHandler.success(data=member, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in create_crew_member: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/{member_id}", response_model=Dict[str, Any])
async def update_crew_member(
    member_id: str,
    request: CrewMemberRequest,
    context: Dict[str, Any] = Depends(require_crew_writer)
):
    try:
        member = CrewService.update_crew_member(
            context,
            member_id,
            name=request.name,
            role=request.role,
            email=request.email,
            contact=request.contact
        )
        return ResponseHandler.success(data=member)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_crew_member: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/{member_id}/leave", response_model=Dict[str, Any])
async def update_crew_leave_status(
    member_id: str,
    request: CrewLeaveRequest,
    context: Dict[str, Any] = Depends(require_crew_writer)
):
    """
    Mark a crew member on or off leave.
    """
    try:
        member = CrewService.update_crew_leave_status(
            context,
            member_id,
            on_leave=request.on_leave,
            leave_start_date=request.leave_start_date,
            leave_end_date=request.leave_end_date,
            leave_reason=request.leave_reason
        )
        return ResponseHandler.success(data=member)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_crew_leave_status: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/{member_id}", response_model=Dict[str, Any])
async def delete_crew_member(
    member_id: str,
    context: Dict[str, Any] = Depends(require_crew_writer)
):
    try:
        CrewService.delete_crew_member(context, member_id)
        return ResponseHandler.success(data={"id": member_id, "deleted": True})

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in delete_crew_member: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")
