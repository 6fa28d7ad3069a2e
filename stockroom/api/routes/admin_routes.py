"""
Admin API Routes.
User management within the administrator's tenant.
"""

from fastapi import APIRouter, HTTPException, status, Depends
from typing import Dict, Any
from stockroom.schemas.admin import CreateUserRequest, UpdateUserRequest, UpdateUserRoleRequest
from stockroom.core.admin_service import AdminService
from stockroom.core.responses import ResponseHandler
from stockroom.core.exceptions import AppException
from stockroom.api.dependencies import require_admin
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users", response_model=Dict[str, Any])
async def list_users(context: Dict[str, Any] = Depends(require_admin)):
    """
    All users of the tenant, newest first.
    """
    try:
        users = AdminService.get_users(context)
        return ResponseHandler.list_response(data=users)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in list_users: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.post("/users", response_model=Dict[str, Any], status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    context: Dict[str, Any] = Depends(require_admin)
):
    try:
        user = AdminService.create_user(context, request.email, request.name, request.role)
        return ResponseHandler.success(data=user, status_code=201)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in create_user: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.put("/users/{user_id}", response_model=Dict[str, Any])
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    context: Dict[str, Any] = Depends(require_admin)
):
    try:
        user = AdminService.update_user(context, user_id, request.name, request.role)
        return ResponseHandler.success(data=user)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_user: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.patch("/users/{user_id}/role", response_model=Dict[str, Any])
async def update_user_role(
    user_id: str,
    request: UpdateUserRoleRequest,
    context: Dict[str, Any] = Depends(require_admin)
):
    """
    Promote or demote a user.
    """
    try:
        user = AdminService.update_user_role(context, user_id, request.role)
        return ResponseHandler.success(data=user)

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in update_user_role: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/users/{user_id}", response_model=Dict[str, Any])
async def delete_user(
    user_id: str,
    context: Dict[str, Any] = Depends(require_admin)
):
    try:
        AdminService.delete_user(context, user_id)
        return ResponseHandler.success(data={"id": user_id, "deleted": True})

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in delete_user: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")
