"""
Authentication API Routes.
Session introspection and user provisioning for identities from the auth provider.
"""

from fastapi import APIRouter, HTTPException, Response, status, Depends
from typing import Dict, Any, Optional
from stockroom.schemas.auth import SyncUserRequest, CheckAdminResponse
from stockroom.core.auth_service import AuthService
from stockroom.core.responses import ResponseHandler
from stockroom.core.exceptions import AppException
from stockroom.api.dependencies import get_optional_user, get_user_context
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.get("/check-admin", response_model=CheckAdminResponse)
async def check_admin(identity: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    """
    Whether the caller is an admin. Never fails; anything unexpected answers false.
    """
    try:
        context = AuthService.resolve_user_context(identity)
        return {"isAdmin": AuthService.is_admin(context)}
    except Exception as e:
        logger.error(f"Error checking admin status: {str(e)}")
        return {"isAdmin": False}


@router.get("/me", response_model=Dict[str, Any])
async def get_me(context: Dict[str, Any] = Depends(get_user_context)):
    """
    Current caller with resolved role and tenant.
    """
    return ResponseHandler.success(data={
        "user_id": context["user_id"],
        "email": context.get("email"),
        "role": context["role"],
        "tenant_id": context["tenant_id"],
        "user_record_id": context.get("user_record_id"),
    })


@router.post("/sync-user", response_model=Dict[str, Any])
async def sync_user(
    request: SyncUserRequest,
    response: Response,
    identity: Optional[Dict[str, Any]] = Depends(get_optional_user)
):
    """
    Create the users row for a freshly signed-up identity.
    Returns 201 when a row was created, 200 when it already existed.
    """
    try:
        result = AuthService.sync_user_record(identity, email=request.email, name=request.name)

        status_code = status.HTTP_201_CREATED if result["created"] else status.HTTP_200_OK
        response.status_code = status_code
        return ResponseHandler.success(
            data={"message": result["message"], "user": result["user"]},
            status_code=status_code
        )

    except AppException as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Unexpected error in sync_user: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")
