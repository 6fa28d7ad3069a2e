"""
API Dependencies.
Handles authentication and authorization for protected endpoints.
"""

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Callable, Dict, Any, Optional
from stockroom.config import settings
from stockroom.core.auth_service import AuthService
from stockroom.core.exceptions import AuthenticationException
from stockroom.core.security import verify_access_token
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.AUTH_COOKIE_NAME)


async def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[Dict[str, Any]]:
    """
    Identity of the caller, or None when there is no valid session.
    """
    token = _extract_token(request, credentials)
    if not token:
        return None
    try:
        return await verify_access_token(token)
    except AuthenticationException as e:
        logger.debug(f"Ignoring invalid session: {e.message}")
        return None
    except Exception as e:
        logger.error(f"Session verification failed: {str(e)}")
        return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict[str, Any]:
    """
    Dependency to get the authenticated identity from the provider's token.

    Raises:
        HTTPException: 401 if no valid token is present
    """
    token = _extract_token(request, credentials)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Please log in",
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        return await verify_access_token(token)
    except AuthenticationException as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"}
        )
    except Exception as e:
        logger.error(f"Authentication error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"}
        )


async def get_user_context(
    identity: Dict[str, Any] = Depends(get_current_user)
) -> Dict[str, Any]:
    """
    Dependency resolving role and tenant for the authenticated caller.

    Returns:
        Dictionary with user_id, email, role, tenant_id and token claims
    """
    return AuthService.resolve_user_context(identity)


async def require_admin(
    context: Dict[str, Any] = Depends(get_user_context)
) -> Dict[str, Any]:
    """
    Dependency that only lets admins through.

    Raises:
        HTTPException: 403 if the caller is not an admin
    """
    if not AuthService.is_admin(context):
        logger.warning(
            "Admin access denied",
            extra={"user_id": context.get("user_id"), "email": context.get("email")}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: Admin access required"
        )
    return context


def _writer_dependency(can_write: Callable[[Optional[Dict[str, Any]]], bool], area: str):
    """Build a dependency that lets through callers allowed to write an area."""

    async def require_writer(
        context: Dict[str, Any] = Depends(get_user_context)
    ) -> Dict[str, Any]:
        if not can_write(context):
            logger.warning(
                f"Write access to {area} denied",
                extra={"user_id": context.get("user_id"), "email": context.get("email")}
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unauthorized: Admin access required"
            )
        return context

    return require_writer


require_inventory_writer = _writer_dependency(AuthService.can_write_inventory, "inventory")
require_crew_writer = _writer_dependency(AuthService.can_write_crew, "crew")
require_event_writer = _writer_dependency(AuthService.can_write_events, "events")
