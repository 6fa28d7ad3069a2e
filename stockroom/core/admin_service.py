"""
Admin Service.
User management for tenant administrators.
"""

import logging
from typing import Dict, Any, List, Optional
from psycopg2.extras import RealDictCursor

from stockroom.core.auth_service import AuthService, ADMIN_ROLE, USER_ROLE, is_valid_email, normalize_email
from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import (
    ConflictException,
    DatabaseException,
    NotFoundException,
    ValidationException,
    UNIQUE_VIOLATION,
)
from stockroom.core.page_cache import revalidate_path

logger = logging.getLogger(__name__)

ADMIN_USERS_PAGE = "/admin/users"
USER_COLUMNS = "id::text AS id, email, name, role, tenant_id::text AS tenant_id, created_at, updated_at"


def validate_role(role: Optional[str]) -> str:
    if role not in (ADMIN_ROLE, USER_ROLE):
        raise ValidationException("Role must be 'admin' or 'user'", details={"role": role})
    return role


class AdminService:
    """Every method expects an admin context."""

    @staticmethod
    def get_users(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        AuthService.require_admin(context)

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(f"""
                        SELECT {USER_COLUMNS}
                        FROM users
                        WHERE tenant_id = %s
                        ORDER BY created_at DESC
                    """, (context["tenant_id"],))
                    return [dict(row) for row in cursor.fetchall()]
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error fetching users: {e.message}", extra={"action": "getUsers"})
            return []

    @staticmethod
    def _update(context: Dict[str, Any], user_id: str, assignments: str, params: tuple, action: str) -> Dict[str, Any]:
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(f"""
                        UPDATE users SET {assignments}
                        WHERE id = %s AND tenant_id = %s
                        RETURNING {USER_COLUMNS}
                    """, (*params, user_id, context["tenant_id"]))
                    user = cursor.fetchone()
                    if not user:
                        raise NotFoundException("User", user_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error updating user: {e.message}", extra={"action": action, "user_id": user_id})
            raise

        revalidate_path(ADMIN_USERS_PAGE)
        return dict(user)

    @staticmethod
    def update_user_role(context: Dict[str, Any], user_id: str, role: Optional[str]) -> Dict[str, Any]:
        AuthService.require_admin(context)
        if not user_id or not role:
            raise ValidationException("User ID and role are required")
        validate_role(role)

        user = AdminService._update(context, user_id, "role = %s", (role,), "updateUserRole")
        logger.info(
            f"User role changed to {role}",
            extra={"action": "updateUserRole", "user_id": user_id, "changed_by": context.get("email")}
        )
        return user

    @staticmethod
    def update_user(context: Dict[str, Any], user_id: str, name: Optional[str], role: Optional[str]) -> Dict[str, Any]:
        AuthService.require_admin(context)
        name = (name or "").strip()
        if not user_id or not name:
            raise ValidationException("User ID and name are required")
        validate_role(role)

        return AdminService._update(context, user_id, "name = %s, role = %s", (name, role), "updateUser")

    @staticmethod
    def create_user(context: Dict[str, Any], email: Optional[str], name: Optional[str], role: Optional[str]) -> Dict[str, Any]:
        """
        Add a user to the caller's tenant.

        Raises:
            ValidationException: Missing fields, bad role or email format
            ConflictException: Email already registered in the tenant
        """
        AuthService.require_admin(context)
        name = (name or "").strip()
        if not email or not name:
            raise ValidationException("Email and name are required")
        validate_role(role)
        if not is_valid_email(email):
            raise ValidationException("Invalid email format")

        email = normalize_email(email)
        tenant_id = context["tenant_id"]
        db_manager = get_db_manager()

        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(
                        "SELECT id FROM users WHERE email = %s AND tenant_id = %s LIMIT 1",
                        (email, tenant_id)
                    )
                    if cursor.fetchone():
                        raise ConflictException("User with this email already exists")

                    cursor.execute(f"""
                        INSERT INTO users (tenant_id, email, name, role)
                        VALUES (%s, %s, %s, %s)
                        RETURNING {USER_COLUMNS}
                    """, (tenant_id, email, name, role))
                    user = dict(cursor.fetchone())
                finally:
                    cursor.close()
        except DatabaseException as e:
            if e.pgcode == UNIQUE_VIOLATION:
                raise ConflictException("User with this email already exists")
            logger.error(f"Error creating user: {e.message}", extra={"action": "createUser", "email": email})
            raise DatabaseException(f"Failed to create user: {e.message}", pgcode=e.pgcode)

        logger.info("User created", extra={"action": "createUser", "email": email, "role": role})
        revalidate_path(ADMIN_USERS_PAGE)
        return user

    @staticmethod
    def delete_user(context: Dict[str, Any], user_id: str) -> None:
        AuthService.require_admin(context)
        if not user_id:
            raise ValidationException("User ID is required")

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(
                        "DELETE FROM users WHERE id = %s AND tenant_id = %s",
                        (user_id, context["tenant_id"])
                    )
                    if cursor.rowcount == 0:
                        raise NotFoundException("User", user_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error deleting user: {e.message}", extra={"action": "deleteUser", "user_id": user_id})
            raise

        revalidate_path(ADMIN_USERS_PAGE)
