"""
Authentication Service.
Resolves the caller's role and tenant from the users table and provisions
user rows for identities created by the authentication provider.
"""

import re
from typing import Dict, Any, Optional
from psycopg2.extras import RealDictCursor
import logging

from stockroom.config import settings
from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import (
    AuthenticationException,
    AuthorizationException,
    ValidationException,
    DatabaseException,
)

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
USER_ROLE = "user"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").lower().strip()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def role_from_record(record: Optional[Dict[str, Any]], user_metadata: Optional[Dict[str, Any]]) -> str:
    """
    Map a users row (or its absence) to a role.

    Only an exact "admin" in the table grants admin; without a row the
    provider's user metadata decides, defaulting to "user".
    """
    if record is not None:
        return ADMIN_ROLE if record.get("role") == ADMIN_ROLE else USER_ROLE
    # user_metadata is editable by the user through the provider; app_metadata
    # would be the trustworthy source if the provider is configured to carry it.
    metadata_role = (user_metadata or {}).get("role")
    return metadata_role if metadata_role in (ADMIN_ROLE, USER_ROLE) else USER_ROLE


def tenant_from_record(record: Optional[Dict[str, Any]], user_metadata: Optional[Dict[str, Any]]) -> str:
    if record is not None and record.get("tenant_id"):
        return str(record["tenant_id"])
    return (user_metadata or {}).get("tenant_id") or settings.DEFAULT_TENANT_ID


def default_display_name(identity: Dict[str, Any], name: Optional[str] = None) -> str:
    """First non-empty of: explicit name, metadata name, email local part, 'User'."""
    candidates = [
        (name or "").strip(),
        ((identity.get("user_metadata") or {}).get("name") or "").strip(),
        (identity.get("email") or "").split("@")[0],
    ]
    return next((c for c in candidates if c), "User")


class AuthService:
    """Role and tenant resolution for authenticated callers."""

    @staticmethod
    def find_user_record(email: str, claims: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Find the users row for an email (case-insensitive).

        Raises:
            DatabaseException: If the lookup fails
        """
        db_manager = get_db_manager()
        with db_manager.get_connection(claims) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("""
                    SELECT id, email, name, role, tenant_id
                    FROM users
                    WHERE lower(email) = %s
                    LIMIT 1
                """, (normalize_email(email),))
                row = cursor.fetchone()
                return dict(row) if row else None
            finally:
                cursor.close()

    @staticmethod
    def resolve_user_context(identity: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """
        Combine the caller identity with its role and tenant.

        Returns None when there is no identity. Lookup failures never block the
        request; they fall back to the provider metadata.
        """
        if not identity:
            return None

        metadata = identity.get("user_metadata") or {}
        email = normalize_email(identity.get("email"))
        record = None

        if not email:
            logger.warning("User has no email", extra={"action": "resolveUserContext", "user_id": identity.get("user_id")})
        else:
            try:
                record = AuthService.find_user_record(email, identity.get("claims"))
            except DatabaseException as e:
                logger.error(
                    f"Error fetching user role: {e.message}",
                    extra={"action": "resolveUserContext", "email": email, "pgcode": e.pgcode}
                )
            else:
                if record is None:
                    logger.warning(
                        "User not found in users table",
                        extra={"action": "resolveUserContext", "email": email, "user_id": identity.get("user_id")}
                    )

        role = role_from_record(record, metadata) if email else USER_ROLE
        return {
            **identity,
            "email": email or None,
            "role": role,
            "tenant_id": tenant_from_record(record, metadata),
            "user_record_id": str(record["id"]) if record else None,
        }

    @staticmethod
    def get_current_user_role(identity: Optional[Dict[str, Any]]) -> str:
        """Role of the caller; anonymous callers are plain users."""
        context = AuthService.resolve_user_context(identity)
        return context["role"] if context else USER_ROLE

    @staticmethod
    def get_current_tenant_id(identity: Optional[Dict[str, Any]]) -> Optional[str]:
        context = AuthService.resolve_user_context(identity)
        return context["tenant_id"] if context else None

    @staticmethod
    def is_admin(context: Optional[Dict[str, Any]]) -> bool:
        return bool(context) and context.get("role") == ADMIN_ROLE

    @staticmethod
    def require_auth(context: Optional[Dict[str, Any]]) -> None:
        if not context:
            raise AuthenticationException("Unauthorized: Please log in")

    @staticmethod
    def require_admin(context: Optional[Dict[str, Any]]) -> None:
        AuthService.require_auth(context)
        if not AuthService.is_admin(context):
            raise AuthorizationException("Unauthorized: Admin access required")

    @staticmethod
    def can_write_inventory(context: Optional[Dict[str, Any]]) -> bool:
        return AuthService.is_admin(context)

    @staticmethod
    def can_write_crew(context: Optional[Dict[str, Any]]) -> bool:
        return AuthService.is_admin(context)

    @staticmethod
    def can_write_events(context: Optional[Dict[str, Any]]) -> bool:
        # Everyone can write events and quotes
        return True

    @staticmethod
    def sync_user_record(
        identity: Optional[Dict[str, Any]],
        email: Optional[str] = None,
        name: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Ensure the authenticated identity has a row in the users table.

        New rows land in the default tenant with the default role.

        Returns:
            Dict with created flag, message and the user row
        """
        if not identity:
            raise AuthenticationException("Unauthorized. Please log in first.")

        identity_email = identity.get("email")
        if not identity_email:
            raise ValidationException("User email not found")

        if email is not None and email != identity_email:
            raise ValidationException("Email mismatch")

        existing = AuthService.find_user_record(identity_email, identity.get("claims"))
        if existing:
            return {"created": False, "message": "User already exists", "user": existing}

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(identity.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        INSERT INTO users (tenant_id, email, name, role)
                        VALUES (%s, %s, %s, %s)
                        RETURNING id, tenant_id, email, name, role, created_at, updated_at
                    """, (
                        settings.DEFAULT_TENANT_ID,
                        identity_email,
                        default_display_name(identity, name),
                        settings.DEFAULT_ROLE,
                    ))
                    user = dict(cursor.fetchone())
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error inserting user: {e.message}",
                extra={"action": "syncUserRecord", "email": identity_email, "pgcode": e.pgcode}
            )
            raise DatabaseException(f"Failed to create user record: {e.message}", pgcode=e.pgcode)

        logger.info("User created successfully", extra={"action": "syncUserRecord", "email": identity_email})
        return {"created": True, "message": "User created successfully", "user": user}
