"""
Crew Service.
Crew member roster and leave tracking.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from psycopg2.extras import RealDictCursor

from stockroom.core.auth_service import is_valid_email
from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import (
    ConflictException,
    DatabaseException,
    NotFoundException,
    ValidationException,
    UNIQUE_VIOLATION,
    UNDEFINED_TABLE,
)
from stockroom.core.page_cache import page_cache, revalidate_path

logger = logging.getLogger(__name__)

CREW_PAGE = "/crew"
EVENTS_PAGE = "/events"
CREW_ROLES = ("Own Crew", "Freelancer")

CREW_COLUMNS = """
    id::text AS id, name, email, contact, role, on_leave, leave_start_date,
    leave_end_date, leave_reason, created_at, updated_at
"""


def validate_crew_member(name: Optional[str], email: Optional[str], role: Optional[str]) -> Dict[str, Any]:
    """Trim and check the editable crew fields; blank email becomes None."""
    name = (name or "").strip()
    email = (email or "").strip() or None
    role = (role or "").strip()

    if not name:
        raise ValidationException("Name is required")
    if role not in CREW_ROLES:
        raise ValidationException("Role must be either Own Crew or Freelancer")
    if email and not is_valid_email(email):
        raise ValidationException("Invalid email format")
    return {"name": name, "email": email, "role": role}


class CrewService:

    @staticmethod
    def get_crew_members(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Crew ordered by name; empty when the roster is unavailable."""
        return page_cache.get_or_load(
            context["tenant_id"],
            CREW_PAGE,
            lambda: CrewService._load_crew_members(context)
        )

    @staticmethod
    def _load_crew_members(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(f"""
                        SELECT {CREW_COLUMNS}
                        FROM crew_members
                        WHERE tenant_id = %s
                        ORDER BY name ASC
                    """, (context["tenant_id"],))
                    return [dict(row) for row in cursor.fetchall()]
                finally:
                    cursor.close()
        except DatabaseException as e:
            if e.pgcode == UNDEFINED_TABLE:
                logger.warning("Table 'crew_members' does not exist. Please run the migration first.")
            else:
                logger.error(f"Error fetching crew members: {e.message}", extra={"action": "getCrewMembers", "pgcode": e.pgcode})
            return []

    @staticmethod
    def _save(context: Dict[str, Any], query: str, params: tuple, action: str) -> Optional[Dict[str, Any]]:
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(query, params)
                    row = cursor.fetchone()
                    return dict(row) if row else None
                finally:
                    cursor.close()
        except DatabaseException as e:
            if e.pgcode == UNIQUE_VIOLATION:
                raise ConflictException("A crew member with this email already exists")
            logger.error(f"Error saving crew member: {e.message}", extra={"action": action})
            raise

    @staticmethod
    def create_crew_member(
        context: Dict[str, Any],
        name: Optional[str],
        role: Optional[str],
        email: Optional[str] = None,
        contact: Optional[str] = None
    ) -> Dict[str, Any]:
        fields = validate_crew_member(name, email, role)
        member = CrewService._save(
            context,
            f"""
                INSERT INTO crew_members (name, email, contact, role, tenant_id)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {CREW_COLUMNS}
            """,
            (fields["name"], fields["email"], (contact or "").strip() or None, fields["role"], context["tenant_id"]),
            "createCrewMember"
        )
        revalidate_path(CREW_PAGE)
        return member

    @staticmethod
    def update_crew_member(
        context: Dict[str, Any],
        member_id: str,
        name: Optional[str],
        role: Optional[str],
        email: Optional[str] = None,
        contact: Optional[str] = None
    ) -> Dict[str, Any]:
        if not member_id:
            raise ValidationException("Crew member ID is required")
        fields = validate_crew_member(name, email, role)

        member = CrewService._save(
            context,
            f"""
                UPDATE crew_members
                SET name = %s, email = %s, contact = %s, role = %s, updated_at = %s
                WHERE id = %s AND tenant_id = %s
                RETURNING {CREW_COLUMNS}
            """,
            (
                fields["name"],
                fields["email"],
                (contact or "").strip() or None,
                fields["role"],
                datetime.now(timezone.utc),
                member_id,
                context["tenant_id"],
            ),
            "updateCrewMember"
        )
        if member is None:
            raise NotFoundException("Crew member", member_id)
        revalidate_path(CREW_PAGE)
        return member

    @staticmethod
    def update_crew_leave_status(
        context: Dict[str, Any],
        member_id: str,
        on_leave: bool,
        leave_start_date: Any = None,
        leave_end_date: Any = None,
        leave_reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Mark a crew member on or off leave. Coming off leave clears the dates
        and reason.
        """
        if not member_id:
            raise ValidationException("Crew member ID is required")

        if on_leave:
            if not leave_start_date or not leave_end_date:
                raise ValidationException("Leave start date and end date are required when marking on leave")
            if leave_end_date < leave_start_date:
                raise ValidationException("Leave end date must be after start date")
        else:
            leave_start_date = leave_end_date = leave_reason = None

        member = CrewService._save(
            context,
            f"""
                UPDATE crew_members
                SET on_leave = %s, leave_start_date = %s, leave_end_date = %s,
                    leave_reason = %s, updated_at = %s
                WHERE id = %s AND tenant_id = %s
                RETURNING {CREW_COLUMNS}
            """,
            (
                bool(on_leave),
                leave_start_date,
                leave_end_date,
                (leave_reason or "").strip() or None,
                datetime.now(timezone.utc),
                member_id,
                context["tenant_id"],
            ),
            "updateCrewLeaveStatus"
        )
        if member is None:
            raise NotFoundException("Crew member", member_id)
        revalidate_path(CREW_PAGE, EVENTS_PAGE)
        return member

    @staticmethod
    def delete_crew_member(context: Dict[str, Any], member_id: str) -> None:
        if not member_id:
            raise ValidationException("Crew member ID is required")

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(
                        "DELETE FROM crew_members WHERE id = %s AND tenant_id = %s",
                        (member_id, context["tenant_id"])
                    )
                    if cursor.rowcount == 0:
                        raise NotFoundException("Crew member", member_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error deleting crew member: {e.message}", extra={"action": "deleteCrewMember", "id": member_id})
            raise

        revalidate_path(CREW_PAGE)
