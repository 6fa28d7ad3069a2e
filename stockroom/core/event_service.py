"""
Event Service.
Events, their inventory, crew assignments and tasks.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from psycopg2.extras import RealDictCursor

from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import DatabaseException, NotFoundException, ValidationException
from stockroom.core.page_cache import page_cache, revalidate_path

logger = logging.getLogger(__name__)

EVENTS_PAGE = "/events"
EVENT_STATUSES = ("draft", "confirmed", "in_progress", "completed", "cancelled")

EVENT_COLUMNS = """
    id::text AS id, name, description, start_date, end_date, location, status,
    quote_id::text AS quote_id, created_at, updated_at
"""


def validate_event_fields(name: Optional[str], start_date: Any, end_date: Any) -> str:
    """Return the trimmed name; dates are required and may not run backwards."""
    name = (name or "").strip()
    if not name or not start_date or not end_date:
        raise ValidationException("Name, start date, and end date are required")
    if end_date < start_date:
        raise ValidationException("End date must be after start date")
    return name


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


class EventService:
    """Events and their operational details."""

    @staticmethod
    def get_events(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        return page_cache.get_or_load(
            context["tenant_id"],
            EVENTS_PAGE,
            lambda: EventService._load_events(context)
        )

    @staticmethod
    def _load_events(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute(f"""
                    SELECT {EVENT_COLUMNS}
                    FROM events
                    WHERE tenant_id = %s
                    ORDER BY start_date DESC
                """, (context["tenant_id"],))
                return [dict(row) for row in cursor.fetchall()]
            finally:
                cursor.close()

    @staticmethod
    def _fetch_inventory(cursor, event_id: str, tenant_id: str) -> List[Dict[str, Any]]:
        cursor.execute("""
            SELECT ei.id::text AS id, ei.event_id::text AS event_id, ei.item_id::text AS item_id,
                   ei.quantity, ei.unit_price_snapshot, ei.notes, i.name AS item_name
            FROM event_inventory ei
            LEFT JOIN inventory_items i ON i.id = ei.item_id
            WHERE ei.event_id = %s AND ei.tenant_id = %s
        """, (event_id, tenant_id))
        rows = [dict(row) for row in cursor.fetchall()]
        for row in rows:
            row["unit_price_snapshot"] = float(row["unit_price_snapshot"] or 0)
        return rows

    @staticmethod
    def get_event_with_details(context: Dict[str, Any], event_id: str) -> Dict[str, Any]:
        """
        Event with inventory, crew and tasks.

        An event created from a quote that has no inventory yet gets the
        quote's lines copied in first.
        """
        tenant_id = context["tenant_id"]
        db_manager = get_db_manager()

        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute(f"""
                    SELECT {EVENT_COLUMNS}
                    FROM events
                    WHERE id = %s AND tenant_id = %s
                """, (event_id, tenant_id))
                event = cursor.fetchone()
                if not event:
                    raise NotFoundException("Event", event_id)
                event = dict(event)

                inventory = EventService._fetch_inventory(cursor, event_id, tenant_id)
                if event["quote_id"] and not inventory:
                    logger.info(
                        f"Event {event_id} has quote {event['quote_id']} but no inventory, copying items",
                        extra={"action": "getEventWithDetails"}
                    )
                    if EventService._copy_quote_items(cursor, event_id, event["quote_id"], tenant_id):
                        inventory = EventService._fetch_inventory(cursor, event_id, tenant_id)

                cursor.execute("""
                    SELECT ec.id::text AS id, ec.event_id::text AS event_id,
                           ec.crew_member_id::text AS crew_member_id, ec.role, ec.call_time,
                           ec.end_time, ec.hourly_rate, ec.notes,
                           cm.name AS crew_member_name, cm.email AS crew_member_email,
                           cm.contact AS crew_member_contact
                    FROM event_crew ec
                    LEFT JOIN crew_members cm ON cm.id = ec.crew_member_id
                    WHERE ec.event_id = %s AND ec.tenant_id = %s
                """, (event_id, tenant_id))
                crew = [dict(row) for row in cursor.fetchall()]

                cursor.execute("""
                    SELECT id::text AS id, event_id::text AS event_id, title, description,
                           assigned_to_crew_id::text AS assigned_to_crew_id, due_time,
                           status, priority, created_at, updated_at
                    FROM event_tasks
                    WHERE event_id = %s AND tenant_id = %s
                    ORDER BY due_time ASC NULLS LAST
                """, (event_id, tenant_id))
                tasks = [dict(row) for row in cursor.fetchall()]
            finally:
                cursor.close()

        return {"event": event, "inventory": inventory, "crew": crew, "tasks": tasks}

    @staticmethod
    def create_event(
        context: Dict[str, Any],
        name: Optional[str],
        start_date: Any,
        end_date: Any,
        description: Optional[str] = None,
        location: Optional[str] = None,
        quote_id: Optional[str] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create an event. Without an explicit status, events from a quote are
        confirmed and the rest start as draft.
        """
        name = validate_event_fields(name, start_date, end_date)
        quote_id = _blank_to_none(quote_id)
        status = _blank_to_none(status) or ("confirmed" if quote_id else "draft")
        if status not in EVENT_STATUSES:
            raise ValidationException(
                f"Status must be one of: {', '.join(EVENT_STATUSES)}",
                details={"status": status}
            )

        tenant_id = context["tenant_id"]
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(f"""
                        INSERT INTO events
                        (name, description, start_date, end_date, location, quote_id, status, tenant_id)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {EVENT_COLUMNS}
                    """, (
                        name,
                        _blank_to_none(description),
                        start_date,
                        end_date,
                        _blank_to_none(location),
                        quote_id,
                        status,
                        tenant_id,
                    ))
                    event = dict(cursor.fetchone())

                    if quote_id and not EventService._copy_quote_items(cursor, event["id"], quote_id, tenant_id):
                        logger.error(
                            "Failed to copy quote items, but event was created",
                            extra={"action": "createEvent", "event_id": event["id"], "quote_id": quote_id}
                        )
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error creating event: {e.message}", extra={"action": "createEvent", "event_name": name})
            raise

        revalidate_path(EVENTS_PAGE)
        return event

    @staticmethod
    def update_event(
        context: Dict[str, Any],
        event_id: str,
        name: Optional[str],
        start_date: Any,
        end_date: Any,
        description: Optional[str] = None,
        location: Optional[str] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        """Unknown statuses are ignored; the rest of the update still applies."""
        name = validate_event_fields(name, start_date, end_date)

        assignments = [
            "name = %s", "description = %s", "start_date = %s",
            "end_date = %s", "location = %s", "updated_at = %s",
        ]
        params: List[Any] = [
            name,
            _blank_to_none(description),
            start_date,
            end_date,
            _blank_to_none(location),
            datetime.now(timezone.utc),
        ]
        if status in EVENT_STATUSES:
            assignments.append("status = %s")
            params.append(status)
        params.extend([event_id, context["tenant_id"]])

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(f"""
                        UPDATE events SET {', '.join(assignments)}
                        WHERE id = %s AND tenant_id = %s
                        RETURNING {EVENT_COLUMNS}
                    """, tuple(params))
                    event = cursor.fetchone()
                    if not event:
                        raise NotFoundException("Event", event_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error updating event: {e.message}", extra={"action": "updateEvent", "event_id": event_id})
            raise

        revalidate_path(EVENTS_PAGE, f"{EVENTS_PAGE}/{event_id}")
        return dict(event)

    @staticmethod
    def delete_event(context: Dict[str, Any], event_id: str) -> None:
        if not event_id:
            raise ValidationException("Event ID is required")

        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(
                    "DELETE FROM events WHERE id = %s AND tenant_id = %s",
                    (event_id, context["tenant_id"])
                )
                if cursor.rowcount == 0:
                    raise NotFoundException("Event", event_id)
            finally:
                cursor.close()

        revalidate_path(EVENTS_PAGE, f"{EVENTS_PAGE}/{event_id}")

    @staticmethod
    def _copy_quote_items(cursor, event_id: str, quote_id: str, tenant_id: str) -> bool:
        """
        Copy a quote's lines into an event's inventory unless it already has some.

        Runs in a savepoint so a failed copy leaves the surrounding transaction usable.
        """
        cursor.execute("SAVEPOINT copy_quote_items")
        try:
            cursor.execute(
                "SELECT id FROM event_inventory WHERE event_id = %s AND tenant_id = %s LIMIT 1",
                (event_id, tenant_id)
            )
            if cursor.fetchone():
                cursor.execute("RELEASE SAVEPOINT copy_quote_items")
                return True

            cursor.execute("""
                INSERT INTO event_inventory
                (event_id, item_id, quantity, unit_price_snapshot, tenant_id, notes)
                SELECT %s, item_id, quantity, unit_price_snapshot, %s, NULL
                FROM quote_items
                WHERE quote_id = %s
            """, (event_id, tenant_id, quote_id))
            copied = cursor.rowcount
        except Exception as e:
            cursor.execute("ROLLBACK TO SAVEPOINT copy_quote_items")
            logger.error(
                f"Error copying items to event inventory: {str(e)}",
                extra={"action": "copyQuoteItemsToEvent", "event_id": event_id, "quote_id": quote_id}
            )
            return False

        cursor.execute("RELEASE SAVEPOINT copy_quote_items")
        logger.info(f"Copied {copied} quote items to event {event_id}", extra={"action": "copyQuoteItemsToEvent"})
        return True

    @staticmethod
    def copy_quote_items_to_event(context: Dict[str, Any], event_id: str, quote_id: str) -> bool:
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    copied = EventService._copy_quote_items(cursor, event_id, quote_id, context["tenant_id"])
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error copying quote items: {e.message}", extra={"event_id": event_id, "quote_id": quote_id})
            return False

        if copied:
            revalidate_path(f"{EVENTS_PAGE}/{event_id}")
        return copied

    @staticmethod
    def create_event_for_accepted_quote(context: Dict[str, Any], quote_id: str) -> Dict[str, Any]:
        """
        Event for an accepted quote; returns the existing one if the quote
        already has an event.

        Raises:
            NotFoundException: Unknown quote
            ValidationException: Quote is not accepted
        """
        tenant_id = context["tenant_id"]
        db_manager = get_db_manager()

        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("""
                    SELECT id::text AS id, name, start_date, end_date, status
                    FROM quotes
                    WHERE id = %s AND tenant_id = %s
                """, (quote_id, tenant_id))
                quote = cursor.fetchone()
                if not quote:
                    raise NotFoundException("Quote", quote_id)
                if quote["status"] != "accepted":
                    raise ValidationException("Only accepted quotes can be converted to events")

                cursor.execute(f"""
                    SELECT {EVENT_COLUMNS}
                    FROM events
                    WHERE quote_id = %s AND tenant_id = %s
                    LIMIT 1
                """, (quote_id, tenant_id))
                existing = cursor.fetchone()
            finally:
                cursor.close()

        if existing:
            return dict(existing)

        return EventService.create_event(
            context,
            name=quote["name"],
            start_date=quote["start_date"],
            end_date=quote["end_date"],
            description=f"Event created from quote: {quote['name']}",
            quote_id=quote_id,
            status="confirmed"
        )
