"""
Catalog Service.
Creates, renames, reorders and retires inventory items and groups.
"""

import logging
from datetime import datetime
from typing import Dict, Any, List, Iterable, Optional
from psycopg2.extras import RealDictCursor

from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import (
    AppException,
    ConflictException,
    DatabaseException,
    NotFoundException,
    ValidationException,
    UNIQUE_VIOLATION,
)
from stockroom.core.page_cache import revalidate_path
from stockroom.core.quote_service import QuoteService

logger = logging.getLogger(__name__)

SYSTEM_GROUP_NAME = "Uncategorized"
MAX_RENAME_ATTEMPTS = 100


def archived_item_name(name: str, now: Optional[datetime] = None) -> str:
    """'{name} (archived-YYYYMMDD-HHMMSSmmmm)' with milliseconds padded to four digits."""
    now = now or datetime.now()
    return f"{name} (archived-{now:%Y%m%d-%H%M%S}{now.microsecond // 1000:04d})"


def plan_group_migration(
    items: Iterable[Dict[str, Any]],
    existing_names: Iterable[str],
    timestamp: str
) -> List[Dict[str, Any]]:
    """
    New names for items moving into the system group.

    Names colliding (case-insensitively) with a name already in the target, or
    with one assigned earlier in this move, get a '(migrated-...)' suffix.
    """
    used = {name.lower() for name in existing_names}
    counters: Dict[str, int] = {}
    plan = []

    for item in items:
        base_name = item["name"]
        new_name = base_name

        if base_name.lower() in used:
            counter = counters.get(base_name, 0) + 1
            counters[base_name] = counter
            suffix = f"{timestamp}-{counter}" if counter > 1 else timestamp
            new_name = f"{base_name} (migrated-{suffix})"

            attempts = 0
            while new_name.lower() in used and attempts < MAX_RENAME_ATTEMPTS:
                counter += 1
                counters[base_name] = counter
                new_name = f"{base_name} (migrated-{timestamp}-{counter})"
                attempts += 1

        used.add(new_name.lower())
        plan.append({"id": item["id"], "name": new_name})

    return plan


def _run_in_savepoint(cursor, query: str, params: tuple) -> Optional[Exception]:
    """Execute one statement; on failure roll back just that statement."""
    cursor.execute("SAVEPOINT catalog_row")
    try:
        cursor.execute(query, params)
    except Exception as e:
        cursor.execute("ROLLBACK TO SAVEPOINT catalog_row")
        return e
    cursor.execute("RELEASE SAVEPOINT catalog_row")
    return None


class CatalogService:
    """Item and group structure of the inventory."""

    # ------------------------------------------------------------------ items

    @staticmethod
    def create_item(
        context: Dict[str, Any],
        name: Optional[str],
        group_id: Optional[str],
        is_serialized: bool = False
    ) -> Dict[str, Any]:
        """
        Create an active item at the end of its group.

        Raises:
            ValidationException: Missing name or group
            ConflictException: DUPLICATE_NAME when the tenant already has the name
        """
        name = (name or "").strip()
        if not name or not group_id:
            raise ValidationException("Name and group are required")

        tenant_id = context["tenant_id"]
        db_manager = get_db_manager()

        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        SELECT id FROM inventory_items
                        WHERE name = %s AND tenant_id = %s
                        LIMIT 1
                    """, (name, tenant_id))
                    if cursor.fetchone():
                        raise ConflictException(
                            "An item with this name already exists",
                            details={"name": name},
                            error_code="DUPLICATE_NAME"
                        )

                    cursor.execute("""
                        SELECT COALESCE(MAX(display_order), 0) AS max_order
                        FROM inventory_items
                        WHERE group_id = %s
                    """, (group_id,))
                    next_order = cursor.fetchone()["max_order"] + 1

                    cursor.execute("""
                        INSERT INTO inventory_items
                        (name, category, price, group_id, is_serialized, active, tenant_id, display_order)
                        VALUES (%s, 'General', 0, %s, %s, TRUE, %s, %s)
                        RETURNING id::text AS id, name, group_id::text AS group_id,
                                  is_serialized, display_order
                    """, (name, group_id, is_serialized, tenant_id, next_order))
                    item = dict(cursor.fetchone())
                finally:
                    cursor.close()
        except DatabaseException as e:
            if e.pgcode == UNIQUE_VIOLATION:
                raise ConflictException(
                    "An item with this name already exists",
                    details={"name": name},
                    error_code="DUPLICATE_NAME"
                )
            logger.error(
                f"Error inserting item: {e.message}",
                extra={"action": "createItem", "group_id": group_id, "item_name": name}
            )
            raise

        revalidate_path("/")
        return item

    @staticmethod
    def update_item(context: Dict[str, Any], item_id: str, name: Optional[str], price: Any) -> Dict[str, Any]:
        """Rename/re-price an item and refresh the price on draft quotes."""
        name = (name or "").strip()
        if not name:
            raise ValidationException("Name is required")
        if not isinstance(price, (int, float)) or isinstance(price, bool) or price != price or price < 0:
            raise ValidationException("Price must be a non-negative number")

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(
                        "UPDATE inventory_items SET name = %s, price = %s WHERE id = %s AND tenant_id = %s",
                        (name, price, item_id, context["tenant_id"])
                    )
                    if cursor.rowcount == 0:
                        raise NotFoundException("Item", item_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error updating item: {e.message}", extra={"action": "updateItem", "item_id": item_id})
            raise

        QuoteService.refresh_quote_item_prices(context, item_id)
        revalidate_path("/")
        return {"id": item_id, "name": name, "price": price}

    @staticmethod
    def reorder_items(context: Dict[str, Any], group_id: str, item_orders: Dict[str, int]) -> Dict[str, Any]:
        """
        Apply new display orders within a group. Failed rows are logged and skipped.
        """
        if not group_id:
            raise ValidationException("Group ID is required")

        failed: List[str] = []
        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor()
            try:
                for item_id, display_order in item_orders.items():
                    error = _run_in_savepoint(
                        cursor,
                        "UPDATE inventory_items SET display_order = %s WHERE id = %s AND group_id = %s",
                        (display_order, item_id, group_id)
                    )
                    if error is not None:
                        failed.append(item_id)
                        logger.error(
                            f"Error updating item: {str(error)}",
                            extra={"action": "reorderItems", "item_id": item_id, "group_id": group_id}
                        )
            finally:
                cursor.close()

        revalidate_path("/")
        return {"updated": len(item_orders) - len(failed), "failed": failed}

    @staticmethod
    def delete_item(context: Dict[str, Any], item_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Soft delete: deactivate and rename so the name can be reused."""
        if not item_id:
            raise ValidationException("Item ID is required")

        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute(
                    "SELECT name FROM inventory_items WHERE id = %s AND tenant_id = %s",
                    (item_id, context["tenant_id"])
                )
                item = cursor.fetchone()
                if not item:
                    raise NotFoundException("Item", item_id)

                archived_name = archived_item_name(item["name"], now)
                cursor.execute(
                    "UPDATE inventory_items SET active = FALSE, name = %s WHERE id = %s",
                    (archived_name, item_id)
                )
            finally:
                cursor.close()

        logger.info("Item archived", extra={"action": "deleteItem", "item_id": item_id})
        revalidate_path("/")
        return {"id": item_id, "name": archived_name, "active": False}

    # ----------------------------------------------------------------- groups

    @staticmethod
    def _next_group_order(cursor, tenant_id: str) -> int:
        cursor.execute("""
            SELECT COALESCE(MAX(display_order), 0) AS max_order
            FROM inventory_groups
            WHERE tenant_id = %s
        """, (tenant_id,))
        return cursor.fetchone()["max_order"] + 1

    @staticmethod
    def create_group(context: Dict[str, Any], name: Optional[str]) -> Dict[str, Any]:
        name = (name or "").strip()
        if not name:
            raise ValidationException("Name is required")

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    next_order = CatalogService._next_group_order(cursor, context["tenant_id"])
                    cursor.execute("""
                        INSERT INTO inventory_groups (name, tenant_id, display_order)
                        VALUES (%s, %s, %s)
                        RETURNING id::text AS id, name, display_order
                    """, (name, context["tenant_id"], next_order))
                    group = dict(cursor.fetchone())
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error inserting group: {e.message}", extra={"action": "createGroup", "group_name": name})
            raise

        revalidate_path("/")
        return group

    @staticmethod
    def reorder_groups(context: Dict[str, Any], group_orders: Dict[str, int]) -> Dict[str, Any]:
        failed: List[str] = []
        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor()
            try:
                for group_id, display_order in group_orders.items():
                    error = _run_in_savepoint(
                        cursor,
                        "UPDATE inventory_groups SET display_order = %s WHERE id = %s AND tenant_id = %s",
                        (display_order, group_id, context["tenant_id"])
                    )
                    if error is not None:
                        failed.append(group_id)
                        logger.error(
                            f"Error updating group: {str(error)}",
                            extra={"action": "reorderGroups", "group_id": group_id}
                        )
            finally:
                cursor.close()

        revalidate_path("/")
        return {"updated": len(group_orders) - len(failed), "failed": failed}

    @staticmethod
    def delete_group(context: Dict[str, Any], group_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Delete a group, moving its items into the tenant's Uncategorized group.

        The move and the delete share one transaction: if any item fails to
        move, nothing changes.
        """
        if not group_id:
            raise ValidationException("Group ID is required")

        tenant_id = context["tenant_id"]
        now = now or datetime.now()
        db_manager = get_db_manager()

        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute(
                    "SELECT name FROM inventory_groups WHERE id = %s AND tenant_id = %s",
                    (group_id, tenant_id)
                )
                group = cursor.fetchone()
                if not group:
                    raise NotFoundException("Group", group_id)

                if group["name"] == SYSTEM_GROUP_NAME:
                    logger.error(
                        "Attempted to delete system group",
                        extra={"action": "deleteGroup", "group_id": group_id, "group_name": group["name"]}
                    )
                    raise ValidationException("This group is required by the system and cannot be deleted.")

                cursor.execute("""
                    SELECT id::text AS id, name FROM inventory_items
                    WHERE group_id = %s
                """, (group_id,))
                items_to_move = cursor.fetchall()

                moved = 0
                if items_to_move:
                    target_id = CatalogService._ensure_system_group(cursor, tenant_id)

                    cursor.execute("""
                        SELECT name FROM inventory_items
                        WHERE group_id = %s AND tenant_id = %s
                    """, (target_id, tenant_id))
                    existing_names = [row["name"] for row in cursor.fetchall()]

                    plan = plan_group_migration(items_to_move, existing_names, f"{now:%Y%m%d-%H%M%S}")
                    failures = []
                    for update in plan:
                        error = _run_in_savepoint(
                            cursor,
                            "UPDATE inventory_items SET name = %s, group_id = %s WHERE id = %s",
                            (update["name"], target_id, update["id"])
                        )
                        if error is not None:
                            failures.append(str(error))

                    if failures:
                        logger.error(
                            "Error moving items to Uncategorized",
                            extra={
                                "action": "deleteGroup",
                                "group_id": group_id,
                                "failed_count": len(failures),
                                "total_count": len(plan),
                                "error": failures[0],
                            }
                        )
                        raise AppException(
                            f"Failed to move {len(failures)} of {len(plan)} items to {SYSTEM_GROUP_NAME}",
                            error_code="MOVE_FAILED",
                            details={"failed_count": len(failures), "total_count": len(plan)}
                        )
                    moved = len(plan)

                cursor.execute("DELETE FROM inventory_groups WHERE id = %s", (group_id,))
            finally:
                cursor.close()

        logger.info(
            f"Group deleted, {moved} items moved",
            extra={"action": "deleteGroup", "group_id": group_id}
        )
        revalidate_path("/")
        return {"id": group_id, "moved_items": moved}

    @staticmethod
    def _ensure_system_group(cursor, tenant_id: str) -> str:
        """Id of the tenant's Uncategorized group, creating it at the end if missing."""
        cursor.execute("""
            SELECT id::text AS id FROM inventory_groups
            WHERE name = %s AND tenant_id = %s
            LIMIT 1
        """, (SYSTEM_GROUP_NAME, tenant_id))
        row = cursor.fetchone()
        if row:
            return row["id"]

        next_order = CatalogService._next_group_order(cursor, tenant_id)
        cursor.execute("""
            INSERT INTO inventory_groups (name, tenant_id, display_order)
            VALUES (%s, %s, %s)
            RETURNING id::text AS id
        """, (SYSTEM_GROUP_NAME, tenant_id, next_order))
        return cursor.fetchone()["id"]
