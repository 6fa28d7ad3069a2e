"""
Inventory Service.
Builds the grouped inventory overview, item search and item detail read models.
"""

import logging
from typing import Dict, Any, List, Iterable, Optional
from psycopg2.extras import RealDictCursor

from stockroom.config import settings
from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import DatabaseException, NotFoundException
from stockroom.core.page_cache import page_cache

logger = logging.getLogger(__name__)

INVENTORY_PAGE = "/"


def count_units(unit_rows: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
    """Per item: total units and units with status 'available'."""
    counts: Dict[str, Dict[str, int]] = {}
    for unit in unit_rows:
        item_counts = counts.setdefault(str(unit["item_id"]), {"available": 0, "total": 0})
        item_counts["total"] += 1
        if unit["status"] == "available":
            item_counts["available"] += 1
    return counts


def stock_availability(stock_rows: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
    """Per item: total quantity and quantity not out of service."""
    return {
        str(row["item_id"]): {
            "available": row["total_quantity"] - (row.get("out_of_service_quantity") or 0),
            "total": row["total_quantity"],
        }
        for row in stock_rows
    }


def fetch_availability(cursor, items: List[Dict[str, Any]]) -> Dict[str, Dict[str, int]]:
    """
    Availability for a batch of items.

    Serialized items are counted from inventory_units, the rest come from
    inventory_stock. Items with neither get no entry (treated as 0/0).
    Query failures propagate; callers decide whether an empty answer is acceptable.
    """
    serialized_ids = [item["id"] for item in items if item["is_serialized"]]
    stocked_ids = [item["id"] for item in items if not item["is_serialized"]]
    availability: Dict[str, Dict[str, int]] = {}

    if serialized_ids:
        cursor.execute("""
            SELECT item_id::text AS item_id, status
            FROM inventory_units
            WHERE item_id = ANY(%s::uuid[])
        """, (serialized_ids,))
        availability.update(count_units(cursor.fetchall()))

    if stocked_ids:
        cursor.execute("""
            SELECT item_id::text AS item_id, total_quantity, out_of_service_quantity
            FROM inventory_stock
            WHERE item_id = ANY(%s::uuid[])
        """, (stocked_ids,))
        availability.update(stock_availability(cursor.fetchall()))

    return availability


def with_availability(item: Dict[str, Any], availability: Dict[str, Dict[str, int]]) -> Dict[str, Any]:
    counts = availability.get(item["id"], {"available": 0, "total": 0})
    return {**item, "available": counts["available"], "total": counts["total"]}


class InventoryService:
    """Read models for the inventory page."""

    @staticmethod
    def get_inventory_overview(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        All groups (ordered) with their active items and availability.

        Cached per tenant under the inventory page path.
        """
        tenant_id = context["tenant_id"]
        return page_cache.get_or_load(
            tenant_id,
            INVENTORY_PAGE,
            lambda: InventoryService._load_inventory_overview(context)
        )

    @staticmethod
    def _load_inventory_overview(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        db_manager = get_db_manager()

        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("""
                    SELECT id::text AS id, name
                    FROM inventory_groups
                    WHERE tenant_id = %s
                    ORDER BY display_order
                """, (context["tenant_id"],))
                groups = cursor.fetchall()
                if not groups:
                    return []

                cursor.execute("""
                    SELECT id::text AS id, name, group_id::text AS group_id, is_serialized, price
                    FROM inventory_items
                    WHERE active = TRUE AND tenant_id = %s
                    ORDER BY display_order
                """, (context["tenant_id"],))
                items = [dict(row) for row in cursor.fetchall()]

                availability = fetch_availability(cursor, items)
            finally:
                cursor.close()

        items_by_group: Dict[str, List[Dict[str, Any]]] = {}
        for item in items:
            item = with_availability(item, availability)
            item["price"] = float(item["price"] or 0)
            items_by_group.setdefault(item["group_id"], []).append(item)

        logger.info(
            f"Loaded inventory overview: {len(groups)} groups, {len(items)} items",
            extra={"action": "getInventoryData", "tenant_id": context["tenant_id"]}
        )
        return [
            {"id": group["id"], "name": group["name"], "items": items_by_group.get(group["id"], [])}
            for group in groups
        ]

    @staticmethod
    def search_inventory(context: Dict[str, Any], query: Optional[str]) -> List[Dict[str, Any]]:
        """
        Case-insensitive name search over active items.

        Blank queries and database failures both yield an empty list.
        """
        search_term = (query or "").strip()
        if not search_term:
            return []

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        SELECT i.id::text AS id, i.name, i.group_id::text AS group_id,
                               i.is_serialized, g.name AS group_name
                        FROM inventory_items i
                        LEFT JOIN inventory_groups g ON g.id = i.group_id
                        WHERE i.active = TRUE AND i.tenant_id = %s AND i.name ILIKE %s
                        LIMIT %s
                    """, (context["tenant_id"], f"%{search_term}%", settings.SEARCH_RESULT_LIMIT))
                    items = [dict(row) for row in cursor.fetchall()]
                    if not items:
                        return []

                    availability = fetch_availability(cursor, items)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error searching items: {e.message}",
                extra={"action": "searchInventory", "query": search_term}
            )
            return []

        return [
            {
                "id": item["id"],
                "name": item["name"],
                "group_id": item["group_id"],
                "group_name": item.get("group_name") or "Unknown",
                "available": availability.get(item["id"], {}).get("available", 0),
                "total": availability.get(item["id"], {}).get("total", 0),
                "is_serialized": item["is_serialized"],
            }
            for item in items
        ]

    @staticmethod
    def get_item_details(context: Dict[str, Any], item_id: str) -> Dict[str, Any]:
        """Item with its stock row, units (newest first) and maintenance logs."""
        db_manager = get_db_manager()

        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("""
                    SELECT id::text AS id, name, group_id::text AS group_id, category,
                           price, is_serialized, active, display_order
                    FROM inventory_items
                    WHERE id = %s AND tenant_id = %s
                """, (item_id, context["tenant_id"]))
                item = cursor.fetchone()
                if not item:
                    raise NotFoundException("Item", item_id)
                item = dict(item)
                item["price"] = float(item["price"] or 0)

                cursor.execute("""
                    SELECT id::text AS id, total_quantity, out_of_service_quantity,
                           location_id::text AS location_id
                    FROM inventory_stock
                    WHERE item_id = %s
                    LIMIT 1
                """, (item_id,))
                stock = cursor.fetchone()

                cursor.execute("""
                    SELECT u.id::text AS id, u.serial_number, u.barcode, u.status,
                           l.name AS location_name
                    FROM inventory_units u
                    LEFT JOIN locations l ON l.id = u.location_id
                    WHERE u.item_id = %s
                    ORDER BY u.created_at DESC
                """, (item_id,))
                units = [
                    {**row, "location_name": row.get("location_name") or "Unknown"}
                    for row in cursor.fetchall()
                ]

                cursor.execute("""
                    SELECT id::text AS id, note, created_at
                    FROM inventory_maintenance_logs
                    WHERE item_id = %s
                    ORDER BY created_at DESC
                """, (item_id,))
                logs = [dict(row) for row in cursor.fetchall()]
            finally:
                cursor.close()

        if item["is_serialized"]:
            counts = {
                "available": sum(1 for unit in units if unit["status"] == "available"),
                "total": len(units),
            }
        elif stock:
            counts = stock_availability([{**stock, "item_id": item_id}])[item_id]
        else:
            counts = {"available": 0, "total": 0}

        return {
            "item": {**item, **counts},
            "stock": dict(stock) if stock else None,
            "units": units,
            "maintenance_logs": logs,
        }
