"""
Stock Service.
Stock level adjustments, serialized unit status changes and maintenance logs.
"""

import logging
from typing import Dict, Any, Optional
from psycopg2.extras import RealDictCursor

from stockroom.config import settings
from stockroom.core.database import get_db_manager
from stockroom.core.exceptions import ValidationException, NotFoundException, DatabaseException
from stockroom.core.page_cache import revalidate_path

logger = logging.getLogger(__name__)

UNIT_STATUSES = ("available", "out", "maintenance")
# Check out / check in
UNIT_TOGGLE = {"available": "out", "out": "available"}


def validate_stock_levels(total_quantity: Any, out_of_service_quantity: Any) -> None:
    """Both quantities must be numbers with 0 <= out_of_service <= total."""
    numeric = all(
        isinstance(value, (int, float)) and not isinstance(value, bool) and value == value
        for value in (total_quantity, out_of_service_quantity)
    )
    if not numeric:
        raise ValidationException("Quantities must be numbers")
    if total_quantity < 0 or out_of_service_quantity < 0:
        raise ValidationException("Quantities cannot be negative")
    if out_of_service_quantity > total_quantity:
        raise ValidationException("Out of service quantity cannot exceed total quantity")


class StockService:
    """Operations any authenticated user may perform on stock."""

    @staticmethod
    def update_stock(
        context: Dict[str, Any],
        item_id: str,
        total_quantity: Any,
        out_of_service_quantity: Any
    ) -> Dict[str, Any]:
        """
        Set the stock levels of a non-serialized item, creating its stock row if needed.
        """
        if not item_id:
            raise ValidationException("Item ID is required")
        validate_stock_levels(total_quantity, out_of_service_quantity)

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(
                        "SELECT id FROM inventory_stock WHERE item_id = %s LIMIT 1",
                        (item_id,)
                    )
                    existing = cursor.fetchone()

                    if existing:
                        cursor.execute("""
                            UPDATE inventory_stock
                            SET total_quantity = %s, out_of_service_quantity = %s
                            WHERE item_id = %s
                        """, (total_quantity, out_of_service_quantity, item_id))
                        created = False
                    else:
                        cursor.execute("""
                            INSERT INTO inventory_stock
                            (item_id, location_id, total_quantity, out_of_service_quantity, tenant_id)
                            VALUES (%s, %s, %s, %s, %s)
                        """, (
                            item_id,
                            settings.DEFAULT_LOCATION_ID,
                            total_quantity,
                            out_of_service_quantity,
                            context["tenant_id"],
                        ))
                        created = True
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error updating stock: {e.message}",
                extra={"action": "updateStock", "item_id": item_id}
            )
            raise

        revalidate_path("/")
        return {
            "item_id": item_id,
            "total_quantity": total_quantity,
            "out_of_service_quantity": out_of_service_quantity,
            "created": created,
        }

    @staticmethod
    def update_unit_status(context: Dict[str, Any], unit_id: str, new_status: Optional[str]) -> Dict[str, Any]:
        if not unit_id or not new_status:
            raise ValidationException("Unit ID and status are required")
        if new_status not in UNIT_STATUSES:
            raise ValidationException(
                f"Status must be one of: {', '.join(UNIT_STATUSES)}",
                details={"status": new_status}
            )

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(
                        "UPDATE inventory_units SET status = %s WHERE id = %s",
                        (new_status, unit_id)
                    )
                    if cursor.rowcount == 0:
                        raise NotFoundException("Unit", unit_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error updating unit status: {e.message}",
                extra={"action": "updateUnitStatus", "unit_id": unit_id}
            )
            raise

        revalidate_path("/")
        return {"unit_id": unit_id, "status": new_status}

    @staticmethod
    def toggle_unit_status(context: Dict[str, Any], unit_id: str) -> Dict[str, Any]:
        """Check a unit out if available, or back in if out."""
        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("SELECT status FROM inventory_units WHERE id = %s", (unit_id,))
                unit = cursor.fetchone()
            finally:
                cursor.close()

        if not unit:
            raise NotFoundException("Unit", unit_id)
        next_status = UNIT_TOGGLE.get(unit["status"])
        if next_status is None:
            raise ValidationException(
                f"Unit in status '{unit['status']}' cannot be checked in or out",
                details={"status": unit["status"]}
            )
        return StockService.update_unit_status(context, unit_id, next_status)

    @staticmethod
    def add_maintenance_log(context: Dict[str, Any], item_id: str, note: Optional[str]) -> Dict[str, Any]:
        note = (note or "").strip()
        if not note:
            raise ValidationException("Note is required")

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        INSERT INTO inventory_maintenance_logs (item_id, tenant_id, note)
                        VALUES (%s, %s, %s)
                        RETURNING id::text AS id, note, created_at
                    """, (item_id, context["tenant_id"], note))
                    log = dict(cursor.fetchone())
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error inserting maintenance log: {e.message}",
                extra={"action": "addMaintenanceLog", "item_id": item_id}
            )
            raise

        revalidate_path("/")
        return log
