"""
Quote Service.
Quote CRUD, date-aware availability planning, risk scoring and XLSX export.
"""

import logging
import math
import re
from datetime import date, datetime
from io import BytesIO
from typing import Dict, Any, List, Optional, Tuple, Union
from psycopg2.extras import RealDictCursor
from openpyxl import Workbook
from openpyxl.styles import Font

from stockroom.config import settings
from stockroom.core.database import get_db_manager
from stockroom.core.event_service import EventService
from stockroom.core.exceptions import (
    AppException,
    DatabaseException,
    NotFoundException,
    ValidationException,
    INVALID_TEXT_REPRESENTATION,
)
from stockroom.core.inventory_service import fetch_availability
from stockroom.core.page_cache import page_cache, revalidate_path

logger = logging.getLogger(__name__)

QUOTES_PAGE = "/quotes"
QUOTE_STATUSES = ("draft", "sent", "accepted", "rejected")

DateLike = Union[date, datetime, str]


def as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def date_ranges_overlap(start1: DateLike, end1: DateLike, start2: DateLike, end2: DateLike) -> bool:
    """Inclusive overlap: start1 <= end2 and start2 <= end1."""
    return as_date(start1) <= as_date(end2) and as_date(start2) <= as_date(end1)


def calculate_buffer_quantity(is_serialized: bool, total: int, requested_quantity: int) -> int:
    """
    Suggested safety margin on top of a requested quantity.

    Serialized items: one spare unit when fewer than 5 exist.
    Non-serialized items: 20% below 10 requested, 10% from 10 up, rounded up.
    """
    if is_serialized:
        return 1 if total < 5 else 0
    buffer_percent = 0.2 if requested_quantity < 10 else 0.1
    return math.ceil(requested_quantity * buffer_percent)


def calculate_quote_risk(
    items: List[Dict[str, Any]],
    availabilities: Dict[str, Dict[str, Any]]
) -> str:
    """
    Risk level of a quote.

    red: an item is missing availability data or cannot be covered
    yellow: every item is covered but some without the suggested buffer
    green: everything is covered including buffer
    """
    has_yellow = False

    for item in items:
        breakdown = availabilities.get(item["item_id"])
        if not breakdown:
            return "red"

        requested = item["quantity"]
        buffer = calculate_buffer_quantity(
            bool(item.get("item_is_serialized")),
            breakdown["total"],
            requested
        )
        available = breakdown.get("effective_available")
        if available is None:
            available = breakdown["available"]

        if available < requested:
            return "red"
        if available < requested + buffer:
            has_yellow = True

    return "yellow" if has_yellow else "green"


def availability_breakdown(
    is_serialized: bool,
    unit_statuses: Optional[List[str]],
    stock: Optional[Dict[str, Any]],
    reserved: int,
    reserved_overlapping: Optional[int] = None
) -> Dict[str, Any]:
    """
    Combine unit or stock data with reservations.

    reserved_overlapping is only given for a date-aware (quote context)
    breakdown; it adds effective_available and reserved_in_overlapping_events.
    """
    if is_serialized:
        statuses = unit_statuses or []
        total = len(statuses)
        available = statuses.count("available")
        in_transit = statuses.count("out")
        out_of_service = statuses.count("maintenance")
    elif stock:
        total = stock["total_quantity"]
        out_of_service = stock.get("out_of_service_quantity") or 0
        available = total - out_of_service
        in_transit = 0
    else:
        total = available = in_transit = out_of_service = 0

    breakdown = {
        "available": available,
        "reserved": reserved,
        "in_transit": in_transit,
        "out_of_service": out_of_service,
        "total": total,
    }
    if reserved_overlapping is not None:
        breakdown["reserved_in_overlapping_events"] = reserved_overlapping
        breakdown["effective_available"] = max(0, total - out_of_service - reserved_overlapping)
    return breakdown


def rental_days(start_date: DateLike, end_date: DateLike) -> int:
    return math.ceil((as_date(end_date) - as_date(start_date)).days)


def quote_export_filename(name: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"Quote_{re.sub(r'[^a-zA-Z0-9]', '_', name)}_{today:%m-%d-%Y}.xlsx"


def build_quote_workbook(quote: Dict[str, Any]) -> BytesIO:
    """Rental quote as a single-sheet workbook: one row per line plus the total."""
    days = rental_days(quote["start_date"], quote["end_date"])

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Quote"

    sheet.append(["Rental Quote", quote["name"]])
    sheet.append([
        "Rental Period",
        f"{as_date(quote['start_date']):%m/%d/%Y} - {as_date(quote['end_date']):%m/%d/%Y}"
    ])
    sheet.append(["Duration", f"{days} day{'' if days == 1 else 's'}"])
    sheet.append(["Status", str(quote.get("status", "")).capitalize()])
    sheet.append([])

    sheet.append(["Item", "Qty", "Unit Price", "Days", "Subtotal"])
    header_row = sheet.max_row
    for cell in sheet[header_row]:
        cell.font = Font(bold=True)

    total_amount = 0.0
    for item in quote.get("items", []):
        unit_price = float(item.get("unit_price_snapshot") or 0)
        subtotal = item["quantity"] * unit_price * days
        total_amount += subtotal
        sheet.append([item.get("item_name") or "Item", item["quantity"], unit_price, days, subtotal])

    sheet.append(["Total", None, None, None, total_amount])
    for cell in sheet[sheet.max_row]:
        cell.font = Font(bold=True)

    output = BytesIO()
    workbook.save(output)
    output.seek(0)
    return output


class QuoteService:
    """Quotes and their availability planning."""

    # ------------------------------------------------------------- quotes

    @staticmethod
    def get_quotes(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        return page_cache.get_or_load(
            context["tenant_id"],
            QUOTES_PAGE,
            lambda: QuoteService._load_quotes(context)
        )

    @staticmethod
    def _load_quotes(context: Dict[str, Any]) -> List[Dict[str, Any]]:
        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("""
                    SELECT id::text AS id, name, start_date, end_date, status, created_at
                    FROM quotes
                    WHERE tenant_id = %s
                    ORDER BY created_at DESC
                """, (context["tenant_id"],))
                return [dict(row) for row in cursor.fetchall()]
            finally:
                cursor.close()

    @staticmethod
    def get_quote_with_items(context: Dict[str, Any], quote_id: str) -> Dict[str, Any]:
        """
        Quote with its lines (oldest first) joined to item name, price and
        serialization.

        Raises:
            NotFoundException: Unknown quote or malformed id
        """
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        SELECT id::text AS id, name, start_date, end_date, status, created_at
                        FROM quotes
                        WHERE id = %s AND tenant_id = %s
                    """, (quote_id, context["tenant_id"]))
                    quote = cursor.fetchone()
                    if not quote:
                        raise NotFoundException("Quote", quote_id)
                    quote = dict(quote)

                    cursor.execute("SAVEPOINT quote_items")
                    try:
                        cursor.execute("""
                            SELECT qi.id::text AS id, qi.quote_id::text AS quote_id,
                                   qi.item_id::text AS item_id, qi.quantity, qi.unit_price_snapshot,
                                   i.name AS item_name, i.price AS item_price,
                                   i.is_serialized AS item_is_serialized
                            FROM quote_items qi
                            LEFT JOIN inventory_items i ON i.id = qi.item_id
                            WHERE qi.quote_id = %s
                            ORDER BY qi.created_at ASC
                        """, (quote_id,))
                        quote["items"] = [dict(row) for row in cursor.fetchall()]
                        cursor.execute("RELEASE SAVEPOINT quote_items")
                    except Exception as e:
                        cursor.execute("ROLLBACK TO SAVEPOINT quote_items")
                        logger.error(
                            f"Error fetching quote items: {str(e)}",
                            extra={"action": "getQuoteWithItems", "quote_id": quote_id}
                        )
                        quote["items"] = []
                finally:
                    cursor.close()
        except DatabaseException as e:
            if e.pgcode == INVALID_TEXT_REPRESENTATION:
                raise NotFoundException("Quote", quote_id)
            logger.error(f"Error fetching quote: {e.message}", extra={"action": "getQuoteWithItems", "quote_id": quote_id})
            raise

        for item in quote["items"]:
            item["unit_price_snapshot"] = float(item["unit_price_snapshot"] or 0)
            if item.get("item_price") is not None:
                item["item_price"] = float(item["item_price"])
        return quote

    @staticmethod
    def _require_quote_fields(name: Optional[str], start_date: Any, end_date: Any) -> str:
        name = (name or "").strip()
        if not name or not start_date or not end_date:
            raise ValidationException("Name, start date, and end date are required")
        return name

    @staticmethod
    def create_quote(context: Dict[str, Any], name: Optional[str], start_date: Any, end_date: Any) -> Dict[str, Any]:
        name = QuoteService._require_quote_fields(name, start_date, end_date)

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        INSERT INTO quotes (name, start_date, end_date, status, tenant_id)
                        VALUES (%s, %s, %s, 'draft', %s)
                        RETURNING id::text AS id, name, start_date, end_date, status, created_at
                    """, (name, start_date, end_date, context["tenant_id"]))
                    quote = dict(cursor.fetchone())
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error creating quote: {e.message}", extra={"action": "createQuote", "quote_name": name})
            raise

        revalidate_path(QUOTES_PAGE)
        return quote

    @staticmethod
    def update_quote(
        context: Dict[str, Any],
        quote_id: str,
        name: Optional[str],
        start_date: Any,
        end_date: Any
    ) -> Dict[str, Any]:
        name = QuoteService._require_quote_fields(name, start_date, end_date)

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        UPDATE quotes
                        SET name = %s, start_date = %s, end_date = %s
                        WHERE id = %s AND tenant_id = %s
                        RETURNING id::text AS id, name, start_date, end_date, status, created_at
                    """, (name, start_date, end_date, quote_id, context["tenant_id"]))
                    quote = cursor.fetchone()
                    if not quote:
                        raise NotFoundException("Quote", quote_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error updating quote: {e.message}", extra={"action": "updateQuote", "quote_id": quote_id})
            raise

        revalidate_path(QUOTES_PAGE, f"{QUOTES_PAGE}/{quote_id}")
        return dict(quote)

    @staticmethod
    def update_quote_status(context: Dict[str, Any], quote_id: str, new_status: Optional[str]) -> Dict[str, Any]:
        """
        Change a quote's status. Accepting a quote also creates its event.

        Returns:
            Dict with the updated quote and the event (None unless accepted)
        """
        if new_status not in QUOTE_STATUSES:
            raise ValidationException(
                f"Status must be one of: {', '.join(QUOTE_STATUSES)}",
                details={"status": new_status}
            )

        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("""
                    UPDATE quotes SET status = %s
                    WHERE id = %s AND tenant_id = %s
                    RETURNING id::text AS id, name, start_date, end_date, status, created_at
                """, (new_status, quote_id, context["tenant_id"]))
                quote = cursor.fetchone()
                if not quote:
                    raise NotFoundException("Quote", quote_id)
            finally:
                cursor.close()

        revalidate_path(QUOTES_PAGE, f"{QUOTES_PAGE}/{quote_id}")

        event = None
        if new_status == "accepted":
            try:
                event = EventService.create_event_for_accepted_quote(context, quote_id)
            except AppException as e:
                logger.error(
                    f"Error creating event for accepted quote: {e.message}",
                    extra={"action": "updateQuoteStatus", "quote_id": quote_id}
                )

        return {"quote": dict(quote), "event": event}

    @staticmethod
    def delete_quote(context: Dict[str, Any], quote_id: str) -> None:
        if not quote_id:
            raise ValidationException("Quote ID is required")

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute("DELETE FROM quote_items WHERE quote_id = %s", (quote_id,))
                    cursor.execute(
                        "DELETE FROM quotes WHERE id = %s AND tenant_id = %s",
                        (quote_id, context["tenant_id"])
                    )
                    if cursor.rowcount == 0:
                        raise NotFoundException("Quote", quote_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error deleting quote: {e.message}", extra={"action": "deleteQuote", "quote_id": quote_id})
            raise

        revalidate_path(QUOTES_PAGE, f"{QUOTES_PAGE}/{quote_id}")

    # -------------------------------------------------------- quote items

    @staticmethod
    def _validate_quantity(quantity: Any) -> None:
        if not isinstance(quantity, (int, float)) or isinstance(quantity, bool) or not quantity > 0:
            raise ValidationException("Quantity must be greater than zero")

    @staticmethod
    def _check_availability(cursor, item: Dict[str, Any], quantity: Any) -> None:
        availability = fetch_availability(cursor, [item]).get(item["id"], {"available": 0})
        if quantity > availability["available"]:
            raise ValidationException(
                f"Insufficient availability. Only {availability['available']} available.",
                details={"item_id": item["id"], "requested": quantity, "available": availability["available"]}
            )

    @staticmethod
    def add_quote_item(context: Dict[str, Any], quote_id: str, item_id: str, quantity: Any) -> Dict[str, Any]:
        """
        Add an item to a quote, snapshotting the item's current price.

        Raises:
            ValidationException: Bad quantity or not enough stock
            NotFoundException: Unknown quote or item
        """
        if not quote_id or not item_id:
            raise ValidationException("Quote ID and item ID are required")
        QuoteService._validate_quantity(quantity)

        tenant_id = context["tenant_id"]
        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute(
                    "SELECT id::text AS id FROM quotes WHERE id = %s AND tenant_id = %s",
                    (quote_id, tenant_id)
                )
                if not cursor.fetchone():
                    raise NotFoundException("Quote", quote_id)

                cursor.execute("""
                    SELECT id::text AS id, price, is_serialized
                    FROM inventory_items
                    WHERE id = %s AND tenant_id = %s
                """, (item_id, tenant_id))
                item = cursor.fetchone()
                if not item:
                    logger.error("Error fetching item", extra={"action": "addQuoteItem", "item_id": item_id})
                    raise NotFoundException("Item", item_id)

                QuoteService._check_availability(cursor, item, quantity)

                cursor.execute("""
                    INSERT INTO quote_items (quote_id, item_id, quantity, unit_price_snapshot)
                    VALUES (%s, %s, %s, %s)
                    RETURNING id::text AS id, quote_id::text AS quote_id, item_id::text AS item_id,
                              quantity, unit_price_snapshot
                """, (quote_id, item_id, quantity, item["price"]))
                quote_item = dict(cursor.fetchone())
            finally:
                cursor.close()

        quote_item["unit_price_snapshot"] = float(quote_item["unit_price_snapshot"] or 0)
        revalidate_path(QUOTES_PAGE, f"{QUOTES_PAGE}/{quote_id}")
        return quote_item

    @staticmethod
    def update_quote_item(context: Dict[str, Any], quote_item_id: str, quantity: Any) -> Dict[str, Any]:
        if not quote_item_id:
            raise ValidationException("Quote item ID is required")
        QuoteService._validate_quantity(quantity)

        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute("""
                    SELECT qi.quote_id::text AS quote_id, i.id::text AS id, i.is_serialized
                    FROM quote_items qi
                    JOIN inventory_items i ON i.id = qi.item_id
                    WHERE qi.id = %s
                """, (quote_item_id,))
                row = cursor.fetchone()
                if not row:
                    raise NotFoundException("Quote item", quote_item_id)

                QuoteService._check_availability(cursor, row, quantity)

                cursor.execute(
                    "UPDATE quote_items SET quantity = %s WHERE id = %s",
                    (quantity, quote_item_id)
                )
            finally:
                cursor.close()

        revalidate_path(QUOTES_PAGE, f"{QUOTES_PAGE}/{row['quote_id']}")
        return {"id": quote_item_id, "quote_id": row["quote_id"], "item_id": row["id"], "quantity": quantity}

    @staticmethod
    def delete_quote_item(context: Dict[str, Any], quote_item_id: str) -> None:
        if not quote_item_id:
            raise ValidationException("Quote item ID is required")

        db_manager = get_db_manager()
        with db_manager.get_connection(context.get("claims")) as conn:
            cursor = conn.cursor(cursor_factory=RealDictCursor)
            try:
                cursor.execute(
                    "DELETE FROM quote_items WHERE id = %s RETURNING quote_id::text AS quote_id",
                    (quote_item_id,)
                )
                deleted = cursor.fetchone()
            finally:
                cursor.close()

        if deleted:
            revalidate_path(QUOTES_PAGE, f"{QUOTES_PAGE}/{deleted['quote_id']}")
        else:
            revalidate_path(QUOTES_PAGE)

    # -------------------------------------------------------- availability

    @staticmethod
    def _fetch_item(cursor, item_id: str, tenant_id: str) -> Optional[Dict[str, Any]]:
        cursor.execute(
            "SELECT id::text AS id, is_serialized FROM inventory_items WHERE id = %s AND tenant_id = %s",
            (item_id, tenant_id)
        )
        return cursor.fetchone()

    @staticmethod
    def _reserved_quantity(cursor, item_id: str) -> int:
        cursor.execute(
            "SELECT COALESCE(SUM(quantity), 0) AS reserved FROM quote_items WHERE item_id = %s",
            (item_id,)
        )
        return int(cursor.fetchone()["reserved"])

    @staticmethod
    def _reserved_overlapping(cursor, item_id: str, exclude_quote_id: str, start_date: DateLike, end_date: DateLike) -> int:
        cursor.execute("""
            SELECT qi.quantity, q.start_date, q.end_date
            FROM quote_items qi
            JOIN quotes q ON q.id = qi.quote_id
            WHERE qi.item_id = %s AND qi.quote_id <> %s
        """, (item_id, exclude_quote_id))
        return sum(
            row["quantity"]
            for row in cursor.fetchall()
            if date_ranges_overlap(start_date, end_date, row["start_date"], row["end_date"])
        )

    @staticmethod
    def _breakdown(
        cursor,
        item: Dict[str, Any],
        quote_context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        reserved = QuoteService._reserved_quantity(cursor, item["id"])
        overlapping = None
        if quote_context:
            overlapping = QuoteService._reserved_overlapping(
                cursor,
                item["id"],
                quote_context["quote_id"],
                quote_context["start_date"],
                quote_context["end_date"]
            )

        unit_statuses = None
        stock = None
        if item["is_serialized"]:
            cursor.execute("SELECT status FROM inventory_units WHERE item_id = %s", (item["id"],))
            unit_statuses = [row["status"] for row in cursor.fetchall()]
        else:
            cursor.execute("""
                SELECT total_quantity, out_of_service_quantity
                FROM inventory_stock
                WHERE item_id = %s
                LIMIT 1
            """, (item["id"],))
            stock = cursor.fetchone()

        return availability_breakdown(item["is_serialized"], unit_statuses, stock, reserved, overlapping)

    @staticmethod
    def get_item_availability(context: Dict[str, Any], item_id: str) -> Dict[str, int]:
        """Simple availability ({available, total}); 0/0 for unknown items or on failure."""
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    item = QuoteService._fetch_item(cursor, item_id, context["tenant_id"])
                    if not item:
                        return {"available": 0, "total": 0}
                    return fetch_availability(cursor, [item]).get(item_id, {"available": 0, "total": 0})
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error fetching availability: {e.message}", extra={"action": "getItemAvailability", "item_id": item_id})
            return {"available": 0, "total": 0}

    @staticmethod
    def get_reserved_quantity(context: Dict[str, Any], item_id: str) -> int:
        """Total quantity of an item across all quote lines."""
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    return QuoteService._reserved_quantity(cursor, item_id)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error fetching reserved quantity: {e.message}", extra={"item_id": item_id})
            return 0

    @staticmethod
    def get_reserved_quantity_from_overlapping_events(
        context: Dict[str, Any],
        item_id: str,
        exclude_quote_id: str,
        start_date: DateLike,
        end_date: DateLike
    ) -> int:
        """Quantity of an item held by other quotes whose dates overlap the given range."""
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    return QuoteService._reserved_overlapping(cursor, item_id, exclude_quote_id, start_date, end_date)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(f"Error fetching overlapping reservations: {e.message}", extra={"item_id": item_id})
            return 0

    @staticmethod
    def get_item_availability_breakdown(
        context: Dict[str, Any],
        item_id: str,
        quote_context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        empty = availability_breakdown(False, None, None, 0)

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    item = QuoteService._fetch_item(cursor, item_id, context["tenant_id"])
                    if not item:
                        return empty
                    return QuoteService._breakdown(cursor, item, quote_context)
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error fetching availability breakdown: {e.message}",
                extra={"action": "getItemAvailabilityBreakdown", "item_id": item_id}
            )
            return empty

    @staticmethod
    def search_inventory_items(
        context: Dict[str, Any],
        query: Optional[str],
        quote_context: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Items to add to a quote. With a quote context, availability is the
        date-aware effective availability.
        """
        search_term = f"%{(query or '').lower()}%"

        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        SELECT id::text AS id, name, price, is_serialized
                        FROM inventory_items
                        WHERE active = TRUE AND tenant_id = %s AND name ILIKE %s
                        LIMIT %s
                    """, (context["tenant_id"], search_term, settings.SEARCH_RESULT_LIMIT))
                    items = [dict(row) for row in cursor.fetchall()]
                    if not items:
                        return []

                    results = []
                    if quote_context:
                        for item in items:
                            breakdown = QuoteService._breakdown(cursor, item, quote_context)
                            results.append({
                                **item,
                                "available": breakdown["effective_available"],
                                "total": breakdown["total"],
                                "effective_available": breakdown["effective_available"],
                                "reserved_in_overlapping_events": breakdown["reserved_in_overlapping_events"],
                            })
                    else:
                        availability = fetch_availability(cursor, items)
                        for item in items:
                            counts = availability.get(item["id"], {"available": 0, "total": 0})
                            results.append({**item, "available": counts["available"], "total": counts["total"]})
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error searching items: {e.message}",
                extra={"action": "searchInventoryItems", "query": query}
            )
            return []

        for result in results:
            result["price"] = float(result["price"] or 0)
        return results

    @staticmethod
    def get_quote_risk(context: Dict[str, Any], quote_id: str) -> Dict[str, Any]:
        """Date-aware risk for a stored quote, with each line's availability and buffer."""
        quote = QuoteService.get_quote_with_items(context, quote_id)
        quote_context = {
            "quote_id": quote_id,
            "start_date": quote["start_date"],
            "end_date": quote["end_date"],
        }

        availabilities: Dict[str, Dict[str, Any]] = {}
        for item in quote["items"]:
            if item["item_id"] not in availabilities:
                availabilities[item["item_id"]] = QuoteService.get_item_availability_breakdown(
                    context, item["item_id"], quote_context
                )

        lines = []
        for item in quote["items"]:
            breakdown = availabilities[item["item_id"]]
            lines.append({
                "quote_item_id": item["id"],
                "item_id": item["item_id"],
                "item_name": item.get("item_name"),
                "quantity": item["quantity"],
                "buffer": calculate_buffer_quantity(
                    bool(item.get("item_is_serialized")), breakdown["total"], item["quantity"]
                ),
                "availability": breakdown,
            })

        return {
            "quote_id": quote_id,
            "risk": calculate_quote_risk(quote["items"], availabilities),
            "items": lines,
        }

    @staticmethod
    def refresh_quote_item_prices(context: Dict[str, Any], item_id: str) -> int:
        """
        Copy an item's current price into its lines on draft quotes.

        Failures are logged; the item update that triggered this stands.
        """
        tenant_id = context["tenant_id"]
        db_manager = get_db_manager()
        try:
            with db_manager.get_connection(context.get("claims")) as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute("""
                        UPDATE quote_items qi
                        SET unit_price_snapshot = i.price
                        FROM inventory_items i, quotes q
                        WHERE qi.item_id = i.id
                          AND qi.quote_id = q.id
                          AND i.id = %s
                          AND i.tenant_id = %s
                          AND q.tenant_id = %s
                          AND q.status = 'draft'
                        RETURNING qi.quote_id::text AS quote_id
                    """, (item_id, tenant_id, tenant_id))
                    quote_ids = sorted({row["quote_id"] for row in cursor.fetchall()})
                finally:
                    cursor.close()
        except DatabaseException as e:
            logger.error(
                f"Error updating quote item prices: {e.message}",
                extra={"action": "refreshQuoteItemPrices", "item_id": item_id}
            )
            return 0

        revalidate_path(QUOTES_PAGE, *[f"{QUOTES_PAGE}/{quote_id}" for quote_id in quote_ids])
        return len(quote_ids)

    @staticmethod
    def export_quote(context: Dict[str, Any], quote_id: str, today: Optional[date] = None) -> Tuple[str, BytesIO]:
        """
        Returns:
            (filename, workbook bytes)
        """
        quote = QuoteService.get_quote_with_items(context, quote_id)
        logger.info(
            f"Exporting quote with {len(quote['items'])} items",
            extra={"action": "exportQuote", "quote_id": quote_id}
        )
        return quote_export_filename(quote["name"], today), build_quote_workbook(quote)
