from datetime import date
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from stockroom.config import settings
from stockroom.core.exceptions import DatabaseException, NotFoundException, ValidationException
from stockroom.core.page_cache import page_cache
from stockroom.core.quote_service import (
    QuoteService,
    availability_breakdown,
    build_quote_workbook,
    calculate_buffer_quantity,
    calculate_quote_risk,
    date_ranges_overlap,
    quote_export_filename,
    rental_days,
)

TENANT_ID = settings.DEFAULT_TENANT_ID


class TestBuffer:
    def test_serialized_spare_when_few_units(self):
        assert calculate_buffer_quantity(True, 4, 2) == 1
        assert calculate_buffer_quantity(True, 5, 2) == 0

    @pytest.mark.parametrize("requested, expected", [(1, 1), (5, 1), (9, 2), (10, 1), (25, 3)])
    def test_stocked_percentage_rounds_up(self, requested, expected):
        assert calculate_buffer_quantity(False, 100, requested) == expected


class TestRisk:
    def line(self, quantity=2, serialized=False):
        return {"item_id": "i1", "quantity": quantity, "item_is_serialized": serialized}

    def test_green_when_buffer_covered(self):
        assert calculate_quote_risk([self.line()], {"i1": {"available": 10, "total": 10}}) == "green"

    def test_yellow_when_buffer_short(self):
        assert calculate_quote_risk([self.line()], {"i1": {"available": 2, "total": 10}}) == "yellow"

    def test_red_when_short(self):
        assert calculate_quote_risk([self.line()], {"i1": {"available": 1, "total": 10}}) == "red"

    def test_red_without_availability(self):
        assert calculate_quote_risk([self.line()], {}) == "red"

    def test_effective_availability_wins(self):
        breakdown = {"available": 10, "total": 10, "effective_available": 1}
        assert calculate_quote_risk([self.line()], {"i1": breakdown}) == "red"

    def test_empty_quote_is_green(self):
        assert calculate_quote_risk([], {}) == "green"


def test_date_overlap_is_inclusive():
    assert date_ranges_overlap("2026-07-01", "2026-07-05", "2026-07-05", "2026-07-08")
    assert not date_ranges_overlap("2026-07-01", "2026-07-04", "2026-07-05", "2026-07-08")
    assert date_ranges_overlap(date(2026, 7, 2), date(2026, 7, 3), "2026-07-01T00:00:00", "2026-07-10")


class TestBreakdown:
    def test_serialized(self):
        breakdown = availability_breakdown(True, ["available", "out", "maintenance", "available"], None, 3, 1)
        assert breakdown == {
            "available": 2,
            "reserved": 3,
            "in_transit": 1,
            "out_of_service": 1,
            "total": 4,
            "reserved_in_overlapping_events": 1,
            "effective_available": 2,
        }

    def test_stocked_effective_never_negative(self):
        breakdown = availability_breakdown(False, None, {"total_quantity": 10, "out_of_service_quantity": 3}, 0, 9)
        assert breakdown["available"] == 7
        assert breakdown["effective_available"] == 0

    def test_without_quote_context(self):
        breakdown = availability_breakdown(False, None, None, 0)
        assert breakdown["total"] == 0
        assert "effective_available" not in breakdown


def test_export_filename():
    assert quote_export_filename("Stage & Lights", date(2026, 7, 1)) == "Quote_Stage___Lights_07-01-2026.xlsx"


def test_rental_days():
    assert rental_days("2026-07-01", "2026-07-04") == 3


def test_workbook_lines_and_total():
    quote = {
        "name": "Stage",
        "start_date": date(2026, 7, 1),
        "end_date": date(2026, 7, 4),
        "status": "draft",
        "items": [
            {"item_name": "Mic", "quantity": 2, "unit_price_snapshot": 10.0},
            {"item_name": None, "quantity": 1, "unit_price_snapshot": 5.5},
        ],
    }

    sheet = load_workbook(build_quote_workbook(quote)).active
    rows = [list(row) for row in sheet.iter_rows(values_only=True)]

    header_index = next(i for i, row in enumerate(rows) if row[0] == "Item")
    assert rows[header_index] == ["Item", "Qty", "Unit Price", "Days", "Subtotal"]
    assert rows[header_index + 1] == ["Mic", 2, 10, 3, 60]
    assert rows[header_index + 2] == ["Item", 1, 5.5, 3, 16.5]
    assert rows[-1][0] == "Total"
    assert rows[-1][4] == 76.5
    assert ["Duration", "3 days", None, None, None] in rows


class TestQuoteItems:
    def queue_quote_and_item(self, fake_db, total=3, out_of_service=1):
        fake_db.add([{"id": "q1"}])
        fake_db.add([{"id": "i1", "price": Decimal("10.00"), "is_serialized": False}])
        fake_db.add([{"item_id": "i1", "total_quantity": total, "out_of_service_quantity": out_of_service}])

    @pytest.mark.parametrize("quantity", [0, -2, "3", None])
    def test_quantity_must_be_positive(self, fake_db, admin_context, quantity):
        with pytest.raises(ValidationException) as exc:
            QuoteService.add_quote_item(admin_context, "q1", "i1", quantity)
        assert exc.value.message == "Quantity must be greater than zero"

    def test_insufficient_availability(self, fake_db, admin_context):
        self.queue_quote_and_item(fake_db)

        with pytest.raises(ValidationException) as exc:
            QuoteService.add_quote_item(admin_context, "q1", "i1", 5)

        assert exc.value.message == "Insufficient availability. Only 2 available."
        assert fake_db.statements("INSERT") == []

    def test_adds_line_with_price_snapshot(self, fake_db, admin_context):
        self.queue_quote_and_item(fake_db, total=10, out_of_service=0)
        fake_db.add([{"id": "qi1", "quote_id": "q1", "item_id": "i1", "quantity": 2,
                      "unit_price_snapshot": Decimal("10.00")}])

        line = QuoteService.add_quote_item(admin_context, "q1", "i1", 2)

        assert line["unit_price_snapshot"] == 10.0
        assert fake_db.statements("INSERT INTO quote_items")[0][1] == ("q1", "i1", 2, Decimal("10.00"))

    def test_availability_failure_is_not_reported_as_shortage(self, fake_db, admin_context):
        fake_db.add([{"id": "q1"}])
        fake_db.add([{"id": "i1", "price": Decimal("10.00"), "is_serialized": False}])
        fake_db.fail()

        with pytest.raises(DatabaseException):
            QuoteService.add_quote_item(admin_context, "q1", "i1", 1)
        assert fake_db.statements("INSERT") == []

    def test_unknown_quote(self, fake_db, admin_context):
        fake_db.add([])
        with pytest.raises(NotFoundException):
            QuoteService.add_quote_item(admin_context, "q1", "i1", 1)

    def test_update_rechecks_availability(self, fake_db, admin_context):
        fake_db.add([{"quote_id": "q1", "id": "i1", "is_serialized": True}])
        fake_db.add([{"item_id": "i1", "status": "available"}, {"item_id": "i1", "status": "out"}])

        with pytest.raises(ValidationException) as exc:
            QuoteService.update_quote_item(admin_context, "qi1", 2)
        assert exc.value.message == "Insufficient availability. Only 1 available."


class TestQuotes:
    def test_create_requires_fields(self, fake_db, admin_context):
        with pytest.raises(ValidationException) as exc:
            QuoteService.create_quote(admin_context, "Stage", None, date(2026, 7, 4))
        assert exc.value.message == "Name, start date, and end date are required"

    def test_create_starts_as_draft(self, fake_db, admin_context):
        page_cache.set(TENANT_ID, "/quotes", [])
        fake_db.add([{"id": "q1", "name": "Stage", "start_date": date(2026, 7, 1),
                      "end_date": date(2026, 7, 4), "status": "draft", "created_at": None}])

        quote = QuoteService.create_quote(admin_context, " Stage ", date(2026, 7, 1), date(2026, 7, 4))

        assert quote["status"] == "draft"
        assert fake_db.executed[0][1] == ("Stage", date(2026, 7, 1), date(2026, 7, 4), TENANT_ID)
        assert page_cache.get(TENANT_ID, "/quotes") is None

    def test_malformed_id_is_not_found(self, fake_db, admin_context):
        fake_db.fail(pgcode="22P02")
        with pytest.raises(NotFoundException):
            QuoteService.get_quote_with_items(admin_context, "not-a-uuid")

    def test_items_failure_yields_empty_lines(self, fake_db, admin_context):
        fake_db.add([{"id": "q1", "name": "Stage", "start_date": date(2026, 7, 1),
                      "end_date": date(2026, 7, 4), "status": "draft", "created_at": None}])
        fake_db.fail()

        assert QuoteService.get_quote_with_items(admin_context, "q1")["items"] == []
        assert fake_db.statements("ROLLBACK TO SAVEPOINT quote_items")

    def test_delete_missing_quote(self, fake_db, admin_context):
        fake_db.add(rowcount=0)
        fake_db.add(rowcount=0)
        with pytest.raises(NotFoundException):
            QuoteService.delete_quote(admin_context, "q1")

    def test_invalid_status(self, fake_db, admin_context):
        with pytest.raises(ValidationException):
            QuoteService.update_quote_status(admin_context, "q1", "archived")

    def test_accepting_creates_confirmed_event(self, fake_db, admin_context):
        quote_row = {"id": "q1", "name": "Stage", "start_date": date(2026, 7, 1),
                     "end_date": date(2026, 7, 4), "status": "accepted", "created_at": None}
        fake_db.add([quote_row])
        fake_db.add([quote_row])
        fake_db.add([])
        fake_db.add([{"id": "e1", "name": "Stage", "status": "confirmed", "quote_id": "q1"}])
        fake_db.add([])
        fake_db.add(rowcount=2)

        result = QuoteService.update_quote_status(admin_context, "q1", "accepted")

        assert result["quote"]["status"] == "accepted"
        assert result["event"]["id"] == "e1"
        event_params = fake_db.statements("INSERT INTO events")[0][1]
        assert event_params[1] == "Event created from quote: Stage"
        assert event_params[5:] == ("q1", "confirmed", TENANT_ID)
        assert fake_db.statements("INSERT INTO event_inventory")[0][1] == ("e1", TENANT_ID, "q1")

    def test_accepting_keeps_status_when_event_fails(self, fake_db, admin_context):
        quote_row = {"id": "q1", "name": "Stage", "start_date": date(2026, 7, 1),
                     "end_date": date(2026, 7, 4), "status": "accepted", "created_at": None}
        fake_db.add([quote_row])
        fake_db.fail()

        result = QuoteService.update_quote_status(admin_context, "q1", "accepted")

        assert result["quote"]["status"] == "accepted"
        assert result["event"] is None
        assert fake_db.commits == 1


class TestAvailability:
    def test_overlapping_reservations(self, fake_db, admin_context):
        fake_db.add([
            {"quantity": 3, "start_date": date(2026, 7, 1), "end_date": date(2026, 7, 3)},
            {"quantity": 5, "start_date": date(2026, 7, 10), "end_date": date(2026, 7, 12)},
        ])

        reserved = QuoteService.get_reserved_quantity_from_overlapping_events(
            admin_context, "i1", "q-self", "2026-07-03", "2026-07-05"
        )

        assert reserved == 3
        assert fake_db.executed[0][1] == ("i1", "q-self")

    def test_breakdown_in_quote_context(self, fake_db, admin_context):
        fake_db.add([{"id": "i1", "is_serialized": False}])
        fake_db.add([{"reserved": 6}])
        fake_db.add([{"quantity": 4, "start_date": date(2026, 7, 2), "end_date": date(2026, 7, 2)}])
        fake_db.add([{"total_quantity": 10, "out_of_service_quantity": 1}])

        breakdown = QuoteService.get_item_availability_breakdown(
            admin_context, "i1", {"quote_id": "q1", "start_date": "2026-07-01", "end_date": "2026-07-04"}
        )

        assert breakdown["reserved"] == 6
        assert breakdown["reserved_in_overlapping_events"] == 4
        assert breakdown["effective_available"] == 5

    def test_unknown_item_breakdown_is_empty(self, fake_db, admin_context):
        fake_db.add([])
        assert QuoteService.get_item_availability_breakdown(admin_context, "i1")["total"] == 0

    def test_search_failure_returns_empty(self, fake_db, admin_context):
        fake_db.fail()
        assert QuoteService.search_inventory_items(admin_context, "mic") == []

    def test_search_without_context(self, fake_db, admin_context):
        fake_db.add([{"id": "i1", "name": "Mic", "price": None, "is_serialized": False}])
        fake_db.add([{"item_id": "i1", "total_quantity": 5, "out_of_service_quantity": 2}])

        results = QuoteService.search_inventory_items(admin_context, "MIC")

        assert results == [{"id": "i1", "name": "Mic", "price": 0.0, "is_serialized": False,
                            "available": 3, "total": 5}]
        assert fake_db.executed[0][1][1] == "%mic%"


class TestRefreshPrices:
    def test_counts_distinct_quotes(self, fake_db, admin_context):
        page_cache.set(TENANT_ID, "/quotes", [])
        fake_db.add([{"quote_id": "q1"}, {"quote_id": "q1"}, {"quote_id": "q2"}])

        assert QuoteService.refresh_quote_item_prices(admin_context, "i1") == 2
        assert page_cache.get(TENANT_ID, "/quotes") is None

    def test_failure_is_swallowed(self, fake_db, admin_context):
        fake_db.fail()
        assert QuoteService.refresh_quote_item_prices(admin_context, "i1") == 0


def test_risk_report(fake_db, admin_context):
    fake_db.add([{"id": "q1", "name": "Stage", "start_date": date(2026, 7, 1),
                  "end_date": date(2026, 7, 4), "status": "draft", "created_at": None}])
    fake_db.add([{"id": "qi1", "quote_id": "q1", "item_id": "i1", "quantity": 2,
                  "unit_price_snapshot": Decimal("10"), "item_name": "Mic",
                  "item_price": Decimal("10"), "item_is_serialized": True}])
    fake_db.add([{"id": "i1", "is_serialized": True}])
    fake_db.add([{"reserved": 3}])
    fake_db.add([{"quantity": 1, "start_date": date(2026, 7, 2), "end_date": date(2026, 7, 3)}])
    fake_db.add([{"status": "available"}, {"status": "available"}, {"status": "out"}])

    report = QuoteService.get_quote_risk(admin_context, "q1")

    assert report["risk"] == "yellow"
    line = report["items"][0]
    assert line["buffer"] == 1
    assert line["availability"]["effective_available"] == 2


def test_simple_availability(fake_db, admin_context):
    fake_db.add([{"id": "i1", "is_serialized": False}])
    fake_db.add([{"item_id": "i1", "total_quantity": 6, "out_of_service_quantity": 2}])

    assert QuoteService.get_item_availability(admin_context, "i1") == {"available": 4, "total": 6}


def test_simple_availability_unknown_item(fake_db, admin_context):
    fake_db.add([])
    assert QuoteService.get_item_availability(admin_context, "i1") == {"available": 0, "total": 0}


def test_reserved_quantity(fake_db, admin_context):
    fake_db.add([{"reserved": 7}])
    assert QuoteService.get_reserved_quantity(admin_context, "i1") == 7


def test_reserved_quantity_failure(fake_db, admin_context):
    fake_db.fail()
    assert QuoteService.get_reserved_quantity(admin_context, "i1") == 0
