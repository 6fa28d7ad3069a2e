from datetime import date
from decimal import Decimal

import pytest

from stockroom.config import settings
from stockroom.core.event_service import EventService, validate_event_fields
from stockroom.core.exceptions import NotFoundException, ValidationException
from stockroom.core.page_cache import page_cache

TENANT_ID = settings.DEFAULT_TENANT_ID

START = date(2026, 8, 1)
END = date(2026, 8, 3)


def event_row(**overrides):
    row = {"id": "e1", "name": "Gala", "description": None, "start_date": START, "end_date": END,
           "location": None, "status": "draft", "quote_id": None, "created_at": None, "updated_at": None}
    row.update(overrides)
    return row


class TestValidation:
    def test_requires_fields(self):
        with pytest.raises(ValidationException) as exc:
            validate_event_fields(" ", START, END)
        assert exc.value.message == "Name, start date, and end date are required"

    def test_end_before_start(self):
        with pytest.raises(ValidationException) as exc:
            validate_event_fields("Gala", END, START)
        assert exc.value.message == "End date must be after start date"

    def test_single_day_event(self):
        assert validate_event_fields(" Gala ", START, START) == "Gala"


class TestCreateEvent:
    def test_defaults_to_draft(self, fake_db, admin_context):
        page_cache.set(TENANT_ID, "/events", [])
        fake_db.add([event_row()])

        EventService.create_event(admin_context, "Gala", START, END, description="  ", location="Hall A")

        params = fake_db.executed[0][1]
        assert params == ("Gala", None, START, END, "Hall A", None, "draft", TENANT_ID)
        assert page_cache.get(TENANT_ID, "/events") is None

    def test_from_quote_defaults_to_confirmed(self, fake_db, admin_context):
        fake_db.add([event_row(status="confirmed", quote_id="q1")])
        fake_db.add([{"id": "existing-line"}])

        event = EventService.create_event(admin_context, "Gala", START, END, quote_id="q1")

        assert event["status"] == "confirmed"
        assert fake_db.statements("INSERT INTO events")[0][1][6] == "confirmed"
        assert fake_db.statements("INSERT INTO event_inventory") == []

    def test_copy_failure_keeps_event(self, fake_db, admin_context):
        fake_db.add([event_row(quote_id="q1")])
        fake_db.fail()

        event = EventService.create_event(admin_context, "Gala", START, END, quote_id="q1")

        assert event["id"] == "e1"
        assert len(fake_db.statements("ROLLBACK TO SAVEPOINT copy_quote_items")) == 1
        assert fake_db.commits == 1

    def test_rejects_unknown_status(self, fake_db, admin_context):
        with pytest.raises(ValidationException):
            EventService.create_event(admin_context, "Gala", START, END, status="postponed")
        assert fake_db.executed == []


class TestUpdateEvent:
    def test_unknown_status_is_ignored(self, fake_db, admin_context):
        fake_db.add([event_row()])

        EventService.update_event(admin_context, "e1", "Gala", START, END, status="postponed")

        statement, params = fake_db.executed[0]
        assert "status = %s" not in statement
        assert params[-2:] == ("e1", TENANT_ID)

    def test_known_status_is_applied(self, fake_db, admin_context):
        page_cache.set(TENANT_ID, "/events/e1", {})
        fake_db.add([event_row(status="completed")])

        EventService.update_event(admin_context, "e1", "Gala", START, END, status="completed")

        statement, params = fake_db.executed[0]
        assert "status = %s" in statement
        assert params[6] == "completed"
        assert page_cache.get(TENANT_ID, "/events/e1") is None

    def test_missing_event(self, fake_db, admin_context):
        fake_db.add([])
        with pytest.raises(NotFoundException):
            EventService.update_event(admin_context, "e1", "Gala", START, END)


class TestEventDetails:
    def test_missing_event(self, fake_db, admin_context):
        fake_db.add([])
        with pytest.raises(NotFoundException):
            EventService.get_event_with_details(admin_context, "e1")

    def test_copies_quote_lines_on_first_view(self, fake_db, admin_context):
        fake_db.add([event_row(quote_id="q1")])
        fake_db.add([])
        fake_db.add([])
        fake_db.add(rowcount=1)
        fake_db.add([{"id": "ei1", "event_id": "e1", "item_id": "i1", "quantity": 2,
                      "unit_price_snapshot": Decimal("4.50"), "notes": None, "item_name": "Mic"}])
        fake_db.add([{"id": "c1", "crew_member_name": "Sam"}])
        fake_db.add([])

        details = EventService.get_event_with_details(admin_context, "e1")

        assert details["inventory"][0]["unit_price_snapshot"] == 4.5
        assert details["crew"][0]["crew_member_name"] == "Sam"
        assert details["tasks"] == []
        assert fake_db.statements("INSERT INTO event_inventory")[0][1] == ("e1", TENANT_ID, "q1")

    def test_tasks_sorted_with_unscheduled_last(self, fake_db, admin_context):
        fake_db.add([event_row()])
        fake_db.add([])
        fake_db.add([])
        fake_db.add([])

        EventService.get_event_with_details(admin_context, "e1")

        assert "ORDER BY due_time ASC NULLS LAST" in fake_db.statements("FROM event_tasks")[0][0]


class TestEventFromQuote:
    def test_unknown_quote(self, fake_db, admin_context):
        fake_db.add([])
        with pytest.raises(NotFoundException):
            EventService.create_event_for_accepted_quote(admin_context, "q1")

    def test_quote_must_be_accepted(self, fake_db, admin_context):
        fake_db.add([{"id": "q1", "name": "Stage", "start_date": START, "end_date": END, "status": "sent"}])
        with pytest.raises(ValidationException) as exc:
            EventService.create_event_for_accepted_quote(admin_context, "q1")
        assert exc.value.message == "Only accepted quotes can be converted to events"

    def test_existing_event_is_returned(self, fake_db, admin_context):
        fake_db.add([{"id": "q1", "name": "Stage", "start_date": START, "end_date": END, "status": "accepted"}])
        fake_db.add([event_row(id="e7", quote_id="q1", status="confirmed")])

        event = EventService.create_event_for_accepted_quote(admin_context, "q1")

        assert event["id"] == "e7"
        assert fake_db.statements("INSERT") == []


def test_delete_missing_event(fake_db, admin_context):
    fake_db.add(rowcount=0)
    with pytest.raises(NotFoundException):
        EventService.delete_event(admin_context, "e1")


def test_copy_quote_items_skips_stocked_event(fake_db, admin_context):
    fake_db.add([{"id": "ei1"}])

    assert EventService.copy_quote_items_to_event(admin_context, "e1", "q1") is True
    assert fake_db.statements("INSERT") == []


def test_copy_quote_items_reports_failure(fake_db, admin_context):
    fake_db.add([])
    fake_db.fail()

    assert EventService.copy_quote_items_to_event(admin_context, "e1", "q1") is False
    assert fake_db.commits == 1
