from datetime import date

import pytest

from stockroom.config import settings
from stockroom.core.crew_service import CrewService, validate_crew_member
from stockroom.core.exceptions import ConflictException, NotFoundException, ValidationException
from stockroom.core.page_cache import page_cache

TENANT_ID = settings.DEFAULT_TENANT_ID


class TestValidation:
    def test_name_required(self):
        with pytest.raises(ValidationException) as exc:
            validate_crew_member("  ", None, "Own Crew")
        assert exc.value.message == "Name is required"

    def test_role_must_be_known(self):
        with pytest.raises(ValidationException) as exc:
            validate_crew_member("Sam", None, "Contractor")
        assert exc.value.message == "Role must be either Own Crew or Freelancer"

    def test_email_format(self):
        with pytest.raises(ValidationException) as exc:
            validate_crew_member("Sam", "sam@example", "Freelancer")
        assert exc.value.message == "Invalid email format"

    def test_blank_email_is_none(self):
        assert validate_crew_member(" Sam ", "  ", "Freelancer") == {
            "name": "Sam", "email": None, "role": "Freelancer"
        }


class TestRoster:
    def test_missing_table_yields_empty_roster(self, fake_db, admin_context):
        fake_db.fail(pgcode="42P01")
        assert CrewService.get_crew_members(admin_context) == []

    def test_other_errors_yield_empty_roster(self, fake_db, admin_context):
        fake_db.fail()
        assert CrewService.get_crew_members(admin_context) == []

    def test_roster_is_cached(self, fake_db, admin_context):
        fake_db.add([{"id": "c1", "name": "Sam"}])
        assert CrewService.get_crew_members(admin_context) == [{"id": "c1", "name": "Sam"}]
        assert CrewService.get_crew_members(admin_context) == [{"id": "c1", "name": "Sam"}]
        assert len(fake_db.executed) == 1


class TestSave:
    def test_duplicate_email(self, fake_db, admin_context):
        fake_db.fail(pgcode="23505")
        with pytest.raises(ConflictException) as exc:
            CrewService.create_crew_member(admin_context, "Sam", "Own Crew", email="sam@example.com")
        assert exc.value.message == "A crew member with this email already exists"

    def test_create(self, fake_db, admin_context):
        page_cache.set(TENANT_ID, "/crew", [])
        fake_db.add([{"id": "c1", "name": "Sam"}])

        CrewService.create_crew_member(admin_context, "Sam", "Own Crew", contact=" 555-0100 ")

        assert fake_db.executed[0][1] == ("Sam", None, "555-0100", "Own Crew", TENANT_ID)
        assert page_cache.get(TENANT_ID, "/crew") is None

    def test_update_missing(self, fake_db, admin_context):
        fake_db.add([])
        with pytest.raises(NotFoundException):
            CrewService.update_crew_member(admin_context, "c1", "Sam", "Own Crew")


class TestLeave:
    def test_dates_required(self, fake_db, admin_context):
        with pytest.raises(ValidationException):
            CrewService.update_crew_leave_status(admin_context, "c1", True, date(2026, 8, 1), None)

    def test_end_before_start(self, fake_db, admin_context):
        with pytest.raises(ValidationException):
            CrewService.update_crew_leave_status(admin_context, "c1", True, date(2026, 8, 3), date(2026, 8, 1))

    def test_on_leave(self, fake_db, admin_context):
        page_cache.set(TENANT_ID, "/events", [])
        fake_db.add([{"id": "c1", "on_leave": True}])

        CrewService.update_crew_leave_status(
            admin_context, "c1", True, date(2026, 8, 1), date(2026, 8, 1), " Holiday "
        )

        params = fake_db.executed[0][1]
        assert params[:4] == (True, date(2026, 8, 1), date(2026, 8, 1), "Holiday")
        assert page_cache.get(TENANT_ID, "/events") is None

    def test_off_leave_clears_fields(self, fake_db, admin_context):
        fake_db.add([{"id": "c1", "on_leave": False}])

        CrewService.update_crew_leave_status(
            admin_context, "c1", False, date(2026, 8, 1), date(2026, 8, 5), "Holiday"
        )

        assert fake_db.executed[0][1][:4] == (False, None, None, None)


def test_delete_missing_member(fake_db, admin_context):
    fake_db.add(rowcount=0)
    with pytest.raises(NotFoundException):
        CrewService.delete_crew_member(admin_context, "c1")
