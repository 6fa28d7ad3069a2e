import asyncio
import time

import jwt
import pytest

from stockroom.config import settings
from stockroom.core.auth_service import (
    AuthService,
    default_display_name,
    role_from_record,
    tenant_from_record,
)
from stockroom.core.exceptions import (
    AuthenticationException,
    AuthorizationException,
    ValidationException,
)
from stockroom.core.security import JWTHandler, verify_access_token

TENANT_ID = settings.DEFAULT_TENANT_ID


def identity(email="Jane@Example.com", metadata=None):
    return {"user_id": "auth-1", "email": email, "user_metadata": metadata or {}, "claims": None}


class TestRoleAndTenant:
    def test_only_exact_admin_grants_admin(self):
        assert role_from_record({"role": "admin"}, None) == "admin"
        assert role_from_record({"role": "Admin"}, None) == "user"
        assert role_from_record({"role": None}, {"role": "admin"}) == "user"

    def test_metadata_role_used_without_row(self):
        assert role_from_record(None, {"role": "admin"}) == "admin"
        assert role_from_record(None, {"role": "superuser"}) == "user"
        assert role_from_record(None, None) == "user"

    def test_tenant_fallbacks(self):
        assert tenant_from_record({"tenant_id": "t-row"}, {"tenant_id": "t-meta"}) == "t-row"
        assert tenant_from_record(None, {"tenant_id": "t-meta"}) == "t-meta"
        assert tenant_from_record(None, {}) == settings.DEFAULT_TENANT_ID

    def test_display_name(self):
        assert default_display_name(identity(), "  Given ") == "Given"
        assert default_display_name(identity(metadata={"name": "Meta"})) == "Meta"
        assert default_display_name(identity()) == "Jane"
        assert default_display_name({"email": None}) == "User"


class TestResolveUserContext:
    def test_no_identity(self, fake_db):
        assert AuthService.resolve_user_context(None) is None
        assert fake_db.executed == []

    def test_lookup_is_case_insensitive(self, fake_db):
        fake_db.add([{"id": "row-1", "email": "jane@example.com", "name": "Jane",
                      "role": "admin", "tenant_id": "tenant-2"}])

        context = AuthService.resolve_user_context(identity())

        assert fake_db.executed[0][1] == ("jane@example.com",)
        assert context["role"] == "admin"
        assert context["tenant_id"] == "tenant-2"
        assert context["user_record_id"] == "row-1"
        assert AuthService.is_admin(context)

    def test_missing_row_falls_back_to_metadata(self, fake_db):
        fake_db.add([])
        context = AuthService.resolve_user_context(identity(metadata={"role": "admin", "tenant_id": "t-meta"}))
        assert context["role"] == "admin"
        assert context["tenant_id"] == "t-meta"

    def test_database_error_does_not_block(self, fake_db):
        fake_db.fail()
        context = AuthService.resolve_user_context(identity())
        assert context["role"] == "user"
        assert context["tenant_id"] == TENANT_ID

    def test_no_email_is_plain_user(self, fake_db):
        context = AuthService.resolve_user_context(identity(email=None, metadata={"role": "admin"}))
        assert context["role"] == "user"
        assert fake_db.executed == []


class TestGuards:
    def test_require_auth_and_admin(self, admin_context, user_context):
        with pytest.raises(AuthenticationException):
            AuthService.require_auth(None)
        with pytest.raises(AuthorizationException) as exc:
            AuthService.require_admin(user_context)
        assert exc.value.message == "Unauthorized: Admin access required"
        AuthService.require_admin(admin_context)

    def test_write_permissions(self, admin_context, user_context):
        assert AuthService.can_write_inventory(admin_context)
        assert not AuthService.can_write_inventory(user_context)
        assert not AuthService.can_write_crew(user_context)
        assert AuthService.can_write_events(user_context)


class TestSyncUserRecord:
    def test_requires_identity(self, fake_db):
        with pytest.raises(AuthenticationException):
            AuthService.sync_user_record(None)

    def test_requires_email(self, fake_db):
        with pytest.raises(ValidationException) as exc:
            AuthService.sync_user_record(identity(email=None))
        assert exc.value.message == "User email not found"

    def test_email_mismatch(self, fake_db):
        with pytest.raises(ValidationException) as exc:
            AuthService.sync_user_record(identity(email="a@example.com"), email="b@example.com")
        assert exc.value.message == "Email mismatch"

    def test_existing_user(self, fake_db):
        fake_db.add([{"id": "row-1", "email": "jane@example.com", "name": "Jane", "role": "user", "tenant_id": TENANT_ID}])
        result = AuthService.sync_user_record(identity())
        assert result["created"] is False
        assert result["message"] == "User already exists"

    def test_creates_user_in_default_tenant(self, fake_db):
        fake_db.add([])
        fake_db.add([{"id": "row-9", "tenant_id": TENANT_ID, "email": "Jane@Example.com",
                      "name": "Jane", "role": "user", "created_at": None, "updated_at": None}])

        result = AuthService.sync_user_record(identity())

        assert result["created"] is True
        insert_params = fake_db.statements("INSERT INTO users")[0][1]
        assert insert_params == (settings.DEFAULT_TENANT_ID, "Jane@Example.com", "Jane", "user")


class TestTokens:
    def _token(self, secret, **overrides):
        payload = {
            "sub": "auth-1",
            "email": "jane@example.com",
            "aud": "authenticated",
            "exp": int(time.time()) + 60,
            "user_metadata": {"name": "Jane"},
        }
        payload.update(overrides)
        return jwt.encode(payload, secret, algorithm="HS256")

    def test_local_verification(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", "test-secret")
        result = asyncio.run(verify_access_token(self._token("test-secret")))
        assert result["user_id"] == "auth-1"
        assert result["email"] == "jane@example.com"
        assert result["user_metadata"] == {"name": "Jane"}

    def test_expired_token(self):
        token = self._token("test-secret", exp=int(time.time()) - 60)
        with pytest.raises(AuthenticationException) as exc:
            JWTHandler.verify_token(token, secret="test-secret")
        assert exc.value.message == "Token has expired"

    def test_wrong_secret(self):
        with pytest.raises(AuthenticationException) as exc:
            JWTHandler.verify_token(self._token("other"), secret="test-secret")
        assert exc.value.message == "Invalid token"

    def test_remote_verification(self, monkeypatch):
        monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", None)

        class ProviderStub:
            async def get_user(self, token):
                return {"id": "auth-7", "email": "remote@example.com", "user_metadata": {"tenant_id": "t-9"}}

        result = asyncio.run(verify_access_token(self._token("unknown"), client=ProviderStub()))
        assert result["user_id"] == "auth-7"
        assert result["email"] == "remote@example.com"
        assert result["user_metadata"] == {"tenant_id": "t-9"}


def test_role_and_tenant_shortcuts(fake_db):
    assert AuthService.get_current_user_role(None) == "user"
    assert AuthService.get_current_tenant_id(None) is None

    fake_db.add([{"id": "row-1", "email": "jane@example.com", "name": "Jane", "role": "admin", "tenant_id": "t-5"}])
    assert AuthService.get_current_user_role(identity()) == "admin"
    fake_db.add([{"id": "row-1", "email": "jane@example.com", "name": "Jane", "role": "admin", "tenant_id": "t-5"}])
    assert AuthService.get_current_tenant_id(identity()) == "t-5"
