"""Integration tests for user management and bootstrap."""

import pytest

from modelvault.errors import NotFoundError, OperationError, PermissionDeniedError
from modelvault.kernel.identity.password import PasswordHasher
from modelvault.kernel.models import Organization, User
from modelvault.schemas.user import UserCreate, UserUpdate


def _new_user(username: str = "carol", **kwargs) -> UserCreate:
    return UserCreate(username=username, password="Secret1234", **kwargs)


class TestCreateUser:

    async def test_admin_creates_local_user(self, user_service, admin):
        user = await user_service.create_user(admin, _new_user(email="carol@example.com"))

        assert user.username == "carol"
        assert user.created_by == "root"
        assert user.password_hash != "Secret1234"
        assert user_service.hasher.verify("Secret1234", user.password_hash)

    async def test_non_admin_denied(self, user_service, alice):
        with pytest.raises(PermissionDeniedError):
            await user_service.create_user(alice, _new_user())

    async def test_duplicate_username(self, user_service, admin, alice):
        with pytest.raises(OperationError, match="already exists"):
            await user_service.create_user(admin, _new_user("alice"))

    async def test_joins_default_org(self, user_service, db_session, admin, settings):
        await user_service.ensure_defaults()

        await user_service.create_user(admin, _new_user())

        org = await db_session.get(Organization, settings.default_org_id)
        assert org.permissions["carol"] == ["read", "write"]

    async def test_missing_default_org_is_tolerated(self, user_service, admin):
        user = await user_service.create_user(admin, _new_user())

        assert user.username == "carol"

    async def test_external_user_has_no_password(self, user_service, admin):
        user = await user_service.create_user(
            admin, UserCreate(username="ldapuser", provider="ldap")
        )

        assert user.is_external
        assert user.password_hash is None
        assert await user_service.authenticate("ldapuser", "anything") is None


class TestAuthenticate:

    async def test_valid_credentials(self, user_service, alice):
        user = await user_service.authenticate("alice", "TestPassword123")

        assert user is not None
        assert user.username == "alice"

    async def test_wrong_password(self, user_service, alice):
        assert await user_service.authenticate("alice", "wrong") is None

    async def test_unknown_user(self, user_service):
        assert await user_service.authenticate("nobody", "TestPassword123") is None

    async def test_archived_user_cannot_login(self, user_service, admin, alice):
        await user_service.archive_user(admin, "alice")

        assert await user_service.authenticate("alice", "TestPassword123") is None

    async def test_weaker_hash_upgraded_on_login(self, user_service, db_session):
        db_session.add(User(username="legacy", password_hash=PasswordHasher(rounds=5).hash("OldPass123")))
        await db_session.commit()

        user = await user_service.authenticate("legacy", "OldPass123")

        assert user.password_hash.startswith("$2b$04$")
        assert await user_service.authenticate("legacy", "OldPass123") is not None


class TestArchiveAndUpdate:

    async def test_cannot_archive_self(self, user_service, admin):
        with pytest.raises(OperationError, match="themselves"):
            await user_service.archive_user(admin, "root")

    async def test_archived_user_hidden(self, user_service, admin, alice):
        await user_service.archive_user(admin, "alice")

        with pytest.raises(NotFoundError):
            await user_service.get_user("alice")
        assert (await user_service.get_user("alice", include_archived=True)).archived
        assert [u.username for u in await user_service.find_users()] == ["root"]

    async def test_self_update(self, user_service, alice):
        user = await user_service.update_user(alice, "alice", UserUpdate(fname="Alice"))

        assert user.fname == "Alice"
        assert user.last_modified_by == "alice"

    async def test_cannot_update_others(self, user_service, alice, bob):
        with pytest.raises(PermissionDeniedError):
            await user_service.update_user(alice, "bob", UserUpdate(fname="Bobby"))


class TestBootstrap:

    async def test_creates_default_org_and_admin(self, user_service, db_session, settings):
        await user_service.ensure_defaults()

        admin = await db_session.get(User, settings.default_admin_username)
        assert admin.is_global_admin
        assert await user_service.authenticate(
            settings.default_admin_username, settings.default_admin_password
        ) is not None
        assert await db_session.get(Organization, settings.default_org_id) is not None

    async def test_idempotent(self, user_service, db_session):
        await user_service.ensure_defaults()
        await user_service.ensure_defaults()

        assert [u.username for u in await user_service.find_users()] == ["admin"]

    async def test_existing_admin_skips_default_admin(self, user_service, admin):
        await user_service.ensure_defaults()

        assert [u.username for u in await user_service.find_users()] == ["root"]

    async def test_name_clash_with_regular_user(self, user_service, db_session, settings):
        db_session.add(User(username=settings.default_admin_username, is_global_admin=False))
        await db_session.commit()

        with pytest.raises(OperationError, match="not a global admin"):
            await user_service.ensure_defaults()
