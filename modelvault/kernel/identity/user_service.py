"""
User management and authentication.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.config import Settings, get_settings
from modelvault.errors import ModelVaultError, NotFoundError, OperationError, PermissionDeniedError
from modelvault.kernel.artifacts.metadata_store import storage_errors
from modelvault.kernel.events.event_store import EventStore
from modelvault.kernel.identifiers import compose
from modelvault.kernel.identity.password import PasswordHasher
from modelvault.kernel.models import EventType, LifecycleState, Organization, User
from modelvault.kernel.permissions import PermissionLevel, with_permission
from modelvault.logging_config import get_logger
from modelvault.schemas.user import UserCreate, UserUpdate

logger = get_logger(__name__)


class UserService:
    """
    Service for user identity operations.

    Users are archived, never deleted: their usernames stay referenced by
    artifact history and permission mappings.
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.hasher = PasswordHasher(self.settings.bcrypt_rounds)
        self.events = EventStore(session)

    async def _commit(self, action: str) -> None:
        try:
            with storage_errors(action):
                await self.session.commit()
        except ModelVaultError:
            await self.session.rollback()
            raise

    async def _lookup(self, username: str) -> Optional[User]:
        with storage_errors(f"Lookup of user [{username}]"):
            result = await self.session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def get_user(self, username: str, *, include_archived: bool = False) -> User:
        user = await self._lookup(username)
        if user is None or (user.archived and not include_archived):
            raise NotFoundError(f"The User [{username}] was not found.")
        return user

    async def find_users(self, *, include_archived: bool = False) -> List[User]:
        query = select(User).order_by(User.username)
        if not include_archived:
            query = query.where(User.lifecycle == LifecycleState.ACTIVE)
        with storage_errors("Listing users"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def create_user(self, principal: User, data: UserCreate) -> User:
        """
        Create a user. Global admins only.

        New users are granted read and write on the default organization.

        Raises:
            PermissionDeniedError: principal is not a global admin
            OperationError: the username is taken, archived users included
        """
        if not principal.is_global_admin:
            raise PermissionDeniedError(data.username, PermissionLevel.ADMIN.value)

        if await self._lookup(data.username) is not None:
            raise OperationError(f"A user with username [{data.username}] already exists.")

        user = User(
            username=data.username,
            is_global_admin=data.is_global_admin,
            provider=data.provider,
            password_hash=self.hasher.hash(data.password) if data.password else None,
            email=data.email,
            fname=data.fname,
            lname=data.lname,
            created_by=principal.username,
            last_modified_by=principal.username,
        )
        with storage_errors(f"Creation of user [{data.username}]"):
            self.session.add(user)
            await self.session.flush()

        await self._join_default_org(user)
        await self.events.log(
            event_type=EventType.USER_CREATED,
            entity_type="user",
            entity_id=user.username,
            username=principal.username,
            payload={"provider": user.provider, "is_global_admin": user.is_global_admin},
        )
        await self._commit(f"Creation of user [{user.username}]")
        logger.info(
            "User created",
            extra={"new_user": user.username, "provider": user.provider, "username": principal.username},
        )
        return user

    async def _join_default_org(self, user: User) -> None:
        org_id = compose(self.settings.default_org_id)
        with storage_errors(f"Lookup of organization [{org_id}]"):
            result = await self.session.execute(select(Organization).where(Organization.id == org_id))
            org = result.scalar_one_or_none()
        if org is None:
            logger.warning("Default organization [%s] is missing", org_id)
            return
        org.permissions = with_permission(org.permissions, user.username, PermissionLevel.WRITE)

    async def update_user(self, principal: User, username: str, patch: UserUpdate) -> User:
        """Update profile fields. Users may edit themselves; admins anyone."""
        if principal.username != username and not principal.is_global_admin:
            raise PermissionDeniedError(username, PermissionLevel.ADMIN.value)

        user = await self.get_user(username)
        for key, value in patch.model_dump(exclude_unset=True).items():
            setattr(user, key, value)
        user.last_modified_by = principal.username
        await self._commit(f"Update of user [{username}]")
        return user

    async def archive_user(self, principal: User, username: str) -> User:
        if not principal.is_global_admin:
            raise PermissionDeniedError(username, PermissionLevel.ADMIN.value)
        if principal.username == username:
            raise OperationError("User cannot archive themselves.")

        user = await self.get_user(username)
        user.archive(principal.username)
        await self.events.log(
            event_type=EventType.USER_ARCHIVED,
            entity_type="user",
            entity_id=username,
            username=principal.username,
        )
        await self._commit(f"Archive of user [{username}]")
        logger.info("User archived", extra={"archived_user": username, "username": principal.username})
        return user

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """
        Check local credentials.

        Returns:
            The user if the password matches, None otherwise. External and
            archived users never authenticate here.
        """
        user = await self._lookup(username)
        if user is None or user.archived or user.is_external:
            return None
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Failed login", extra={"username": username})
            return None

        if self.hasher.needs_rehash(user.password_hash):
            user.password_hash = self.hasher.hash(password)
            await self._commit(f"Rehash of password for [{username}]")
            logger.info("Password rehashed", extra={"username": username})
        return user

    async def ensure_defaults(self) -> None:
        """
        Create the default organization and, when no global admin exists,
        the default admin user.
        """
        org_id = compose(self.settings.default_org_id)
        with storage_errors("Bootstrap"):
            result = await self.session.execute(select(Organization.id).where(Organization.id == org_id))
            org_missing = result.scalar_one_or_none() is None
            result = await self.session.execute(
                select(User.username).where(User.is_global_admin.is_(True)).limit(1)
            )
            admin_missing = result.scalar_one_or_none() is None

        if org_missing:
            self.session.add(Organization(id=org_id, name=self.settings.default_org_name, permissions={}))
            logger.info("Created default organization", extra={"org_id": org_id})

        if admin_missing:
            admin_name = self.settings.default_admin_username
            if await self._lookup(admin_name) is not None:
                raise OperationError(
                    f"Cannot bootstrap admin: user [{admin_name}] exists and is not a global admin."
                )
            self.session.add(
                User(
                    username=admin_name,
                    is_global_admin=True,
                    password_hash=self.hasher.hash(self.settings.default_admin_password),
                )
            )
            logger.info("Created default admin", extra={"username": admin_name})

        await self._commit("Bootstrap")
