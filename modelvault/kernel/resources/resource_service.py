"""
Organization, project and branch management.

Every operation fetches its chain through the hierarchy validator and gates
on the permission resolver before touching anything. Removals cascade to
elements and artifacts, and release blobs that are no longer referenced once
the removal has committed.
"""

from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select, update as sa_update, delete as sa_delete
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.config import Settings, get_settings
from modelvault.errors import (
    ArchivedError,
    ModelVaultError,
    NotFoundError,
    OperationError,
    PermissionDeniedError,
)
from modelvault.kernel.artifacts.artifact_service import ArtifactService
from modelvault.kernel.artifacts.blob_store import BlobStore
from modelvault.kernel.artifacts.metadata_store import storage_errors
from modelvault.kernel.events.event_store import EventStore
from modelvault.kernel.hierarchy.validator import ChainIds, HierarchyValidator, ResolvedChain
from modelvault.kernel.identifiers import child_id, compose, validate_part
from modelvault.kernel.models import (
    MASTER_BRANCH,
    Branch,
    Element,
    EventType,
    LifecycleState,
    Organization,
    Project,
    User,
    utcnow,
)
from modelvault.kernel.permissions import (
    PermissionLevel,
    check_permission,
    cumulative_levels,
    require_at_least,
    with_permission,
)
from modelvault.logging_config import get_logger
from modelvault.schemas.resource import (
    BranchCreate,
    BranchUpdate,
    OrgCreate,
    OrgUpdate,
    ProjectCreate,
    ProjectUpdate,
)

logger = get_logger(__name__)


def _archived_message(record) -> str:
    return (
        f"The {record.kind} [{record.id}] is archived."
        " It must first be unarchived before performing this operation."
    )


class ResourceService:
    """CRUD and permission management over the resource hierarchy."""

    def __init__(
        self,
        session: AsyncSession,
        blob_store: BlobStore,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.validator = HierarchyValidator(session)
        self.artifacts = ArtifactService(session, blob_store, self.settings)
        self.events = EventStore(session)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    async def _commit(self, action: str) -> None:
        try:
            with storage_errors(action):
                await self.session.commit()
        except ModelVaultError:
            await self.session.rollback()
            raise

    async def _exists(self, model, record_id: str) -> bool:
        with storage_errors(f"Lookup of {model.kind} [{record_id}]"):
            result = await self.session.execute(select(model.id).where(model.id == record_id))
            return result.scalar_one_or_none() is not None

    async def _resolve_target(self, ids: ChainIds) -> ResolvedChain:
        """
        Fetch a chain whose leaf may be archived; its ancestors may not.

        Used by updates, which are the only way to unarchive a record.
        """
        chain = await self.validator.validate_chain(ids, allow_archived=True)
        leaf = chain.leaf_lineage()
        for ancestor in leaf[1:]:
            if ancestor.archived:
                raise ArchivedError(ancestor.id, _archived_message(ancestor))
        return chain

    @staticmethod
    def _require_global_admin(principal: User, resource_id: str) -> None:
        if not principal.is_global_admin:
            logger.info(
                "Global admin required",
                extra={"username": principal.username, "resource_id": resource_id},
            )
            raise PermissionDeniedError(resource_id, PermissionLevel.ADMIN.value)

    @staticmethod
    def _apply_patch(principal: User, record, changes: Dict[str, Any]) -> Optional[bool]:
        """
        Apply a validated update body to a record.

        Returns the requested archived state, if any.

        Raises:
            ArchivedError: the record is archived and the patch does not unarchive it
        """
        archived = changes.pop("archived", None)
        if record.archived and archived is not False:
            raise ArchivedError(record.id, _archived_message(record))

        if archived is True and not record.archived:
            record.archive(principal.username)
        elif archived is False and record.archived:
            record.unarchive()

        for key, value in changes.items():
            if value is None:
                continue
            if key == "custom":
                value = {**(record.custom or {}), **value}
            setattr(record, key, value)

        record.last_modified_by = principal.username
        record.updated_on = utcnow()
        return archived

    async def _remove_artifacts(self, *, project_id: str, branch_id: Optional[str] = None) -> Set[str]:
        return await self.artifacts.store.delete_scope(project_id=project_id, branch_id=branch_id)

    async def _remove_elements(self, *, project_id: str, branch_id: Optional[str] = None) -> None:
        query = sa_delete(Element).where(Element.project_id == project_id)
        if branch_id is not None:
            query = query.where(Element.branch_id == branch_id)
        with storage_errors(f"Removal of elements in [{branch_id or project_id}]"):
            await self.session.execute(query.execution_options(synchronize_session=False))

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    async def create_org(self, principal: User, data: OrgCreate) -> Organization:
        org_id = compose(validate_part(data.id))
        self._require_global_admin(principal, org_id)

        if await self._exists(Organization, org_id):
            raise OperationError(f"An Organization with id [{org_id}] already exists.")

        org = Organization(
            id=org_id,
            name=data.name,
            custom=dict(data.custom),
            permissions={principal.username: cumulative_levels(PermissionLevel.ADMIN)},
            created_by=principal.username,
            last_modified_by=principal.username,
        )
        with storage_errors(f"Creation of organization [{org_id}]"):
            self.session.add(org)
            await self.session.flush()

        await self.events.log(
            event_type=EventType.ORG_CREATED,
            entity_type="org",
            entity_id=org_id,
            username=principal.username,
            payload={"name": data.name},
        )
        await self._commit(f"Creation of organization [{org_id}]")
        logger.info("Organization created", extra={"org_id": org_id, "username": principal.username})
        return org

    async def find_org(self, principal: User, org_id: str, *, include_archived: bool = False) -> Organization:
        chain = await self.validator.validate_chain(ChainIds(org_id), allow_archived=include_archived)
        require_at_least(principal, PermissionLevel.READ, chain.org)
        return chain.org

    async def find_orgs(self, principal: User, *, include_archived: bool = False) -> List[Organization]:
        """All organizations the principal can read."""
        query = select(Organization).order_by(Organization.id)
        if not include_archived:
            query = query.where(Organization.lifecycle == LifecycleState.ACTIVE)
        with storage_errors("Listing organizations"):
            result = await self.session.execute(query)
            orgs = result.scalars().all()
        return [o for o in orgs if check_permission(principal, PermissionLevel.READ, o)]

    async def update_org(self, principal: User, org_id: str, patch: OrgUpdate) -> Organization:
        chain = await self._resolve_target(ChainIds(org_id))
        org = chain.org
        require_at_least(principal, PermissionLevel.ADMIN, org)

        changes = patch.model_dump(exclude_unset=True)
        if changes.get("archived") and org.id == compose(self.settings.default_org_id):
            raise OperationError("The default organization cannot be archived.")

        archived = self._apply_patch(principal, org, changes)
        await self.events.log(
            event_type=EventType.ORG_UPDATED,
            entity_type="org",
            entity_id=org.id,
            username=principal.username,
            payload={"fields": sorted(changes), "archived": archived},
        )
        await self._commit(f"Update of organization [{org.id}]")
        return org

    async def remove_org(self, principal: User, org_id: str) -> List[str]:
        """
        Delete an organization with all of its projects, branches, elements and artifacts.

        Returns:
            Hashes of the blobs released by the removal
        """
        org_id = compose(org_id)
        self._require_global_admin(principal, org_id)
        if org_id == compose(self.settings.default_org_id):
            raise OperationError("The default organization cannot be removed.")

        chain = await self.validator.validate_chain(ChainIds(org_id), allow_archived=True)

        with storage_errors(f"Removal of organization [{org_id}]"):
            result = await self.session.execute(select(Project.id).where(Project.org_id == org_id))
            project_ids = list(result.scalars().all())

        try:
            hashes: Set[str] = set()
            for project_id in project_ids:
                hashes |= await self._remove_artifacts(project_id=project_id)
                await self._remove_elements(project_id=project_id)
                await self._delete_branches(project_id)
            with storage_errors(f"Removal of organization [{org_id}]"):
                await self.session.execute(sa_delete(Project).where(Project.org_id == org_id))
                await self.session.delete(chain.org)
                await self.session.flush()
        except ModelVaultError:
            await self.session.rollback()
            raise

        await self.events.log(
            event_type=EventType.ORG_DELETED,
            entity_type="org",
            entity_id=org_id,
            username=principal.username,
            payload={"projects": project_ids},
        )
        await self._commit(f"Removal of organization [{org_id}]")

        released = await self.artifacts.release_blobs(sorted(hashes))
        logger.info(
            "Organization removed",
            extra={"org_id": org_id, "projects": len(project_ids), "blobs_removed": len(released)},
        )
        return released

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(self, principal: User, org_id: str, data: ProjectCreate) -> Project:
        """
        Create a project together with its master branch.

        The creator is granted admin on the new project.
        """
        chain = await self.validator.validate_chain(ChainIds(org_id))
        require_at_least(principal, PermissionLevel.WRITE, chain.org)

        project_id = compose(chain.org.id, validate_part(data.id))
        if await self._exists(Project, project_id):
            raise OperationError(f"A Project with id [{project_id}] already exists.")

        project = Project(
            id=project_id,
            org_id=chain.org.id,
            name=data.name,
            visibility=data.visibility.value,
            custom=dict(data.custom),
            permissions={principal.username: cumulative_levels(PermissionLevel.ADMIN)},
            created_by=principal.username,
            last_modified_by=principal.username,
        )
        master = Branch(
            id=child_id(project_id, MASTER_BRANCH),
            project_id=project_id,
            name="Master",
            source_id=None,
            tag=False,
            custom={},
            permissions={},
            created_by=principal.username,
            last_modified_by=principal.username,
        )
        with storage_errors(f"Creation of project [{project_id}]"):
            self.session.add(project)
            await self.session.flush()
            self.session.add(master)
            await self.session.flush()

        await self.events.log(
            event_type=EventType.PROJECT_CREATED,
            entity_type="project",
            entity_id=project_id,
            username=principal.username,
            payload={"name": data.name, "visibility": data.visibility.value},
        )
        await self._commit(f"Creation of project [{project_id}]")
        logger.info("Project created", extra={"project_id": project_id, "username": principal.username})
        return project

    async def find_project(
        self,
        principal: User,
        org_id: str,
        project_id: str,
        *,
        include_archived: bool = False,
    ) -> Project:
        chain = await self.validator.validate_chain(
            ChainIds(org_id, project_id), allow_archived=include_archived
        )
        require_at_least(principal, PermissionLevel.READ, *chain.project_lineage())
        return chain.project

    async def find_projects(
        self,
        principal: User,
        org_id: str,
        *,
        include_archived: bool = False,
    ) -> List[Project]:
        """Projects of an organization that the principal can read."""
        chain = await self.validator.validate_chain(ChainIds(org_id), allow_archived=include_archived)
        query = select(Project).where(Project.org_id == chain.org.id).order_by(Project.id)
        if not include_archived:
            query = query.where(Project.lifecycle == LifecycleState.ACTIVE)
        with storage_errors(f"Listing projects of [{chain.org.id}]"):
            result = await self.session.execute(query)
            projects = result.scalars().all()
        return [
            p for p in projects
            if check_permission(principal, PermissionLevel.READ, p, chain.org)
        ]

    async def update_project(
        self,
        principal: User,
        org_id: str,
        project_id: str,
        patch: ProjectUpdate,
    ) -> Project:
        chain = await self._resolve_target(ChainIds(org_id, project_id))
        require_at_least(principal, PermissionLevel.ADMIN, *chain.project_lineage())

        changes = patch.model_dump(exclude_unset=True)
        if changes.get("visibility") is not None:
            changes["visibility"] = patch.visibility.value
        archived = self._apply_patch(principal, chain.project, changes)

        await self.events.log(
            event_type=EventType.PROJECT_UPDATED,
            entity_type="project",
            entity_id=chain.project.id,
            username=principal.username,
            payload={"fields": sorted(changes), "archived": archived},
        )
        await self._commit(f"Update of project [{chain.project.id}]")
        return chain.project

    async def remove_project(self, principal: User, org_id: str, project_id: str) -> List[str]:
        """Delete a project with its branches, elements and artifacts. Global admins only."""
        full_id = compose(org_id, project_id)
        self._require_global_admin(principal, full_id)
        chain = await self.validator.validate_chain(ChainIds(org_id, project_id), allow_archived=True)

        try:
            hashes = await self._remove_artifacts(project_id=full_id)
            await self._remove_elements(project_id=full_id)
            await self._delete_branches(full_id)
            with storage_errors(f"Removal of project [{full_id}]"):
                await self.session.delete(chain.project)
                await self.session.flush()
        except ModelVaultError:
            await self.session.rollback()
            raise

        await self.events.log(
            event_type=EventType.PROJECT_DELETED,
            entity_type="project",
            entity_id=full_id,
            username=principal.username,
        )
        await self._commit(f"Removal of project [{full_id}]")

        released = await self.artifacts.release_blobs(sorted(hashes))
        logger.info("Project removed", extra={"project_id": full_id, "blobs_removed": len(released)})
        return released

    async def _delete_branches(self, project_id: str) -> None:
        with storage_errors(f"Removal of branches in [{project_id}]"):
            await self.session.execute(
                sa_update(Branch).where(Branch.project_id == project_id).values(source_id=None)
            )
            await self.session.execute(sa_delete(Branch).where(Branch.project_id == project_id))

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    async def create_branch(
        self,
        principal: User,
        org_id: str,
        project_id: str,
        data: BranchCreate,
    ) -> Branch:
        """
        Create a branch off an existing source branch (master by default).

        Raises:
            NotFoundError: the source branch does not exist in this project
            OperationError: the branch id is taken
        """
        chain = await self.validator.validate_chain(ChainIds(org_id, project_id))
        require_at_least(principal, PermissionLevel.WRITE, *chain.project_lineage())

        branch_id = child_id(chain.project.id, validate_part(data.id))
        if await self._exists(Branch, branch_id):
            raise OperationError(f"A Branch with id [{branch_id}] already exists.")

        source_id = child_id(chain.project.id, validate_part(data.source or MASTER_BRANCH))
        if not await self._exists(Branch, source_id):
            raise NotFoundError(f"The source Branch [{source_id}] was not found.")

        branch = Branch(
            id=branch_id,
            project_id=chain.project.id,
            name=data.name,
            source_id=source_id,
            tag=data.tag,
            custom=dict(data.custom),
            permissions={},
            created_by=principal.username,
            last_modified_by=principal.username,
        )
        with storage_errors(f"Creation of branch [{branch_id}]"):
            self.session.add(branch)
            await self.session.flush()

        await self.events.log(
            event_type=EventType.BRANCH_CREATED,
            entity_type="branch",
            entity_id=branch_id,
            username=principal.username,
            payload={"source": source_id, "tag": data.tag},
        )
        await self._commit(f"Creation of branch [{branch_id}]")
        logger.info(
            "Branch created",
            extra={"branch_id": branch_id, "source_id": source_id, "tag": data.tag},
        )
        return branch

    async def find_branch(
        self,
        principal: User,
        org_id: str,
        project_id: str,
        branch_id: str,
        *,
        include_archived: bool = False,
    ) -> Branch:
        chain = await self.validator.validate_chain(
            ChainIds(org_id, project_id, branch_id), allow_archived=include_archived
        )
        require_at_least(principal, PermissionLevel.READ, *chain.branch_lineage())
        return chain.branch

    async def find_branches(
        self,
        principal: User,
        org_id: str,
        project_id: str,
        *,
        include_archived: bool = False,
    ) -> List[Branch]:
        chain = await self.validator.validate_chain(
            ChainIds(org_id, project_id), allow_archived=include_archived
        )
        query = select(Branch).where(Branch.project_id == chain.project.id).order_by(Branch.id)
        if not include_archived:
            query = query.where(Branch.lifecycle == LifecycleState.ACTIVE)
        with storage_errors(f"Listing branches of [{chain.project.id}]"):
            result = await self.session.execute(query)
            branches = result.scalars().all()
        lineage = chain.project_lineage()
        return [
            b for b in branches
            if check_permission(principal, PermissionLevel.READ, b, *lineage)
        ]

    async def update_branch(
        self,
        principal: User,
        org_id: str,
        project_id: str,
        branch_id: str,
        patch: BranchUpdate,
    ) -> Branch:
        chain = await self._resolve_target(ChainIds(org_id, project_id, branch_id))
        require_at_least(principal, PermissionLevel.WRITE, *chain.project_lineage())
        branch = chain.branch

        changes = patch.model_dump(exclude_unset=True)
        if branch.tag and set(changes) - {"archived"}:
            raise OperationError(f"The Branch [{branch.id}] is a tag; only its archived state can change.")
        if changes.get("archived") and branch_id == MASTER_BRANCH:
            raise OperationError(f"The master branch [{branch.id}] cannot be archived.")

        archived = self._apply_patch(principal, branch, changes)
        await self.events.log(
            event_type=EventType.BRANCH_UPDATED,
            entity_type="branch",
            entity_id=branch.id,
            username=principal.username,
            payload={"fields": sorted(changes), "archived": archived},
        )
        await self._commit(f"Update of branch [{branch.id}]")
        return branch

    async def remove_branch(
        self,
        principal: User,
        org_id: str,
        project_id: str,
        branch_id: str,
    ) -> List[str]:
        full_id = compose(org_id, project_id, branch_id)
        self._require_global_admin(principal, full_id)
        if branch_id == MASTER_BRANCH:
            raise OperationError(f"The master branch [{full_id}] cannot be removed.")

        chain = await self.validator.validate_chain(
            ChainIds(org_id, project_id, branch_id), allow_archived=True
        )

        try:
            hashes = await self._remove_artifacts(project_id=chain.project.id, branch_id=full_id)
            await self._remove_elements(project_id=chain.project.id, branch_id=full_id)
            with storage_errors(f"Removal of branch [{full_id}]"):
                await self.session.execute(
                    sa_update(Branch).where(Branch.source_id == full_id).values(source_id=None)
                )
                await self.session.delete(chain.branch)
                await self.session.flush()
        except ModelVaultError:
            await self.session.rollback()
            raise

        await self.events.log(
            event_type=EventType.BRANCH_DELETED,
            entity_type="branch",
            entity_id=full_id,
            username=principal.username,
        )
        await self._commit(f"Removal of branch [{full_id}]")

        released = await self.artifacts.release_blobs(sorted(hashes))
        logger.info("Branch removed", extra={"branch_id": full_id, "blobs_removed": len(released)})
        return released

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def set_permission(
        self,
        principal: User,
        ids: ChainIds,
        username: str,
        level: PermissionLevel,
    ):
        """
        Grant ``level`` on the deepest resource named by ``ids``.

        Granting ``none`` removes the user from the resource's mapping, so
        the level is inherited from the parent again.

        Raises:
            NotFoundError: the target user does not exist
            PermissionDeniedError: the principal is not an admin of the target
        """
        chain = await self.validator.validate_chain(ids)
        lineage = chain.leaf_lineage()
        target = lineage[0]
        require_at_least(principal, PermissionLevel.ADMIN, *lineage)

        with storage_errors(f"Lookup of user [{username}]"):
            result = await self.session.execute(
                select(User.username).where(
                    User.username == username,
                    User.lifecycle == LifecycleState.ACTIVE,
                )
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundError(f"The User [{username}] was not found.")

        target.permissions = with_permission(target.permissions, username, level)
        target.last_modified_by = principal.username
        target.updated_on = utcnow()

        await self.events.log(
            event_type=EventType.PERMISSION_CHANGED,
            entity_type=target.kind.lower(),
            entity_id=target.id,
            username=principal.username,
            payload={"user": username, "level": level.value},
        )
        await self._commit(f"Permission update on [{target.id}]")
        logger.info(
            "Permission changed",
            extra={"resource_id": target.id, "user": username, "permission_level": level.value},
        )
        return target
