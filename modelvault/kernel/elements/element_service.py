"""
Element management.

Elements live under a branch and form a tree through their parent. They
share the artifacts' gates: the hierarchy validator walks org -> project ->
branch (-> element), permissions resolve on the project lineage, and tag
branches refuse every mutation. Removing an element removes its subtree.
"""

from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, and_, func, delete as sa_delete
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.config import Settings, get_settings
from modelvault.errors import (
    ArchivedError,
    DataFormatError,
    ModelVaultError,
    NotFoundError,
    OperationError,
)
from modelvault.kernel.artifacts.metadata_store import storage_errors
from modelvault.kernel.events.event_store import EventStore
from modelvault.kernel.hierarchy.validator import (
    ChainIds,
    HierarchyValidator,
    ResolvedChain,
    require_mutable_branch,
)
from modelvault.kernel.identifiers import child_id, validate_part
from modelvault.kernel.models import Element, EventType, LifecycleState, User
from modelvault.kernel.permissions import PermissionLevel, require_at_least
from modelvault.logging_config import get_logger
from modelvault.schemas.element import ElementCreate, ElementUpdate

logger = get_logger(__name__)


def _batches(ids: Sequence[str], size: int):
    for start in range(0, len(ids), size):
        yield ids[start:start + size]


class ElementService:
    """Create, find, update and remove the elements of a branch."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()
        self.validator = HierarchyValidator(session)
        self.events = EventStore(session)

    async def _authorize(
        self,
        principal: User,
        ids: ChainIds,
        level: PermissionLevel,
        *,
        allow_archived: bool = False,
    ) -> ResolvedChain:
        if not (ids.project and ids.branch):
            raise DataFormatError("Elements are addressed by organization, project and branch.")
        chain = await self.validator.validate_chain(ids, allow_archived=allow_archived)
        require_at_least(principal, level, *chain.project_lineage())
        return chain

    async def _commit(self, action: str) -> None:
        try:
            with storage_errors(action):
                await self.session.commit()
        except ModelVaultError:
            await self.session.rollback()
            raise

    async def _get(self, element_id: str, *, include_archived: bool = False) -> Element:
        query = select(Element).where(Element.id == element_id)
        if not include_archived:
            query = query.where(Element.lifecycle == LifecycleState.ACTIVE)
        with storage_errors(f"Lookup of element [{element_id}]"):
            result = await self.session.execute(query)
            element = result.scalar_one_or_none()
        if element is None:
            raise NotFoundError(f"The Element [{element_id}] was not found.")
        return element

    async def _reference(self, chain: ResolvedChain, role: str, leaf: str) -> str:
        """Resolve a parent/source/target leaf id to an active element of the branch."""
        ref_id = child_id(chain.branch.id, leaf)
        try:
            await self._get(ref_id)
        except NotFoundError:
            raise NotFoundError(f"The {role} Element [{ref_id}] was not found.") from None
        return ref_id

    async def subtree(self, chain: ResolvedChain, roots: Sequence[str]) -> List[str]:
        """``roots`` followed by every descendant, breadth first."""
        found: Dict[str, None] = dict.fromkeys(roots)
        frontier = list(found)
        batch_size = self.settings.search_batch_size
        while frontier:
            children: List[str] = []
            for batch in _batches(frontier, batch_size):
                with storage_errors(f"Lookup of children in [{chain.branch.id}]"):
                    result = await self.session.execute(
                        select(Element.id).where(
                            and_(
                                Element.branch_id == chain.branch.id,
                                Element.parent_id.in_(batch),
                            )
                        )
                    )
                for element_id in result.scalars().all():
                    if element_id not in found:
                        found[element_id] = None
                        children.append(element_id)
            frontier = children
        return list(found)

    async def create(self, principal: User, ids: ChainIds, data: ElementCreate) -> Element:
        """
        Create an element under an existing parent (or at the top of the tree).

        Raises:
            NotFoundError: the parent, source or target does not exist
            OperationError: duplicate id or tag branch
        """
        chain = await self._authorize(principal, ids, PermissionLevel.WRITE)
        require_mutable_branch(chain)

        element_id = child_id(chain.branch.id, validate_part(data.id))
        with storage_errors(f"Lookup of element [{element_id}]"):
            result = await self.session.execute(
                select(func.count()).select_from(Element).where(Element.id == element_id)
            )
        if result.scalar_one():
            raise OperationError(f"The Element [{element_id}] already exists.")

        refs: Dict[str, Optional[str]] = {}
        for role, leaf in (("parent", data.parent), ("source", data.source), ("target", data.target)):
            refs[role] = await self._reference(chain, role, leaf) if leaf is not None else None

        element = Element(
            id=element_id,
            project_id=chain.project.id,
            branch_id=chain.branch.id,
            name=data.name,
            documentation=data.documentation,
            parent_id=refs["parent"],
            source_id=refs["source"],
            target_id=refs["target"],
            custom=dict(data.custom),
            created_by=principal.username,
            last_modified_by=principal.username,
        )
        try:
            with storage_errors(f"Creation of element [{element_id}]"):
                self.session.add(element)
                await self.session.flush()
        except ModelVaultError:
            await self.session.rollback()
            raise

        await self.events.log(
            event_type=EventType.ELEMENT_CREATED,
            entity_type="element",
            entity_id=element_id,
            username=principal.username,
            payload={"parent": refs["parent"]},
        )
        await self._commit(f"Creation of element [{element_id}]")
        logger.info("Element created", extra={"element_id": element_id, "username": principal.username})
        return element

    async def find(
        self,
        principal: User,
        ids: ChainIds,
        element_id: str,
        *,
        include_archived: bool = False,
    ) -> Element:
        chain = await self._authorize(
            principal,
            ChainIds(ids.org, ids.project, ids.branch, element_id),
            PermissionLevel.READ,
            allow_archived=include_archived,
        )
        return chain.element

    async def find_elements(
        self,
        principal: User,
        ids: ChainIds,
        *,
        parent: Optional[str] = None,
        include_archived: bool = False,
        limit: int = 0,
        skip: int = 0,
    ) -> List[Element]:
        """Elements of a branch ordered by id, optionally only the children of ``parent``."""
        if limit < 0 or skip < 0:
            raise DataFormatError("Limit and skip must be non-negative.")
        chain = await self._authorize(
            principal, ids, PermissionLevel.READ, allow_archived=include_archived
        )

        query = select(Element).where(Element.branch_id == chain.branch.id)
        if parent is not None:
            query = query.where(Element.parent_id == child_id(chain.branch.id, parent))
        if not include_archived:
            query = query.where(Element.lifecycle == LifecycleState.ACTIVE)
        query = query.order_by(Element.id).offset(skip)
        if limit:
            query = query.limit(limit)

        with storage_errors(f"Search of elements in [{chain.branch.id}]"):
            result = await self.session.execute(query)
        return list(result.scalars().all())

    async def update(
        self,
        principal: User,
        ids: ChainIds,
        element_id: str,
        patch: ElementUpdate,
    ) -> Element:
        """
        Patch an element in place.

        ``custom`` is merged into the stored mapping. Moving an element under
        one of its own descendants is refused. An archived element only
        accepts a patch that unarchives it.
        """
        chain = await self._authorize(principal, ids, PermissionLevel.WRITE)
        require_mutable_branch(chain)

        full_id = child_id(chain.branch.id, element_id)
        element = await self._get(full_id, include_archived=True)

        changes = patch.model_dump(exclude_unset=True)
        archived = changes.pop("archived", None)
        if element.archived and archived is not False:
            raise ArchivedError(
                full_id,
                f"The Element [{full_id}] is archived."
                " It must first be unarchived before performing this operation.",
            )

        if "parent" in changes:
            leaf = changes.pop("parent")
            parent_id = await self._reference(chain, "parent", leaf) if leaf is not None else None
            if parent_id is not None and parent_id in await self.subtree(chain, [full_id]):
                raise DataFormatError(
                    f"Moving [{full_id}] under [{parent_id}] would create a cycle."
                )
            element.parent_id = parent_id
        for field in ("name", "documentation"):
            if changes.get(field) is not None:
                setattr(element, field, changes[field])
        if changes.get("custom") is not None:
            element.custom = {**(element.custom or {}), **changes["custom"]}

        if archived is True and not element.archived:
            element.archive(principal.username)
        elif archived is False and element.archived:
            element.unarchive()
        element.last_modified_by = principal.username

        try:
            with storage_errors(f"Update of element [{full_id}]"):
                await self.session.flush()
        except ModelVaultError:
            await self.session.rollback()
            raise

        await self.events.log(
            event_type=EventType.ELEMENT_UPDATED,
            entity_type="element",
            entity_id=full_id,
            username=principal.username,
            payload={"fields": sorted(patch.model_dump(exclude_unset=True))},
        )
        await self._commit(f"Update of element [{full_id}]")
        return element

    async def remove(self, principal: User, ids: ChainIds, element_ids: Sequence[str]) -> List[str]:
        """
        Delete elements together with everything beneath them.

        Needs admin on the project.

        Returns:
            Composite ids of every removed element, roots first
        """
        if not element_ids:
            raise DataFormatError("No elements given for removal.")
        chain = await self._authorize(principal, ids, PermissionLevel.ADMIN)
        require_mutable_branch(chain)

        roots = list(dict.fromkeys(child_id(chain.branch.id, e) for e in element_ids))
        with storage_errors(f"Lookup of elements in [{chain.branch.id}]"):
            result = await self.session.execute(
                select(Element.id).where(
                    and_(Element.branch_id == chain.branch.id, Element.id.in_(roots))
                )
            )
        missing = sorted(set(roots) - set(result.scalars().all()))
        if missing:
            raise NotFoundError(f"The following Elements were not found: [{', '.join(missing)}].")

        removed = await self.subtree(chain, roots)
        try:
            with storage_errors(f"Removal of elements in [{chain.branch.id}]"):
                # Deepest first so no statement leaves a dangling parent
                for batch in _batches(removed[::-1], self.settings.search_batch_size):
                    await self.session.execute(
                        sa_delete(Element).where(Element.id.in_(batch)).execution_options(
                            synchronize_session=False
                        )
                    )
        except ModelVaultError:
            await self.session.rollback()
            raise

        for root in roots:
            await self.events.log(
                event_type=EventType.ELEMENT_DELETED,
                entity_type="element",
                entity_id=root,
                username=principal.username,
                payload={"removed": len(removed)},
            )
        await self._commit(f"Removal of elements in [{chain.branch.id}]")
        logger.info(
            "Elements removed",
            extra={"branch_id": chain.branch.id, "count": len(removed)},
        )
        return removed
