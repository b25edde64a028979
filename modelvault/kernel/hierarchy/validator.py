"""
Hierarchy validator.

Walks organization -> project -> branch -> element, fetching each record by its
composite id and failing on the first missing or archived ancestor. It never
checks permissions; callers always pair it with the permission resolver.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.errors import ArchivedError, DataFormatError, NotFoundError, OperationError
from modelvault.kernel.identifiers import compose
from modelvault.kernel.models import Branch, Element, Organization, Project
from modelvault.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChainIds:
    """Leaf parts naming an org, and optionally a project, branch and element in it."""

    org: str
    project: Optional[str] = None
    branch: Optional[str] = None
    element: Optional[str] = None

    @property
    def org_id(self) -> str:
        return compose(self.org)

    @property
    def project_id(self) -> Optional[str]:
        return compose(self.org, self.project) if self.project else None

    @property
    def branch_id(self) -> Optional[str]:
        if not (self.project and self.branch):
            return None
        return compose(self.org, self.project, self.branch)

    @property
    def element_id(self) -> Optional[str]:
        if not (self.branch_id and self.element):
            return None
        return compose(self.org, self.project, self.branch, self.element)


@dataclass
class ResolvedChain:
    """Records fetched by a successful validation, root first."""

    org: Organization
    project: Optional[Project] = None
    branch: Optional[Branch] = None
    element: Optional[Element] = None

    def project_lineage(self) -> Tuple:
        """Project followed by its ancestors, for permission resolution."""
        if self.project is None:
            raise DataFormatError("Chain was resolved without a project.")
        return (self.project, self.org)

    def branch_lineage(self) -> Tuple:
        """Branch followed by its ancestors, for permission resolution."""
        if self.branch is None:
            raise DataFormatError("Chain was resolved without a branch.")
        return (self.branch, self.project, self.org)

    def leaf_lineage(self) -> Tuple:
        """Deepest resolved record followed by its ancestors."""
        if self.branch is not None:
            return self.branch_lineage()
        if self.project is not None:
            return self.project_lineage()
        return (self.org,)


class HierarchyValidator:
    """
    Read-and-check pipeline over the resource hierarchy.

    Results are never cached: permissions and archived state may change
    between two requests, so every mutating call validates again.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def validate_chain(
        self,
        ids: ChainIds,
        *,
        allow_archived: bool = False,
    ) -> ResolvedChain:
        """
        Fetch and check every level present in ``ids``.

        Raises:
            NotFoundError: an ancestor does not exist
            ArchivedError: an ancestor is archived and allow_archived is False
        """
        if ids.branch and not ids.project:
            raise DataFormatError("A branch cannot be validated without its project.")
        if ids.element and not ids.branch:
            raise DataFormatError("An element cannot be validated without its branch.")

        org = await self._fetch(
            select(Organization).where(Organization.id == ids.org_id),
            ids.org_id,
            Organization.kind,
        )
        self._check_archived(org, allow_archived)
        chain = ResolvedChain(org=org)

        if ids.project:
            project = await self._fetch(
                select(Project).where(
                    and_(
                        Project.id == ids.project_id,
                        Project.org_id == org.id,
                    )
                ),
                ids.project_id,
                Project.kind,
            )
            self._check_archived(project, allow_archived)
            chain.project = project

            if ids.branch:
                branch = await self._fetch(
                    select(Branch).where(
                        and_(
                            Branch.id == ids.branch_id,
                            Branch.project_id == project.id,
                        )
                    ),
                    ids.branch_id,
                    Branch.kind,
                )
                self._check_archived(branch, allow_archived)
                chain.branch = branch

                if ids.element:
                    element = await self._fetch(
                        select(Element).where(
                            and_(
                                Element.id == ids.element_id,
                                Element.branch_id == branch.id,
                            )
                        ),
                        ids.element_id,
                        Element.kind,
                    )
                    self._check_archived(element, allow_archived)
                    chain.element = element

        return chain

    async def _fetch(self, query, composite_id: str, kind: str):
        try:
            result = await self.session.execute(query)
            record = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.exception("Lookup of %s [%s] failed", kind, composite_id)
            raise OperationError(
                f"Lookup of {kind} [{composite_id}] failed.",
                conflict=False,
                cause=exc,
            ) from exc

        if record is None:
            logger.debug("Find query on %s failed", composite_id)
            raise NotFoundError(f"The {kind} [{composite_id}] was not found.")
        return record

    @staticmethod
    def _check_archived(record, allow_archived: bool) -> None:
        if record.archived and not allow_archived:
            raise ArchivedError(
                record.id,
                f"The {record.kind} [{record.id}] is archived."
                " It must first be unarchived before performing this operation.",
            )


def require_mutable_branch(chain: ResolvedChain) -> None:
    """Tag branches are read-only snapshots."""
    if chain.branch is None:
        raise DataFormatError("Branch contents are addressed by organization, project and branch.")
    if chain.branch.tag:
        raise OperationError(
            f"The Branch [{chain.branch.id}] is a tag; its contents cannot be modified."
        )
