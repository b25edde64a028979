"""
Artifact metadata store.

CRUD over artifact records scoped to a validated org/project/branch chain.
Database driver errors never leave this module unwrapped: they become
OperationError with the original exception attached.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set

from sqlalchemy import select, and_, func, delete as sa_delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.config import Settings, get_settings
from modelvault.errors import DataFormatError, NotFoundError, OperationError
from modelvault.kernel.hierarchy.validator import ResolvedChain, require_mutable_branch
from modelvault.kernel.models import Artifact, ArtifactHistoryEntry, LifecycleState, utcnow
from modelvault.logging_config import get_logger

logger = get_logger(__name__)

# Fields a metadata patch may touch
PATCHABLE_FIELDS = ("filename", "content_type", "custom")


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Wrap database driver errors raised inside the block."""
    try:
        yield
    except IntegrityError as exc:
        logger.warning("%s violated a constraint: %s", action, exc.orig)
        raise OperationError(f"{action} conflicts with an existing record.", cause=exc) from exc
    except SQLAlchemyError as exc:
        logger.exception("%s failed", action)
        raise OperationError(f"{action} failed.", conflict=False, cause=exc) from exc


class ArtifactMetadataStore:
    """
    Persistence for artifact records and their history entries.

    The store never commits; the artifact service owns the transaction.
    """

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        self.session = session
        self.settings = settings or get_settings()

    async def get(self, artifact_id: str, *, include_archived: bool = False) -> Artifact:
        query = select(Artifact).where(Artifact.id == artifact_id)
        if not include_archived:
            query = query.where(Artifact.lifecycle == LifecycleState.ACTIVE)

        with storage_errors(f"Lookup of artifact [{artifact_id}]"):
            result = await self.session.execute(query)
            artifact = result.scalar_one_or_none()

        if artifact is None:
            raise NotFoundError(f"The Artifact [{artifact_id}] was not found.")
        return artifact

    async def exists(self, artifact_id: str) -> bool:
        """True if a record exists under this id, archived or not."""
        with storage_errors(f"Lookup of artifact [{artifact_id}]"):
            result = await self.session.execute(
                select(func.count()).select_from(Artifact).where(Artifact.id == artifact_id)
            )
            return (result.scalar() or 0) > 0

    async def add(self, chain: ResolvedChain, artifact: Artifact) -> Artifact:
        require_mutable_branch(chain)
        with storage_errors(f"Creation of artifact [{artifact.id}]"):
            self.session.add(artifact)
            await self.session.flush()
        return artifact

    async def patch(
        self,
        chain: ResolvedChain,
        artifact: Artifact,
        fields: Mapping[str, Any],
        username: str,
    ) -> Artifact:
        """Apply in-place changes to non-blob metadata fields."""
        require_mutable_branch(chain)
        for key, value in fields.items():
            if key not in PATCHABLE_FIELDS:
                raise OperationError(f"Artifact property [{key}] cannot be changed.")
            setattr(artifact, key, value)
        artifact.last_modified_by = username
        artifact.updated_on = utcnow()
        with storage_errors(f"Update of artifact [{artifact.id}]"):
            await self.session.flush()
        return artifact

    async def append_history(
        self,
        chain: ResolvedChain,
        artifact: Artifact,
        blob_hash: Optional[str],
        username: str,
    ) -> ArtifactHistoryEntry:
        """Append a history entry. Existing entries are never modified."""
        require_mutable_branch(chain)
        entry = ArtifactHistoryEntry(
            position=len(artifact.history),
            hash=blob_hash,
            user=username,
            timestamp=utcnow(),
        )
        artifact.history.append(entry)
        artifact.last_modified_by = username
        artifact.updated_on = utcnow()
        with storage_errors(f"Update of artifact [{artifact.id}]"):
            await self.session.flush()
        return entry

    async def delete(self, chain: ResolvedChain, artifact: Artifact) -> None:
        require_mutable_branch(chain)
        with storage_errors(f"Removal of artifact [{artifact.id}]"):
            await self.session.delete(artifact)
            await self.session.flush()

    async def delete_scope(self, *, project_id: str, branch_id: Optional[str] = None) -> Set[str]:
        """
        Delete every artifact of a project (or one of its branches).

        Used when the enclosing resource is removed. Returns the hashes the
        removed histories referenced, for garbage collection.
        """
        scope = Artifact.project_id == project_id
        if branch_id is not None:
            scope = and_(scope, Artifact.branch_id == branch_id)
        ids = select(Artifact.id).where(scope)

        with storage_errors(f"Removal of artifacts in [{branch_id or project_id}]"):
            result = await self.session.execute(
                select(ArtifactHistoryEntry.hash)
                .where(ArtifactHistoryEntry.artifact_id.in_(ids))
                .where(ArtifactHistoryEntry.hash.is_not(None))
                .distinct()
            )
            hashes = {row[0] for row in result.all()}
            await self.session.execute(
                sa_delete(ArtifactHistoryEntry).where(ArtifactHistoryEntry.artifact_id.in_(ids))
            )
            await self.session.execute(sa_delete(Artifact).where(scope))
        return hashes

    async def search(
        self,
        chain: ResolvedChain,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        custom: Optional[Dict[str, str]] = None,
        limit: int = 0,
        skip: int = 0,
        include_archived: bool = False,
        deadline: Optional[float] = None,
    ) -> List[Artifact]:
        """
        Find artifacts under the chain's branch (or project, when no branch).

        ``custom`` maps custom-field keys to value prefixes. ``limit == 0``
        means unbounded: when more than ``search_batch_threshold`` records
        match, they are fetched in sequential batches of
        ``search_batch_size``. ``deadline`` is a ``time.monotonic()`` value
        checked between batches.

        Raises:
            OperationError: the deadline passed before all batches were read
        """
        if limit < 0 or skip < 0:
            raise DataFormatError("Search limit and skip must be non-negative.")

        query = select(Artifact)
        if chain.branch is not None:
            query = query.where(Artifact.branch_id == chain.branch.id)
        elif chain.project is not None:
            query = query.where(Artifact.project_id == chain.project.id)
        else:
            raise DataFormatError("Artifact search needs a resolved project.")

        if not include_archived:
            query = query.where(Artifact.lifecycle == LifecycleState.ACTIVE)
        if filename is not None:
            query = query.where(Artifact.filename == filename)
        if content_type is not None:
            query = query.where(Artifact.content_type == content_type)
        for key, prefix in (custom or {}).items():
            query = query.where(Artifact.custom[key].as_string().startswith(prefix, autoescape=True))

        query = query.order_by(Artifact.id)

        with storage_errors("Artifact search"):
            if limit:
                result = await self.session.execute(query.offset(skip).limit(limit))
                return list(result.scalars().all())

            count_result = await self.session.execute(
                select(func.count()).select_from(query.order_by(None).subquery())
            )
            total = max((count_result.scalar() or 0) - skip, 0)

            if total <= self.settings.search_batch_threshold:
                result = await self.session.execute(query.offset(skip))
                return list(result.scalars().all())

            batch_size = self.settings.search_batch_size
            logger.info(
                "Batching large artifact search",
                extra={"total": total, "batch_size": batch_size},
            )
            found: List[Artifact] = []
            offset = skip
            while True:
                if deadline is not None and time.monotonic() > deadline:
                    raise OperationError(
                        f"Artifact search exceeded its deadline after {len(found)} of {total} results.",
                        conflict=False,
                    )
                result = await self.session.execute(query.offset(offset).limit(batch_size))
                batch = list(result.scalars().all())
                found.extend(batch)
                if len(batch) < batch_size:
                    break
                offset += batch_size
            return found

    async def count_hash_references(self, blob_hash: str) -> int:
        """Count history entries, across all artifacts, that reference a hash."""
        with storage_errors(f"Reference count of blob [{blob_hash}]"):
            result = await self.session.execute(
                select(func.count())
                .select_from(ArtifactHistoryEntry)
                .where(ArtifactHistoryEntry.hash == blob_hash)
            )
            return result.scalar() or 0

    async def referenced_hashes(self) -> Set[str]:
        with storage_errors("Listing referenced blobs"):
            result = await self.session.execute(
                select(ArtifactHistoryEntry.hash)
                .where(ArtifactHistoryEntry.hash.is_not(None))
                .distinct()
            )
            return {row[0] for row in result.all()}
