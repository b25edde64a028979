"""
Artifact orchestration: metadata store + blob store behind the
hierarchy and permission gates.

Create/update run

    VALIDATE -> HASH_BLOB -> DEDUP_CHECK -> [WRITE_BLOB] -> APPEND_HISTORY -> COMMIT

Blobs are written before metadata. If the metadata commit then fails, the
blob stays behind unreferenced until a garbage collection pass removes it;
content-addressed blobs may be shared, so they are never rolled back.
After the commit the blob is put once more, which rewrites it if a
concurrent removal collected it while the new reference was uncommitted.
"""

import mimetypes
import time
from typing import List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from modelvault.config import Settings, get_settings
from modelvault.errors import (
    ArchivedError,
    DataFormatError,
    ModelVaultError,
    NotFoundError,
    OperationError,
    PermissionDeniedError,
)
from modelvault.kernel.artifacts.blob_store import BlobStore
from modelvault.kernel.artifacts.metadata_store import ArtifactMetadataStore, storage_errors
from modelvault.kernel.events.event_store import EventStore
from modelvault.kernel.hierarchy.validator import (
    ChainIds,
    HierarchyValidator,
    ResolvedChain,
    require_mutable_branch,
)
from modelvault.kernel.identifiers import child_id, compose, validate_part
from modelvault.kernel.models import Artifact, ArtifactHistoryEntry, EventType, User, utcnow
from modelvault.kernel.permissions import PermissionLevel, require_at_least
from modelvault.logging_config import get_logger
from modelvault.schemas.artifact import ArtifactCreate, ArtifactUpdate

logger = get_logger(__name__)


class ArtifactService:
    """
    Entry point for every artifact operation.

    Every call re-validates the hierarchy and permissions; nothing is cached
    between calls.
    """

    def __init__(
        self,
        session: AsyncSession,
        blob_store: BlobStore,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.blob_store = blob_store
        self.settings = settings or get_settings()
        self.validator = HierarchyValidator(session)
        self.store = ArtifactMetadataStore(session, self.settings)
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
            raise DataFormatError("Artifacts are addressed by organization, project and branch.")
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

    async def create(
        self,
        principal: User,
        ids: ChainIds,
        data: ArtifactCreate,
        blob: Optional[bytes] = None,
    ) -> Artifact:
        """
        Create an artifact with a single history entry.

        Raises:
            NotFoundError, ArchivedError: hierarchy validation failed
            PermissionDeniedError: no write permission on the project
            OperationError: duplicate id, tag branch, or storage failure
        """
        chain = await self._authorize(principal, ids, PermissionLevel.WRITE)
        require_mutable_branch(chain)

        artifact_id = compose(ids.org, ids.project, ids.branch, validate_part(data.id))
        if await self.store.exists(artifact_id):
            raise OperationError(f"The Artifact [{artifact_id}] already exists.")

        blob_hash = await self.blob_store.put(blob) if blob is not None else None

        content_type = data.content_type
        if content_type is None and data.filename:
            content_type = mimetypes.guess_type(data.filename)[0]

        now = utcnow()
        artifact = Artifact(
            id=artifact_id,
            project_id=chain.project.id,
            branch_id=chain.branch.id,
            filename=data.filename,
            content_type=content_type,
            custom=dict(data.custom),
            created_by=principal.username,
            last_modified_by=principal.username,
            created_on=now,
            updated_on=now,
            history=[
                ArtifactHistoryEntry(
                    position=0,
                    hash=blob_hash,
                    user=principal.username,
                    timestamp=now,
                )
            ],
        )

        try:
            await self.store.add(chain, artifact)
        except ModelVaultError:
            await self.session.rollback()
            raise
        await self.events.log(
            event_type=EventType.ARTIFACT_CREATED,
            entity_type="artifact",
            entity_id=artifact_id,
            username=principal.username,
            payload={"hash": blob_hash, "filename": data.filename},
        )
        await self._commit(f"Creation of artifact [{artifact_id}]")
        await self._restore_blob(blob)

        logger.info(
            "Artifact created",
            extra={"artifact_id": artifact_id, "hash": blob_hash, "username": principal.username},
        )
        return artifact

    async def update(
        self,
        principal: User,
        ids: ChainIds,
        artifact_id: str,
        patch: ArtifactUpdate,
        blob: Optional[bytes] = None,
    ) -> Artifact:
        """
        Patch metadata in place and, for new blob content, append a history entry.

        Uploading the content the artifact already points at appends nothing.
        An archived artifact only accepts a patch that unarchives it.
        """
        chain = await self._authorize(principal, ids, PermissionLevel.WRITE)
        require_mutable_branch(chain)

        full_id = compose(ids.org, ids.project, ids.branch, artifact_id)
        artifact = await self.store.get(full_id, include_archived=True)

        changes = patch.model_dump(exclude_unset=True)
        archived = changes.pop("archived", None)
        changes = {k: v for k, v in changes.items() if v is not None}
        if "custom" in changes:
            changes["custom"] = {**(artifact.custom or {}), **changes["custom"]}
        if artifact.archived and archived is not False:
            raise ArchivedError(
                full_id,
                f"The Artifact [{full_id}] is archived."
                " It must first be unarchived before performing this operation.",
            )

        # Blob first: a storage failure aborts before any metadata changes
        blob_hash = await self.blob_store.put(blob) if blob is not None else None

        try:
            if archived is True and not artifact.archived:
                artifact.archive(principal.username)
            elif archived is False and artifact.archived:
                artifact.unarchive()

            await self.store.patch(chain, artifact, changes, principal.username)

            appended = False
            if blob is not None and blob_hash != artifact.current_hash:
                await self.store.append_history(chain, artifact, blob_hash, principal.username)
                appended = True
        except ModelVaultError:
            await self.session.rollback()
            raise

        await self.events.log(
            event_type=EventType.ARTIFACT_UPDATED,
            entity_type="artifact",
            entity_id=full_id,
            username=principal.username,
            payload={
                "fields": sorted(changes),
                "archived": archived,
                "hash": blob_hash if appended else None,
            },
        )
        await self._commit(f"Update of artifact [{full_id}]")
        if appended:
            await self._restore_blob(blob)
        return artifact

    async def remove(self, principal: User, ids: ChainIds, artifact_id: str) -> List[str]:
        """
        Delete an artifact's metadata, then collect blobs nobody references.

        Reference counts are taken after the deletion commits.

        Returns:
            Hashes whose blobs were physically removed
        """
        chain = await self._authorize(principal, ids, PermissionLevel.WRITE)
        require_mutable_branch(chain)

        full_id = compose(ids.org, ids.project, ids.branch, artifact_id)
        artifact = await self.store.get(full_id, include_archived=True)
        hashes = artifact.hashes

        try:
            await self.store.delete(chain, artifact)
        except ModelVaultError:
            await self.session.rollback()
            raise
        await self.events.log(
            event_type=EventType.ARTIFACT_DELETED,
            entity_type="artifact",
            entity_id=full_id,
            username=principal.username,
            payload={"hashes": hashes},
        )
        await self._commit(f"Removal of artifact [{full_id}]")

        removed = await self.release_blobs(hashes)
        logger.info(
            "Artifact removed",
            extra={"artifact_id": full_id, "blobs_removed": len(removed)},
        )
        return removed

    async def _restore_blob(self, blob: Optional[bytes]) -> None:
        # A removal that counted references before our commit may have
        # collected a deduplicated blob; the committed entry needs it back.
        if blob is not None:
            await self.blob_store.put(blob)

    async def _unreferenced(self, blob_hash: str) -> bool:
        return await self.store.count_hash_references(blob_hash) == 0

    async def release_blobs(self, hashes) -> List[str]:
        """
        Delete each blob whose hash no history entry references any more.

        Counting and deleting happen under the blob's shard lock, so they
        cannot interleave with the put() of a create or update.
        """
        removed = []
        for blob_hash in hashes:
            if blob_hash is None:
                continue
            if await self.blob_store.delete_if(blob_hash, self._unreferenced):
                removed.append(blob_hash)
        return removed

    async def find(
        self,
        principal: User,
        ids: ChainIds,
        artifact_id: str,
        *,
        include_archived: bool = False,
    ) -> Artifact:
        chain = await self._authorize(
            principal, ids, PermissionLevel.READ, allow_archived=include_archived
        )
        full_id = child_id(chain.branch.id, artifact_id)
        return await self.store.get(full_id, include_archived=include_archived)

    async def search(
        self,
        principal: User,
        ids: ChainIds,
        *,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        custom: Optional[dict] = None,
        limit: int = 0,
        skip: int = 0,
        include_archived: bool = False,
    ) -> List[Artifact]:
        chain = await self._authorize(
            principal, ids, PermissionLevel.READ, allow_archived=include_archived
        )
        return await self.store.search(
            chain,
            filename=filename,
            content_type=content_type,
            custom=custom,
            limit=limit,
            skip=skip,
            include_archived=include_archived,
            deadline=time.monotonic() + self.settings.search_deadline_seconds,
        )

    async def get_blob(
        self,
        principal: User,
        ids: ChainIds,
        artifact_id: str,
        blob_hash: Optional[str] = None,
    ) -> Tuple[Artifact, bytes]:
        """
        Read the current blob of an artifact, or any blob from its history.

        Raises:
            NotFoundError: the artifact carries no blob, or ``blob_hash`` is
                not part of its history
        """
        artifact = await self.find(principal, ids, artifact_id)
        target = blob_hash or artifact.current_hash
        if target is None:
            raise NotFoundError(f"The Artifact [{artifact.id}] has no blob.")
        if target not in artifact.hashes:
            raise NotFoundError(f"The Artifact [{artifact.id}] has no blob [{target}].")
        return artifact, await self.blob_store.get(target)

    async def collect_garbage(self, principal: User) -> List[str]:
        """
        Sweep the blob store and delete every blob with zero references.

        Only global admins may run a sweep.
        """
        if not principal.is_global_admin:
            raise PermissionDeniedError("blobs", PermissionLevel.ADMIN.value)

        referenced = await self.store.referenced_hashes()
        candidates = [h for h in await self.blob_store.list_hashes() if h not in referenced]
        removed = await self.release_blobs(candidates)

        await self.events.log(
            event_type=EventType.BLOBS_COLLECTED,
            entity_type="blob",
            entity_id="*",
            username=principal.username,
            payload={"count": len(removed)},
        )
        await self._commit("Garbage collection")
        logger.info("Garbage collection finished", extra={"blobs_removed": len(removed)})
        return removed
