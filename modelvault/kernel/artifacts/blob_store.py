"""
Content-addressable blob store on the local filesystem.

Blobs are named by the SHA-256 hex digest of their bytes and stored once at
``<root>/<hash[0:2]>/<hash>``. This layout is shared with blobs written by
earlier deployments and must not change.

Writes go to a temporary file in the shard directory, are fsync'd, and are
moved into place with ``os.replace``, so a reader never observes a partial
blob and two writers of identical content cannot corrupt each other.
Within a process, check-and-write and check-and-delete are serialized per
shard directory.
"""

import asyncio
import errno
import hashlib
import os
import re
import uuid
import weakref
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

from modelvault.config import Settings
from modelvault.errors import DataFormatError, NotFoundError, OperationError
from modelvault.logging_config import get_logger

logger = get_logger(__name__)

HASH_PATTERN = re.compile(r"^[0-9a-f]{64}$")
SHARD_LENGTH = 2


def hash_blob(data: bytes) -> str:
    """Compute the SHA-256 hex digest used as a blob's address."""
    return hashlib.sha256(data).hexdigest()


def validate_hash(blob_hash: Optional[str]) -> str:
    if blob_hash is None:
        raise DataFormatError("A null hash does not name a blob.")
    if not isinstance(blob_hash, str) or not HASH_PATTERN.fullmatch(blob_hash):
        raise DataFormatError(f"Invalid blob hash [{blob_hash}].")
    return blob_hash


class BlobStore:
    """
    Deduplicating blob storage keyed by content hash.

    All file I/O runs in a worker thread and is bounded by ``timeout``
    seconds; timeouts and OS errors surface as OperationError.
    """

    def __init__(self, root: os.PathLike | str, *, timeout: float = 30.0):
        self.root = Path(root)
        self.timeout = timeout
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "BlobStore":
        return cls(settings.artifact_root, timeout=settings.storage_timeout_seconds)

    def path_for(self, blob_hash: str) -> Path:
        validate_hash(blob_hash)
        return self.root / blob_hash[:SHARD_LENGTH] / blob_hash

    def _lock_for(self, blob_hash: str) -> asyncio.Lock:
        shard = blob_hash[:SHARD_LENGTH]
        lock = self._locks.get(shard)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[shard] = lock
        return lock

    async def put(self, data: bytes) -> str:
        """
        Store ``data`` if no blob with its hash exists yet.

        Returns:
            The SHA-256 hex digest of ``data``, whether or not it was written
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise DataFormatError("Blob content must be bytes.")
        data = bytes(data)
        blob_hash = hash_blob(data)
        dest = self.path_for(blob_hash)

        async with self._lock_for(blob_hash):
            written = await self._run(self._write_if_absent, dest, data, op="write", blob_hash=blob_hash)

        if written:
            logger.info("Stored blob", extra={"hash": blob_hash, "size_bytes": len(data)})
        else:
            logger.debug("Blob already stored", extra={"hash": blob_hash})
        return blob_hash

    async def get(self, blob_hash: str) -> bytes:
        """Read a blob. Raises NotFoundError when it does not exist."""
        path = self.path_for(blob_hash)
        data = await self._run(self._read, path, op="read", blob_hash=blob_hash)
        if data is None:
            raise NotFoundError(f"Artifact blob [{blob_hash}] not found.")
        return data

    async def exists(self, blob_hash: str) -> bool:
        path = self.path_for(blob_hash)
        return await self._run(path.is_file, op="stat", blob_hash=blob_hash)

    async def delete(self, blob_hash: str) -> bool:
        """
        Remove a blob and its shard directory when that becomes empty.

        Deleting an absent blob is a no-op so concurrent garbage collection
        passes cannot fail each other.

        Returns:
            True if a blob was removed
        """
        return await self.delete_if(blob_hash, None)

    async def delete_if(
        self,
        blob_hash: str,
        predicate: Optional[Callable[[str], Awaitable[bool]]],
    ) -> bool:
        """
        Remove a blob only when ``await predicate(blob_hash)`` is true.

        The predicate runs under the shard lock, so a put() of the same
        content waits until the decision and the unlink are both done.
        """
        path = self.path_for(blob_hash)
        async with self._lock_for(blob_hash):
            if predicate is not None and not await predicate(blob_hash):
                return False
            removed = await self._run(self._remove, path, op="delete", blob_hash=blob_hash)
        if removed:
            logger.info("Deleted blob", extra={"hash": blob_hash})
        return removed

    async def list_hashes(self) -> List[str]:
        """List every stored blob hash. In-flight temporary files are skipped."""
        return await self._run(self._list, op="list", blob_hash=None)

    async def _run(self, func: Callable[..., Any], *args: Any, op: str, blob_hash: Optional[str]) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Blob %s timed out", op, extra={"hash": blob_hash, "timeout": self.timeout})
            raise OperationError(
                f"Blob {op} timed out after {self.timeout}s.",
                conflict=False,
                cause=exc,
            ) from exc
        except OSError as exc:
            logger.error("Blob %s failed: %s", op, exc, extra={"hash": blob_hash})
            raise OperationError(
                f"Blob {op} failed.",
                conflict=False,
                cause=exc,
            ) from exc

    # Blocking helpers, executed in a worker thread

    @staticmethod
    def _write_if_absent(dest: Path, data: bytes) -> bool:
        if dest.is_file():
            return False

        tmp = dest.with_name(f"{dest.name}.tmp-{os.getpid()}-{uuid.uuid4().hex}")
        for attempt in range(2):
            dest.parent.mkdir(parents=True, exist_ok=True)
            try:
                with open(tmp, "wb") as wf:
                    wf.write(data)
                    wf.flush()
                    os.fsync(wf.fileno())
                break
            except FileNotFoundError:
                # Shard directory pruned by another process between mkdir and open
                tmp.unlink(missing_ok=True)
                if attempt:
                    raise
            except BaseException:
                tmp.unlink(missing_ok=True)
                raise

        # Atomic rename; identical content makes a lost race harmless
        os.replace(tmp, dest)
        return True

    @staticmethod
    def _read(path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    @staticmethod
    def _remove(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        try:
            path.parent.rmdir()
        except OSError as exc:
            # Not empty, or already pruned by a concurrent delete
            if exc.errno not in (errno.ENOTEMPTY, errno.EEXIST, errno.ENOENT):
                raise
        return True

    def _list(self) -> List[str]:
        if not self.root.is_dir():
            return []
        hashes = []
        for shard in sorted(self.root.iterdir()):
            if not shard.is_dir() or len(shard.name) != SHARD_LENGTH:
                continue
            for entry in sorted(shard.iterdir()):
                if HASH_PATTERN.fullmatch(entry.name) and entry.name.startswith(shard.name):
                    hashes.append(entry.name)
        return hashes
