"""Unit tests for the content-addressable blob store."""

import asyncio
import hashlib

import pytest

from modelvault.errors import DataFormatError, NotFoundError, OperationError
from modelvault.kernel.artifacts.blob_store import BlobStore, hash_blob, validate_hash


@pytest.fixture
def store(tmp_path) -> BlobStore:
    return BlobStore(tmp_path / "blobs", timeout=5.0)


class TestHashing:

    def test_hash_is_sha256_hex(self):
        assert hash_blob(b"hello") == hashlib.sha256(b"hello").hexdigest()

    @pytest.mark.parametrize("bad", [None, "", "abc", "G" * 64, "A" * 64, "a" * 63 + "\n"])
    def test_validate_hash_rejects(self, bad):
        with pytest.raises(DataFormatError):
            validate_hash(bad)


class TestBlobStore:

    async def test_put_returns_hash_and_stores_under_shard(self, store: BlobStore):
        blob_hash = await store.put(b"model weights")

        assert blob_hash == hash_blob(b"model weights")
        path = store.path_for(blob_hash)
        assert path.parent.name == blob_hash[:2]
        assert path.read_bytes() == b"model weights"

    async def test_put_is_idempotent(self, store: BlobStore):
        first = await store.put(b"same bytes")
        mtime = store.path_for(first).stat().st_mtime_ns

        second = await store.put(b"same bytes")

        assert first == second
        assert store.path_for(first).stat().st_mtime_ns == mtime
        assert await store.list_hashes() == [first]

    async def test_concurrent_puts_of_same_content(self, store: BlobStore):
        hashes = await asyncio.gather(*(store.put(b"racing") for _ in range(10)))

        assert len(set(hashes)) == 1
        assert await store.get(hashes[0]) == b"racing"
        leftovers = [p.name for p in store.path_for(hashes[0]).parent.iterdir()]
        assert leftovers == [hashes[0]]

    async def test_empty_blob_is_storable(self, store: BlobStore):
        blob_hash = await store.put(b"")

        assert await store.get(blob_hash) == b""

    async def test_put_rejects_non_bytes(self, store: BlobStore):
        with pytest.raises(DataFormatError):
            await store.put("text")  # type: ignore[arg-type]

    async def test_get_missing_raises_not_found(self, store: BlobStore):
        with pytest.raises(NotFoundError):
            await store.get(hash_blob(b"never stored"))

    async def test_exists(self, store: BlobStore):
        blob_hash = await store.put(b"x")

        assert await store.exists(blob_hash) is True
        assert await store.exists(hash_blob(b"y")) is False

    async def test_delete_removes_blob_and_empty_shard(self, store: BlobStore):
        blob_hash = await store.put(b"short lived")
        shard = store.path_for(blob_hash).parent

        assert await store.delete(blob_hash) is True

        assert not shard.exists()
        assert await store.exists(blob_hash) is False

    async def test_delete_is_idempotent(self, store: BlobStore):
        blob_hash = await store.put(b"gone twice")

        assert await store.delete(blob_hash) is True
        assert await store.delete(blob_hash) is False
        assert await store.delete(hash_blob(b"never stored")) is False

    async def test_delete_keeps_shard_with_siblings(self, store: BlobStore):
        blob_hash = await store.put(b"keep my shard")
        shard = store.path_for(blob_hash).parent
        sibling = shard / (blob_hash[:2] + "0" * 62)
        sibling.write_bytes(b"other")

        await store.delete(blob_hash)

        assert shard.is_dir()
        assert sibling.exists()

    async def test_delete_if_respects_predicate(self, store: BlobStore):
        blob_hash = await store.put(b"still needed")

        async def referenced(_):
            return False

        assert await store.delete_if(blob_hash, referenced) is False
        assert await store.exists(blob_hash)

    async def test_put_waits_for_pending_delete(self, store: BlobStore):
        blob_hash = await store.put(b"contended")
        deciding, proceed = asyncio.Event(), asyncio.Event()

        async def unreferenced(_):
            deciding.set()
            await proceed.wait()
            return True

        deleting = asyncio.create_task(store.delete_if(blob_hash, unreferenced))
        await deciding.wait()
        putting = asyncio.create_task(store.put(b"contended"))
        await asyncio.sleep(0)
        proceed.set()

        assert await deleting is True
        await putting
        assert await store.get(blob_hash) == b"contended"

    async def test_list_hashes_skips_temp_files(self, store: BlobStore):
        blob_hash = await store.put(b"listed")
        tmp = store.path_for(blob_hash).with_name(f"{blob_hash}.tmp-1-abc")
        tmp.write_bytes(b"partial")

        assert await store.list_hashes() == [blob_hash]

    async def test_list_hashes_on_missing_root(self, tmp_path):
        assert await BlobStore(tmp_path / "nowhere").list_hashes() == []

    async def test_os_errors_become_operation_errors(self, tmp_path):
        root = tmp_path / "not-a-dir"
        root.write_bytes(b"file in the way")
        store = BlobStore(root, timeout=5.0)

        with pytest.raises(OperationError) as exc_info:
            await store.put(b"cannot land")

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.cause, OSError)
