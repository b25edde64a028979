"""Integration tests for the artifact metadata store."""

import time

import pytest
import pytest_asyncio

from modelvault.errors import DataFormatError, NotFoundError, OperationError
from modelvault.kernel.artifacts import ArtifactMetadataStore
from modelvault.kernel.hierarchy import ChainIds, HierarchyValidator
from modelvault.kernel.models import Artifact, ArtifactHistoryEntry
from modelvault.schemas.resource import BranchCreate


def _artifact(chain, leaf, *, blob_hash=None, user="root", **fields):
    return Artifact(
        id=f"{chain.branch.id}:{leaf}",
        project_id=chain.project.id,
        branch_id=chain.branch.id,
        custom=fields.pop("custom", {}),
        history=[ArtifactHistoryEntry(position=0, hash=blob_hash, user=user)],
        **fields,
    )


@pytest_asyncio.fixture
async def chain(db_session, hierarchy):
    return await HierarchyValidator(db_session).validate_chain(hierarchy)


@pytest.fixture
def store(db_session, settings):
    return ArtifactMetadataStore(db_session, settings)


class TestMetadataStore:

    async def test_add_and_get(self, store, chain, admin):
        await store.add(chain, _artifact(chain, "a1", filename="a.bin"))

        found = await store.get("acme:rocket:master:a1")

        assert found.filename == "a.bin"
        assert found.current_hash is None
        assert await store.exists("acme:rocket:master:a1") is True

    async def test_get_missing(self, store, chain):
        with pytest.raises(NotFoundError, match="acme:rocket:master:nope"):
            await store.get("acme:rocket:master:nope")

    async def test_archived_hidden_unless_requested(self, store, chain, admin):
        artifact = _artifact(chain, "old")
        artifact.archive("root")
        await store.add(chain, artifact)

        with pytest.raises(NotFoundError):
            await store.get(artifact.id)
        assert (await store.get(artifact.id, include_archived=True)).archived is True
        assert await store.exists(artifact.id) is True

    async def test_duplicate_id_is_a_conflict(self, store, chain, db_session, admin):
        await store.add(chain, _artifact(chain, "dup"))

        with pytest.raises(OperationError):
            await store.add(chain, _artifact(chain, "dup"))
        await db_session.rollback()

    async def test_append_history_keeps_earlier_entries(self, store, chain, admin):
        artifact = _artifact(chain, "h", blob_hash="a" * 64)
        await store.add(chain, artifact)

        await store.append_history(chain, artifact, "b" * 64, "root")
        await store.append_history(chain, artifact, "c" * 64, "root")

        assert [e.position for e in artifact.history] == [0, 1, 2]
        assert [e.hash for e in artifact.history] == ["a" * 64, "b" * 64, "c" * 64]
        assert artifact.current_hash == "c" * 64

    async def test_patch_rejects_unknown_fields(self, store, chain, admin):
        artifact = _artifact(chain, "p")
        await store.add(chain, artifact)

        with pytest.raises(OperationError, match="cannot be changed"):
            await store.patch(chain, artifact, {"project_id": "elsewhere"}, "root")

    async def test_tag_branch_refuses_mutation(self, db_session, store, resource_service, admin, hierarchy):
        await resource_service.create_branch(admin, "acme", "rocket", BranchCreate(id="v1", tag=True))
        tag_chain = await HierarchyValidator(db_session).validate_chain(ChainIds("acme", "rocket", "v1"))

        with pytest.raises(OperationError, match="tag"):
            await store.add(tag_chain, _artifact(tag_chain, "t"))

    async def test_branchless_chain_refused(self, db_session, store, hierarchy):
        project_chain = await HierarchyValidator(db_session).validate_chain(ChainIds("acme", "rocket"))

        with pytest.raises(DataFormatError, match="branch"):
            await store.add(project_chain, Artifact(id="acme:rocket:x"))

    async def test_hash_reference_counting(self, store, chain, admin):
        shared = "d" * 64
        one = _artifact(chain, "one", blob_hash=shared)
        two = _artifact(chain, "two", blob_hash=shared)
        await store.add(chain, one)
        await store.add(chain, two)

        assert await store.count_hash_references(shared) == 2
        assert await store.referenced_hashes() == {shared}

        await store.delete(chain, one)

        assert await store.count_hash_references(shared) == 1


class TestSearch:

    async def _seed(self, store, chain):
        await store.add(chain, _artifact(chain, "a", filename="model.onnx", content_type="application/onnx",
                                         custom={"stage": "production"}))
        await store.add(chain, _artifact(chain, "b", filename="model.onnx", custom={"stage": "prototype"}))
        await store.add(chain, _artifact(chain, "c", filename="notes.txt", content_type="text/plain",
                                         custom={"stage": "pro_%"}))

    async def test_filters(self, store, chain, admin):
        await self._seed(store, chain)

        by_name = await store.search(chain, filename="model.onnx")
        by_type = await store.search(chain, content_type="text/plain")
        by_custom = await store.search(chain, custom={"stage": "pro"})

        assert [a.id.rsplit(":", 1)[1] for a in by_name] == ["a", "b"]
        assert [a.id.rsplit(":", 1)[1] for a in by_type] == ["c"]
        assert [a.id.rsplit(":", 1)[1] for a in by_custom] == ["a", "b", "c"]

    async def test_custom_prefix_escapes_wildcards(self, store, chain, admin):
        await self._seed(store, chain)

        found = await store.search(chain, custom={"stage": "pro_%"})

        assert [a.id.rsplit(":", 1)[1] for a in found] == ["c"]

    async def test_limit_and_skip(self, store, chain, admin):
        await self._seed(store, chain)

        page = await store.search(chain, limit=1, skip=1)

        assert [a.id.rsplit(":", 1)[1] for a in page] == ["b"]

    async def test_negative_limit_rejected(self, store, chain):
        with pytest.raises(DataFormatError):
            await store.search(chain, limit=-1)

    async def test_unbounded_search_batches_past_threshold(self, store, chain, admin, settings):
        settings.search_batch_threshold = 2
        settings.search_batch_size = 2
        for i in range(5):
            await store.add(chain, _artifact(chain, f"n{i}"))

        found = await store.search(chain)

        assert [a.id.rsplit(":", 1)[1] for a in found] == ["n0", "n1", "n2", "n3", "n4"]

    async def test_batched_search_honours_deadline(self, store, chain, admin, settings):
        settings.search_batch_threshold = 1
        settings.search_batch_size = 1
        for i in range(3):
            await store.add(chain, _artifact(chain, f"n{i}"))

        with pytest.raises(OperationError, match="deadline") as exc_info:
            await store.search(chain, deadline=time.monotonic() - 1)
        assert exc_info.value.status_code == 500
