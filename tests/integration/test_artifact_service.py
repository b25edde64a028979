"""Integration tests for the artifact orchestrator."""

import asyncio

import pytest

from modelvault.errors import (
    ArchivedError,
    NotFoundError,
    OperationError,
    PermissionDeniedError,
)
from modelvault.database import build_session_maker
from modelvault.kernel.artifacts import ArtifactService, hash_blob
from modelvault.kernel.hierarchy import ChainIds
from modelvault.kernel.models import EventType
from modelvault.kernel.permissions import PermissionLevel
from modelvault.schemas.artifact import ArtifactCreate, ArtifactUpdate
from modelvault.schemas.resource import BranchCreate, OrgCreate, ProjectCreate


class TestEndToEnd:

    async def test_create_update_remove_lifecycle(
        self, artifact_service, resource_service, blob_store, admin
    ):
        """Org -> project -> artifact with two blobs -> removal collects both."""
        org = await resource_service.create_org(admin, OrgCreate(id="O", name="O"))
        assert org.permissions == {"root": ["read", "write", "admin"]}
        project = await resource_service.create_project(admin, "O", ProjectCreate(id="P", name="P"))
        assert project.id == "O:P"

        ids = ChainIds("O", "P", "master")
        h1, h2 = hash_blob(b"b1"), hash_blob(b"b2")

        artifact = await artifact_service.create(admin, ids, ArtifactCreate(id="A1"), blob=b"b1")
        assert artifact.id == "O:P:master:A1"

        artifact = await artifact_service.update(admin, ids, "A1", ArtifactUpdate(), blob=b"b2")
        assert [e.hash for e in artifact.history] == [h1, h2]
        assert all(e.user == "root" for e in artifact.history)
        assert await blob_store.exists(h1)
        assert await blob_store.exists(h2)

        removed = await artifact_service.remove(admin, ids, "A1")

        assert sorted(removed) == sorted([h1, h2])
        assert not await blob_store.exists(h1)
        assert not await blob_store.exists(h2)
        with pytest.raises(NotFoundError):
            await artifact_service.find(admin, ids, "A1")


class TestCreate:

    async def test_inherited_write_allows_create(self, artifact_service, hierarchy, alice):
        artifact = await artifact_service.create(
            alice, hierarchy, ArtifactCreate(id="model", filename="model.json"), blob=b"{}"
        )

        assert artifact.created_by == "alice"
        assert artifact.content_type == "application/json"
        assert artifact.current_hash == hash_blob(b"{}")

    async def test_metadata_only_artifact(self, artifact_service, hierarchy, admin):
        artifact = await artifact_service.create(admin, hierarchy, ArtifactCreate(id="empty"))

        assert artifact.current_hash is None
        assert [e.hash for e in artifact.history] == [None]

    async def test_read_only_user_denied(self, artifact_service, resource_service, hierarchy, admin, bob):
        await resource_service.set_permission(
            admin, ChainIds("acme", "rocket"), "bob", PermissionLevel.READ
        )

        with pytest.raises(PermissionDeniedError) as exc_info:
            await artifact_service.create(bob, hierarchy, ArtifactCreate(id="x"), blob=b"x")
        assert exc_info.value.resource_id == "acme:rocket"

    async def test_project_override_lowers_org_grant(
        self, artifact_service, resource_service, hierarchy, admin, alice
    ):
        await resource_service.set_permission(
            admin, ChainIds("acme", "rocket"), "alice", PermissionLevel.READ
        )

        with pytest.raises(PermissionDeniedError):
            await artifact_service.create(alice, hierarchy, ArtifactCreate(id="x"))

    async def test_duplicate_id_rejected(self, artifact_service, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="dup"))

        with pytest.raises(OperationError, match="already exists") as exc_info:
            await artifact_service.create(admin, hierarchy, ArtifactCreate(id="dup"))
        assert exc_info.value.status_code == 409

    async def test_missing_branch(self, artifact_service, hierarchy, admin):
        with pytest.raises(NotFoundError, match="acme:rocket:ghost"):
            await artifact_service.create(
                admin, ChainIds("acme", "rocket", "ghost"), ArtifactCreate(id="x")
            )

    async def test_dedup_across_artifacts(self, artifact_service, blob_store, hierarchy, admin):
        one = await artifact_service.create(admin, hierarchy, ArtifactCreate(id="one"), blob=b"same")
        two = await artifact_service.create(admin, hierarchy, ArtifactCreate(id="two"), blob=b"same")

        assert one.current_hash == two.current_hash
        assert await blob_store.list_hashes() == [one.current_hash]

    async def test_event_logged(self, artifact_service, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="logged"), blob=b"z")

        events = await artifact_service.events.history("acme:rocket:master:logged")
        assert [e.event_type for e in events] == [EventType.ARTIFACT_CREATED]
        assert events[0].payload["hash"] == hash_blob(b"z")


class TestUpdate:

    async def test_same_blob_appends_nothing(self, artifact_service, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"), blob=b"v1")

        artifact = await artifact_service.update(admin, hierarchy, "a", ArtifactUpdate(), blob=b"v1")

        assert len(artifact.history) == 1

    async def test_history_is_append_only(self, artifact_service, hierarchy, admin, alice):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"), blob=b"v1")
        first = (await artifact_service.find(admin, hierarchy, "a")).history[0]
        snapshot = (first.hash, first.user, first.timestamp)

        await artifact_service.update(alice, hierarchy, "a", ArtifactUpdate(), blob=b"v2")
        artifact = await artifact_service.update(admin, hierarchy, "a", ArtifactUpdate(), blob=b"v1")

        assert [e.hash for e in artifact.history] == [
            hash_blob(b"v1"),
            hash_blob(b"v2"),
            hash_blob(b"v1"),
        ]
        assert [e.user for e in artifact.history] == ["root", "alice", "root"]
        head = artifact.history[0]
        assert (head.hash, head.user, head.timestamp) == snapshot

    async def test_metadata_patch_in_place(self, artifact_service, hierarchy, admin):
        await artifact_service.create(
            admin, hierarchy, ArtifactCreate(id="a", custom={"stage": "dev", "owner": "ml"})
        )

        artifact = await artifact_service.update(
            admin,
            hierarchy,
            "a",
            ArtifactUpdate(filename="weights.bin", custom={"stage": "prod"}),
        )

        assert artifact.filename == "weights.bin"
        assert artifact.custom == {"stage": "prod", "owner": "ml"}
        assert len(artifact.history) == 1

    async def test_archived_artifact_must_be_unarchived(self, artifact_service, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"))
        await artifact_service.update(admin, hierarchy, "a", ArtifactUpdate(archived=True))

        with pytest.raises(NotFoundError):
            await artifact_service.find(admin, hierarchy, "a")
        with pytest.raises(ArchivedError):
            await artifact_service.update(admin, hierarchy, "a", ArtifactUpdate(filename="x"))

        artifact = await artifact_service.update(
            admin, hierarchy, "a", ArtifactUpdate(archived=False, filename="x")
        )
        assert artifact.archived is False
        assert artifact.filename == "x"

    async def test_find_archived_when_requested(self, artifact_service, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"))
        await artifact_service.update(admin, hierarchy, "a", ArtifactUpdate(archived=True))

        artifact = await artifact_service.find(admin, hierarchy, "a", include_archived=True)

        assert artifact.archived is True
        assert artifact.archived_by == "root"


class TestTagBranches:

    @pytest.fixture
    def tag_ids(self):
        return ChainIds("acme", "rocket", "v1")

    async def test_tag_branch_is_immutable(self, artifact_service, resource_service, hierarchy, admin, tag_ids):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"), blob=b"x")
        await resource_service.create_branch(admin, "acme", "rocket", BranchCreate(id="v1", tag=True))

        with pytest.raises(OperationError, match="tag"):
            await artifact_service.create(admin, tag_ids, ArtifactCreate(id="a"), blob=b"x")
        with pytest.raises(OperationError, match="tag"):
            await artifact_service.update(admin, tag_ids, "a", ArtifactUpdate(filename="y"))
        with pytest.raises(OperationError, match="tag"):
            await artifact_service.remove(admin, tag_ids, "a")


class TestBlobs:

    async def test_get_current_and_historical_blob(self, artifact_service, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"), blob=b"old")
        await artifact_service.update(admin, hierarchy, "a", ArtifactUpdate(), blob=b"new")

        _, current = await artifact_service.get_blob(admin, hierarchy, "a")
        _, old = await artifact_service.get_blob(admin, hierarchy, "a", hash_blob(b"old"))

        assert current == b"new"
        assert old == b"old"

    async def test_hash_outside_history_not_served(self, artifact_service, blob_store, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"), blob=b"mine")
        foreign = await blob_store.put(b"someone else's")

        with pytest.raises(NotFoundError):
            await artifact_service.get_blob(admin, hierarchy, "a", foreign)

    async def test_metadata_only_has_no_blob(self, artifact_service, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"))

        with pytest.raises(NotFoundError, match="has no blob"):
            await artifact_service.get_blob(admin, hierarchy, "a")

    async def test_outsider_cannot_read(self, artifact_service, hierarchy, admin, bob):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a"), blob=b"secret")

        with pytest.raises(PermissionDeniedError):
            await artifact_service.get_blob(bob, hierarchy, "a")


class TestGarbageCollection:

    async def test_shared_blob_survives_single_removal(self, artifact_service, blob_store, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="one"), blob=b"shared")
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="two"), blob=b"shared")

        removed = await artifact_service.remove(admin, hierarchy, "one")

        assert removed == []
        assert await blob_store.exists(hash_blob(b"shared"))

        removed = await artifact_service.remove(admin, hierarchy, "two")

        assert removed == [hash_blob(b"shared")]
        assert not await blob_store.exists(hash_blob(b"shared"))

    async def test_dedup_create_survives_concurrent_removal(
        self, artifact_service, blob_store, db_engine, settings, hierarchy, admin, monkeypatch
    ):
        """A removal that commits while a dedup create is in flight must not lose the blob."""
        blob_hash = hash_blob(b"shared")
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="one"), blob=b"shared")

        staged, resume = asyncio.Event(), asyncio.Event()
        add = artifact_service.store.add

        async def add_after_removal(chain, artifact):
            staged.set()
            await resume.wait()
            return await add(chain, artifact)

        monkeypatch.setattr(artifact_service.store, "add", add_after_removal)
        creating = asyncio.create_task(
            artifact_service.create(admin, hierarchy, ArtifactCreate(id="two"), blob=b"shared")
        )
        await staged.wait()

        async with build_session_maker(db_engine)() as other_session:
            remover = ArtifactService(other_session, blob_store, settings)
            assert await remover.remove(admin, hierarchy, "one") == [blob_hash]

        resume.set()
        two = await creating

        assert two.current_hash == blob_hash
        assert await blob_store.get(blob_hash) == b"shared"
        _, data = await artifact_service.get_blob(admin, hierarchy, "two")
        assert data == b"shared"

    async def test_sweep_removes_orphans_only(self, artifact_service, blob_store, hierarchy, admin):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="kept"), blob=b"kept")
        orphan = await blob_store.put(b"orphan")

        deleted = await artifact_service.collect_garbage(admin)

        assert deleted == [orphan]
        assert await blob_store.list_hashes() == [hash_blob(b"kept")]

    async def test_sweep_requires_global_admin(self, artifact_service, hierarchy, alice):
        with pytest.raises(PermissionDeniedError):
            await artifact_service.collect_garbage(alice)


class TestSearch:

    async def test_search_by_custom_prefix(self, artifact_service, hierarchy, admin, alice):
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="a", custom={"stage": "production"}))
        await artifact_service.create(admin, hierarchy, ArtifactCreate(id="b", custom={"stage": "dev"}))

        found = await artifact_service.search(alice, hierarchy, custom={"stage": "prod"})

        assert [a.id for a in found] == ["acme:rocket:master:a"]

    async def test_search_requires_read(self, artifact_service, hierarchy, bob):
        with pytest.raises(PermissionDeniedError):
            await artifact_service.search(bob, hierarchy)
