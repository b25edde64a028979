"""
HTTP API tests.

Users are inserted through the fixtures' session; every other record is
created through the API itself.
"""

import base64

import pytest
import pytest_asyncio

from modelvault.kernel.artifacts import hash_blob

API = "/api/v1"
ORG = f"{API}/orgs/acme"
PROJECT = f"{ORG}/projects/rocket"
ARTIFACTS = f"{PROJECT}/branches/master/artifacts"
ELEMENTS = f"{PROJECT}/branches/master/elements"


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest_asyncio.fixture
async def seeded(client, auth_headers, admin, alice, bob):
    """acme/rocket created over HTTP, alice with write on acme."""
    root = auth_headers("root")
    response = await client.post(f"{API}/orgs", json={"id": "acme", "name": "Acme"}, headers=root)
    assert response.status_code == 201
    response = await client.put(
        f"{ORG}/permissions", json={"username": "alice", "level": "write"}, headers=root
    )
    assert response.status_code == 200
    response = await client.post(
        f"{ORG}/projects", json={"id": "rocket", "name": "Rocket"}, headers=root
    )
    assert response.status_code == 201
    return client


class TestAuth:

    async def test_login_returns_token(self, client, alice):
        response = await client.post(
            f"{API}/auth/login", json={"username": "alice", "password": "TestPassword123"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"

        me = await client.get(
            f"{API}/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
        )
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    async def test_bad_password(self, client, alice):
        response = await client.post(
            f"{API}/auth/login", json={"username": "alice", "password": "nope"}
        )

        assert response.status_code == 401

    async def test_missing_token(self, client):
        response = await client.get(f"{API}/orgs")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_garbage_token(self, client):
        response = await client.get(f"{API}/orgs", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    @pytest.mark.parametrize("path", ["/health", "/"])
    async def test_public_endpoints(self, client, path):
        response = await client.get(path)

        assert response.status_code == 200

    async def test_request_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-123"


class TestResources:

    async def test_project_has_master_branch(self, seeded, auth_headers):
        response = await seeded.get(f"{PROJECT}/branches", headers=auth_headers("alice"))

        assert response.status_code == 200
        assert [b["id"] for b in response.json()] == ["acme:rocket:master"]

    async def test_org_listing_filtered(self, seeded, auth_headers):
        response = await seeded.get(f"{API}/orgs", headers=auth_headers("bob"))

        assert response.status_code == 200
        assert response.json() == []

    async def test_unknown_permission_level_rejected(self, seeded, auth_headers):
        response = await seeded.put(
            f"{ORG}/permissions", json={"username": "bob", "level": "owner"}, headers=auth_headers("root")
        )

        assert response.status_code == 422


class TestArtifacts:

    async def test_upload_and_download(self, seeded, auth_headers):
        alice = auth_headers("alice")
        payload = b"\x00model weights\xff"

        response = await seeded.post(
            ARTIFACTS,
            json={"id": "model", "filename": "model.bin", "blob": _b64(payload)},
            headers=alice,
        )

        assert response.status_code == 201
        body = response.json()
        assert body["id"] == "acme:rocket:master:model"
        assert body["current_hash"] == hash_blob(payload)
        assert [e["user"] for e in body["history"]] == ["alice"]

        response = await seeded.get(f"{ARTIFACTS}/model/blob", headers=alice)

        assert response.status_code == 200
        assert response.content == payload
        assert response.headers["ETag"] == f'"{hash_blob(payload)}"'
        assert 'filename="model.bin"' in response.headers["Content-Disposition"]

    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("模型.bin", "attachment; filename=\"__.bin\"; filename*=UTF-8''%E6%A8%A1%E5%9E%8B.bin"),
            ('say "hi".txt', "attachment; filename=\"say _hi_.txt\"; filename*=UTF-8''say%20%22hi%22.txt"),
        ],
    )
    async def test_download_with_unsafe_filename(self, seeded, auth_headers, filename, expected):
        alice = auth_headers("alice")
        await seeded.post(
            ARTIFACTS,
            json={"id": "m", "filename": filename, "blob": _b64(b"weights")},
            headers=alice,
        )

        response = await seeded.get(f"{ARTIFACTS}/m/blob", headers=alice)

        assert response.status_code == 200
        assert response.content == b"weights"
        assert response.headers["Content-Disposition"] == expected

    async def test_raw_upload_appends_history(self, seeded, auth_headers):
        alice = auth_headers("alice")
        await seeded.post(ARTIFACTS, json={"id": "model", "blob": _b64(b"v1")}, headers=alice)

        response = await seeded.put(f"{ARTIFACTS}/model/blob", content=b"v2", headers=alice)

        assert response.status_code == 200
        assert [e["hash"] for e in response.json()["history"]] == [hash_blob(b"v1"), hash_blob(b"v2")]

        old = await seeded.get(
            f"{ARTIFACTS}/model/blob", params={"hash": hash_blob(b"v1")}, headers=alice
        )
        assert old.content == b"v1"

    async def test_search_by_custom(self, seeded, auth_headers):
        alice = auth_headers("alice")
        await seeded.post(ARTIFACTS, json={"id": "a", "custom": {"stage": "prod-1"}}, headers=alice)
        await seeded.post(ARTIFACTS, json={"id": "b", "custom": {"stage": "dev"}}, headers=alice)

        response = await seeded.get(ARTIFACTS, params={"custom": "stage=prod"}, headers=alice)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["items"][0]["id"] == "acme:rocket:master:a"

    async def test_malformed_custom_filter(self, seeded, auth_headers):
        response = await seeded.get(ARTIFACTS, params={"custom": "stage"}, headers=auth_headers("alice"))

        assert response.status_code == 400
        assert response.json()["level"] == "warn"

    async def test_delete_releases_blob(self, seeded, auth_headers, blob_store):
        alice = auth_headers("alice")
        await seeded.post(ARTIFACTS, json={"id": "model", "blob": _b64(b"gone")}, headers=alice)

        response = await seeded.delete(f"{ARTIFACTS}/model", headers=alice)

        assert response.status_code == 200
        assert response.json()["data"]["blobs_removed"] == [hash_blob(b"gone")]
        assert not await blob_store.exists(hash_blob(b"gone"))


class TestElements:

    async def test_create_get_and_list(self, seeded, auth_headers):
        alice = auth_headers("alice")
        response = await seeded.post(ELEMENTS, json={"id": "pkg", "name": "Package"}, headers=alice)
        assert response.status_code == 201
        await seeded.post(ELEMENTS, json={"id": "block", "parent": "pkg"}, headers=alice)

        response = await seeded.get(f"{ELEMENTS}/block", headers=alice)
        assert response.status_code == 200
        assert response.json()["parent_id"] == "acme:rocket:master:pkg"

        response = await seeded.get(ELEMENTS, params={"parent": "pkg"}, headers=alice)
        assert [e["id"] for e in response.json()["items"]] == ["acme:rocket:master:block"]

    async def test_relationship_without_target(self, seeded, auth_headers):
        response = await seeded.post(
            ELEMENTS, json={"id": "uses", "source": "a"}, headers=auth_headers("alice")
        )

        assert response.status_code == 422

    async def test_delete_needs_admin(self, seeded, auth_headers):
        await seeded.post(ELEMENTS, json={"id": "pkg"}, headers=auth_headers("alice"))
        await seeded.post(ELEMENTS, json={"id": "block", "parent": "pkg"}, headers=auth_headers("alice"))

        response = await seeded.delete(f"{ELEMENTS}/pkg", headers=auth_headers("alice"))
        assert response.status_code == 403

        response = await seeded.delete(ELEMENTS, params={"ids": ["pkg"]}, headers=auth_headers("root"))
        assert response.status_code == 200
        assert response.json() == {
            "removed": ["acme:rocket:master:pkg", "acme:rocket:master:block"],
            "count": 2,
        }


class TestErrorMapping:

    async def test_forbidden(self, seeded, auth_headers):
        response = await seeded.post(ARTIFACTS, json={"id": "x"}, headers=auth_headers("bob"))

        assert response.status_code == 403
        assert response.json() == {"detail": "Insufficient permission.", "level": "warn"}

    async def test_not_found(self, seeded, auth_headers):
        response = await seeded.get(f"{ARTIFACTS}/ghost", headers=auth_headers("alice"))

        assert response.status_code == 404
        assert "ghost" in response.json()["detail"]

    async def test_conflict(self, seeded, auth_headers):
        alice = auth_headers("alice")
        await seeded.post(ARTIFACTS, json={"id": "dup"}, headers=alice)

        response = await seeded.post(ARTIFACTS, json={"id": "dup"}, headers=alice)

        assert response.status_code == 409
        assert "already exists" in response.json()["detail"]

    async def test_invalid_identifier(self, seeded, auth_headers):
        response = await seeded.post(ARTIFACTS, json={"id": "bad id!"}, headers=auth_headers("alice"))

        assert response.status_code == 400

    async def test_invalid_base64(self, seeded, auth_headers):
        response = await seeded.post(
            ARTIFACTS, json={"id": "x", "blob": "abc"}, headers=auth_headers("alice")
        )

        assert response.status_code == 422


class TestAdmin:

    async def test_gc_requires_admin(self, seeded, auth_headers):
        response = await seeded.post(f"{API}/admin/gc", headers=auth_headers("alice"))

        assert response.status_code == 403

    async def test_gc_sweeps_orphans(self, seeded, auth_headers, blob_store):
        orphan = await blob_store.put(b"orphan")

        response = await seeded.post(f"{API}/admin/gc", headers=auth_headers("root"))

        assert response.status_code == 200
        assert response.json() == {"deleted": [orphan], "count": 1}
