"""End-to-end tests for the HTTP API."""

import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient

from gift_registry.api.main import _event_stream, create_app
from gift_registry.config import EventSettings
from gift_registry.core.models import DomainEvent
from gift_registry.core.services import Services


@pytest.fixture
def client(world):
    with TestClient(create_app(world.services)) as client:
        yield client


def _as(user) -> dict:
    return {"X-Forwarded-Email": user.email}


def _base(world) -> str:
    return f"/api/v1/inventories/{world.inventory.id}"


class TestSystemRoutes:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["database"] == "connected"
        assert resp.headers["X-Request-ID"]

    def test_me_provisions_unknown_user(self, client, world):
        resp = client.get(
            "/api/me",
            headers={
                "X-Forwarded-Email": "nina@example.com",
                "X-Forwarded-Preferred-Username": "Nina Newcomer",
            },
        )

        assert resp.status_code == 200, resp.text
        assert resp.json()["display_name"] == "Nina Newcomer"
        user = world.store.find_user_by_email("nina@example.com")
        assert (user.first_name, user.last_name) == ("Nina", "Newcomer")

    def test_missing_identity_is_unauthorized(self, client, monkeypatch):
        monkeypatch.delenv("USER_EMAIL", raising=False)
        resp = client.get("/api/me")
        assert resp.status_code == 401


class TestItemRoutes:
    def test_create_and_list(self, client, world):
        resp = client.post(
            f"{_base(world)}/items", json={"description": "Teapot"}, headers=_as(world.owner)
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["reference_number"] == 1

        listing = client.get(f"{_base(world)}/items", headers=_as(world.viewer))
        assert listing.status_code == 200
        assert listing.json()["total_items"] == 1

    def test_empty_description_is_rejected(self, client, world):
        resp = client.post(
            f"{_base(world)}/items", json={"description": ""}, headers=_as(world.owner)
        )
        assert resp.status_code == 422

    def test_claimant_cannot_create(self, client, world):
        resp = client.post(
            f"{_base(world)}/items", json={"description": "Vase"}, headers=_as(world.claimant)
        )
        assert resp.status_code == 403

    def test_collect_unassigned_is_bad_request(self, client, world):
        item = world.item()
        resp = client.post(
            f"{_base(world)}/items/{item.id}/collect", headers=_as(world.owner)
        )
        assert resp.status_code == 400

    def test_delete_then_missing(self, client, world):
        item = world.item()
        url = f"{_base(world)}/items/{item.id}"

        assert client.delete(url, headers=_as(world.owner)).status_code == 204
        resp = client.put(url, json={"description": "Gone"}, headers=_as(world.owner))
        assert resp.status_code == 404


class TestClaimRoutes:
    def test_claim_assign_flow(self, client, world):
        item = world.item()
        claims_url = f"{_base(world)}/items/{item.id}/claims"

        created = client.post(claims_url, headers=_as(world.claimant))
        assert created.status_code == 201, created.text
        claim_id = created.json()["id"]
        assert created.json()["user_name"] == "Carol Claimant"

        duplicate = client.post(claims_url, headers=_as(world.claimant))
        assert duplicate.status_code == 409

        other = client.post(claims_url, headers=_as(world.other_claimant)).json()["id"]

        assigned = client.post(
            f"{_base(world)}/items/{item.id}/assign",
            json={"claim_id": claim_id},
            headers=_as(world.owner),
        )
        assert assigned.status_code == 200
        assert assigned.json()["status"] == "ASSIGNED"

        conflict = client.post(
            f"{_base(world)}/items/{item.id}/assign",
            json={"claim_id": other},
            headers=_as(world.admin),
        )
        assert conflict.status_code == 409
        assert conflict.json()["detail"] == "This item is already assigned to Carol Claimant"

        withdraw = client.delete(claims_url, headers=_as(world.claimant))
        assert withdraw.status_code == 409

        unassigned = client.post(
            f"{_base(world)}/items/{item.id}/unassign", headers=_as(world.owner)
        )
        assert unassigned.json()["status"] == "INTERESTED"
        assert client.delete(claims_url, headers=_as(world.claimant)).status_code == 204

    def test_viewer_cannot_claim(self, client, world):
        item = world.item()
        resp = client.post(f"{_base(world)}/items/{item.id}/claims", headers=_as(world.viewer))
        assert resp.status_code == 403

    def test_unknown_item_is_not_found(self, client, world):
        resp = client.post(
            f"{_base(world)}/items/{uuid.uuid4()}/claims", headers=_as(world.claimant)
        )
        assert resp.status_code == 404

    def test_item_claims_require_manager(self, client, world):
        item = world.item()
        url = f"{_base(world)}/items/{item.id}/claims"
        client.post(url, headers=_as(world.claimant))

        assert client.get(url, headers=_as(world.claimant)).status_code == 403
        resp = client.get(url, headers=_as(world.admin))
        assert resp.status_code == 200
        assert len(resp.json()) == 1

    def test_manager_removes_claim(self, client, world):
        item = world.item()
        claim_id = client.post(
            f"{_base(world)}/items/{item.id}/claims", headers=_as(world.claimant)
        ).json()["id"]

        resp = client.delete(
            f"{_base(world)}/items/{item.id}/claims/{claim_id}", headers=_as(world.admin)
        )

        assert resp.status_code == 204
        assert world.store.find_claim(item.id, world.claimant.id) is None

    def test_all_claims(self, client, world):
        resp = client.get(f"{_base(world)}/claims", headers=_as(world.owner))

        assert resp.status_code == 200
        rows = resp.json()
        assert rows[0]["user_id"] == str(world.owner.id)
        assert client.get(f"{_base(world)}/claims", headers=_as(world.viewer)).status_code == 403


class TestInventoryRoutes:
    def test_create_list_and_get(self, client, world):
        created = client.post(
            "/api/v1/inventories", json={"name": "Cabin"}, headers=_as(world.claimant)
        )
        assert created.status_code == 201, created.text
        assert created.json()["is_owner"] is True

        listing = client.get("/api/v1/inventories", headers=_as(world.claimant))
        assert listing.status_code == 200
        assert [i["name"] for i in listing.json()] == ["Cabin", "Grandma's house"]

        inventory_id = created.json()["id"]
        opened = client.get(f"/api/v1/inventories/{inventory_id}", headers=_as(world.claimant))
        assert opened.status_code == 200
        assert opened.json()["role"] == "ADMIN"

    def test_duplicate_name_is_bad_request(self, client, world):
        resp = client.post(
            "/api/v1/inventories", json={"name": "Grandma's house"}, headers=_as(world.owner)
        )
        assert resp.status_code == 400

    def test_pending_member_is_activated(self, client, world):
        resp = client.get(_base(world), headers=_as(world.pending))

        assert resp.status_code == 200
        assert resp.json()["role"] == "CLAIMANT"
        assert world.member(world.pending).is_active

    def test_outsider_is_forbidden(self, client, world):
        assert client.get(_base(world), headers=_as(world.outsider)).status_code == 403


class TestCategoryRoutes:
    def test_create_and_list(self, client, world):
        created = client.post(
            f"{_base(world)}/categories", json={"name": "Garage"}, headers=_as(world.admin)
        )
        assert created.status_code == 201, created.text

        listing = client.get(f"{_base(world)}/categories", headers=_as(world.viewer))
        assert listing.status_code == 200
        assert [c["name"] for c in listing.json()] == ["Garage", "Kitchen"]

    def test_claimant_cannot_create(self, client, world):
        resp = client.post(
            f"{_base(world)}/categories", json={"name": "Garage"}, headers=_as(world.claimant)
        )
        assert resp.status_code == 403


class TestMemberRoutes:
    def test_finish_and_reset(self, client, world):
        finished = client.post(f"{_base(world)}/finished", headers=_as(world.claimant))
        assert finished.status_code == 200
        assert finished.json()["finished_at"] is not None

        member_id = world.member(world.claimant).id
        reset = client.put(
            f"{_base(world)}/members/{member_id}/finished",
            json={"finished": False},
            headers=_as(world.admin),
        )
        assert reset.status_code == 200
        assert reset.json()["finished_at"] is None

    def test_owner_cannot_finish(self, client, world):
        resp = client.post(f"{_base(world)}/finished", headers=_as(world.owner))
        assert resp.status_code == 400

    def test_roster_add_update_remove(self, client, world):
        url = f"{_base(world)}/members"

        added = client.post(
            url, json={"email": "nina@example.com", "role": "VIEWER"}, headers=_as(world.admin)
        )
        assert added.status_code == 201, added.text
        assert added.json()["status"] == "PENDING"
        member_id = added.json()["id"]

        roster = client.get(url, headers=_as(world.owner))
        assert roster.status_code == 200
        assert member_id in [m["id"] for m in roster.json()]

        updated = client.put(
            f"{url}/{member_id}", json={"role": "CLAIMANT"}, headers=_as(world.owner)
        )
        assert updated.status_code == 200
        assert (updated.json()["role"], updated.json()["status"]) == ("CLAIMANT", "PENDING")

        assert client.delete(f"{url}/{member_id}", headers=_as(world.owner)).status_code == 204
        assert client.delete(f"{url}/{member_id}", headers=_as(world.owner)).status_code == 404

    def test_duplicate_member_is_conflict(self, client, world):
        resp = client.post(
            f"{_base(world)}/members",
            json={"email": world.viewer.email, "role": "ADMIN"},
            headers=_as(world.owner),
        )
        assert resp.status_code == 409

    def test_claimant_cannot_list_members(self, client, world):
        resp = client.get(f"{_base(world)}/members", headers=_as(world.claimant))
        assert resp.status_code == 403


class TestEventRoutes:
    def test_outsider_is_forbidden(self, client, world):
        resp = client.get(f"{_base(world)}/events", headers=_as(world.outsider))
        assert resp.status_code == 403
        assert world.services.hub.connection_count(world.outsider.id) == 0

    def test_unknown_inventory_is_not_found(self, client, world):
        resp = client.get(f"/api/v1/inventories/{uuid.uuid4()}/events", headers=_as(world.owner))
        assert resp.status_code == 404

    def test_connection_limit_is_conflict(self, client, world):
        hub = world.services.hub
        for _ in range(hub.max_connections_per_user):
            assert hub.subscribe(world.inventory.id, world.claimant).ok

        resp = client.get(f"{_base(world)}/events", headers=_as(world.claimant))

        assert resp.status_code == 409
        assert resp.json()["detail"] == "Too many active connections"

    def test_stream_frames_and_release(self, world):
        hub = world.services.hub
        stream = hub.subscribe(world.inventory.id, world.viewer).value
        request = _ClientConnection()

        async def run():
            frames = _event_stream(request, hub, stream, poll_seconds=0.01)
            received = [await anext(frames)]
            hub.publish(DomainEvent.item_created(world.inventory.id, uuid.uuid4()))
            received.append(await anext(frames))
            request.gone = True
            rest = [frame async for frame in frames]
            return received, rest

        received, rest = asyncio.run(run())

        assert received[0].startswith("event: connected\n")
        assert received[1].startswith("event: item_created\n")
        assert rest == []
        assert hub.connection_count(world.viewer.id) == 0
        assert stream.closed


class _ClientConnection:
    """Request stand-in whose client can go away."""

    def __init__(self):
        self.gone = False

    async def is_disconnected(self) -> bool:
        return self.gone


def _http_scope(path: str, headers: dict) -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": b"",
        "root_path": "",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }


class TestIdleStreams:
    def test_idle_streams_do_not_starve_requests(self, world):
        services = Services.build(
            world.store,
            EventSettings(max_connections_per_user=100, stream_poll_seconds=0.05),
        )
        app = create_app(services)
        count = 45  # more than the default worker thread pool

        async def open_stream(opened: asyncio.Event, gone: asyncio.Event):
            async def receive():
                await gone.wait()
                return {"type": "http.disconnect"}

            async def send(message):
                if message["type"] == "http.response.body" and message.get("body"):
                    opened.set()

            await app(_http_scope(f"{_base(world)}/events", _as(world.viewer)), receive, send)

        async def get_status(path: str) -> int:
            sent = []

            async def receive():
                return {"type": "http.request", "body": b"", "more_body": False}

            async def send(message):
                sent.append(message)

            await app(_http_scope(path, {}), receive, send)
            return sent[0]["status"]

        async def run():
            gone = asyncio.Event()
            opened = [asyncio.Event() for _ in range(count)]
            streams = [asyncio.ensure_future(open_stream(o, gone)) for o in opened]
            await asyncio.wait_for(asyncio.gather(*(o.wait() for o in opened)), timeout=10)
            open_count = services.hub.connection_count(world.viewer.id)

            status = await asyncio.wait_for(get_status("/api/health"), timeout=5)

            gone.set()
            await asyncio.wait_for(asyncio.gather(*streams), timeout=10)
            return open_count, status

        open_count, status = asyncio.run(run())

        assert open_count == count
        assert status == 200
        assert services.hub.connection_count(world.viewer.id) == 0
