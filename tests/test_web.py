"""HTTP surface: owner header, error mapping, no key in responses."""

import base64
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from deadswitch.web.server import create_app

from tests.conftest import OWNER_ID, T0

HEADERS = {"X-Owner-Id": str(OWNER_ID)}
KEY = b"super-secret-key"


@pytest_asyncio.fixture
async def client(services):
    app = create_app(services)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _create(client, **overrides):
    body = {
        "owner_email": "owner@example.com",
        "timer_seconds": 3600,
        "trigger_message": "Goodbye.",
        "encrypted_payload": base64.b64encode(b"ciphertext").decode(),
        "payload_key": base64.b64encode(KEY).decode(),
        "recipients": [{"address": "alice@example.com", "name": "Alice"}],
        "reminder_offsets_seconds": [600],
        "enabled": True,
    }
    body.update(overrides)
    return await client.post("/switches", json=body, headers=HEADERS)


@pytest.mark.asyncio
async def test_health(client):
    r = await client.get("/health")

    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["x-request-id"]


@pytest.mark.asyncio
async def test_create_and_read_switch_without_key(client):
    r = await _create(client)
    assert r.status_code == 201
    created = r.json()
    assert created["status"] == "active"
    assert created["has_payload"] is True
    assert "payload_key" not in created

    r = await client.get(f"/switches/{created['id']}", headers=HEADERS)
    assert r.status_code == 200
    details = r.json()
    assert details["recipients"][0]["address"] == "alice@example.com"
    assert details["reminders"][0]["offset_seconds"] == 600
    assert details["unconfigured_channels"] == []
    assert base64.b64encode(KEY).decode() not in r.text
    assert KEY.decode() not in r.text

    r = await client.get("/switches", headers=HEADERS)
    assert [s["id"] for s in r.json()] == [created["id"]]


@pytest.mark.asyncio
async def test_owner_header_required(client):
    r = await client.get("/switches")

    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_other_owner_gets_404(client):
    created = (await _create(client)).json()

    r = await client.get(f"/switches/{created['id']}", headers={"X-Owner-Id": str(OWNER_ID + 1)})

    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_invalid_config_maps_to_400(client):
    r = await _create(client, timer_seconds=5)

    assert r.status_code == 400
    assert r.json()["error"] == "invalid_config"


@pytest.mark.asyncio
async def test_check_in_endpoint(client, clock):
    created = (await _create(client)).json()
    clock.set(T0 + timedelta(minutes=30))

    r = await client.post(f"/switches/{created['id']}/check-in", headers=HEADERS)

    assert r.status_code == 200
    assert r.json()["next_deadline"].startswith("2026-01-01T13:30:00")


@pytest.mark.asyncio
async def test_update_recipients_and_reminders(client):
    sw_id = (await _create(client)).json()["id"]

    r = await client.post(
        f"/switches/{sw_id}/recipients",
        json={"address": "+15550001111", "channel": "sms"},
        headers=HEADERS,
    )
    assert r.status_code == 201
    sms_id = r.json()["id"]

    r = await client.post(f"/switches/{sw_id}/reminders", json={"offset_seconds": 1800}, headers=HEADERS)
    assert r.status_code == 201
    reminder_id = r.json()["id"]

    r = await client.delete(f"/switches/{sw_id}/reminders/{reminder_id}", headers=HEADERS)
    assert r.status_code == 204

    r = await client.delete(f"/switches/{sw_id}/recipients/{sms_id}", headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["is_enabled"] is True

    r = await client.patch(f"/switches/{sw_id}", json={"is_enabled": False}, headers=HEADERS)
    assert r.status_code == 200
    assert r.json()["status"] == "disabled"

    r = await client.patch(f"/switches/{sw_id}", json={"trigger_message": None}, headers=HEADERS)
    assert r.json()["trigger_message"] is None


@pytest.mark.asyncio
async def test_payload_released_only_after_trigger(client, services):
    sw_id = (await _create(client)).json()["id"]

    r = await client.get(f"/switches/{sw_id}/payload")
    assert r.status_code == 404

    await services["loop"].run_once(T0 + timedelta(hours=1, seconds=1))

    r = await client.get(f"/switches/{sw_id}/payload")
    assert r.status_code == 200
    assert base64.b64decode(r.json()["encrypted_payload"]) == b"ciphertext"
    assert base64.b64encode(KEY).decode() not in r.text

    r = await client.post(f"/switches/{sw_id}/check-in", headers=HEADERS)
    assert r.status_code == 409
    assert r.json()["error"] == "already_triggered"

    r = await client.get(f"/switches/{sw_id}", headers=HEADERS)
    assert r.json()["delivery_status"] == "complete"
    assert r.json()["recipients_sent"] == 1


@pytest.mark.asyncio
async def test_delete_switch(client):
    sw_id = (await _create(client)).json()["id"]

    r = await client.delete(f"/switches/{sw_id}", headers=HEADERS)
    assert r.status_code == 204

    r = await client.get(f"/switches/{sw_id}", headers=HEADERS)
    assert r.status_code == 404
