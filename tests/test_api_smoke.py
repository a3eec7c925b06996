"""Happy-path smoke tests for HomeSim API routes."""

from __future__ import annotations

import anyio
import pytest

pytestmark = pytest.mark.anyio


async def _create_device(client, **payload) -> dict:
    resp = await client.post("/api/v1/devices", json=payload)
    assert resp.status_code == 201
    return resp.json()


async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["running"] is False
    assert body["devices_total"] == 0
    assert body["ws_connections"] == 0


async def test_devices_crud(client):
    lamp = await _create_device(client, type="light", name="Lamp", room_id="living", is_favorite=True)
    assert lamp["brightness"] == 80
    assert lamp["is_on"] is False

    resp = await client.get("/api/v1/devices")
    assert [d["id"] for d in resp.json()] == [lamp["id"]]

    resp = await client.get(f"/api/v1/devices/{lamp['id']}")
    assert resp.status_code == 200
    assert resp.json()["name"] == "Lamp"

    resp = await client.patch(f"/api/v1/devices/{lamp['id']}", json={"brightness": 40})
    assert resp.status_code == 200
    assert resp.json()["brightness"] == 40

    resp = await client.post(f"/api/v1/devices/{lamp['id']}/toggle")
    assert resp.status_code == 200
    assert resp.json()["is_on"] is True

    resp = await client.delete(f"/api/v1/devices/{lamp['id']}")
    assert resp.status_code == 204
    resp = await client.get("/api/v1/devices")
    assert resp.json() == []


async def test_device_filters(client):
    lamp = await _create_device(client, type="light", room_id="living", is_favorite=True)
    tv = await _create_device(client, type="tv", room_id="living")
    heater = await _create_device(client, type="water_heater", room_id="bathroom")

    resp = await client.get("/api/v1/devices", params={"room_id": "living"})
    assert {d["id"] for d in resp.json()} == {lamp["id"], tv["id"]}

    resp = await client.get("/api/v1/devices", params={"type": "water_heater"})
    assert [d["id"] for d in resp.json()] == [heater["id"]]

    resp = await client.get("/api/v1/devices", params={"favorite": "true"})
    assert [d["id"] for d in resp.json()] == [lamp["id"]]


async def test_heating_pair_gets_automation(client):
    heater = await _create_device(client, type="water_heater", room_id="bathroom")
    dryer = await _create_device(client, type="towel_dryer", room_id="bathroom")
    assert dryer["linked_devices"] == [heater["id"]]

    resp = await client.get("/api/v1/automations")
    assert len(resp.json()) == 3

    await client.patch(f"/api/v1/devices/{heater['id']}", json={"is_on": True})
    resp = await client.patch(f"/api/v1/devices/{heater['id']}", json={"is_on": False})
    assert resp.status_code == 200

    resp = await client.get(f"/api/v1/devices/{dryer['id']}")
    body = resp.json()
    assert body["is_on"] is True
    assert body["mode"] == "towel_dry"
    assert body["target_temperature"] == 45


async def test_device_links(client):
    lamp = await _create_device(client, type="light")
    socket = await _create_device(client, type="socket")

    resp = await client.post(f"/api/v1/devices/{lamp['id']}/links/{socket['id']}")
    assert resp.status_code == 200
    assert resp.json()["linked_devices"] == [socket["id"]]

    resp = await client.get(f"/api/v1/devices/{socket['id']}")
    assert resp.json()["linked_devices"] == [lamp["id"]]

    resp = await client.delete(f"/api/v1/devices/{lamp['id']}/links/{socket['id']}")
    assert resp.status_code == 200
    assert resp.json()["linked_devices"] == []


async def test_scenes_crud_and_run(client, home):
    lamp = await _create_device(client, type="light")
    payload = {
        "name": "Evening",
        "actions": [
            {"device_id": lamp["id"], "type": "toggle", "value": True},
            {"device_id": lamp["id"], "type": "brightness", "value": 30},
        ],
    }
    resp = await client.post("/api/v1/scenes", json=payload)
    assert resp.status_code == 201
    scene = resp.json()

    resp = await client.patch(f"/api/v1/scenes/{scene['id']}", json={"description": "Wind down"})
    assert resp.status_code == 200
    assert resp.json()["description"] == "Wind down"

    resp = await client.post(f"/api/v1/scenes/{scene['id']}/run")
    assert resp.status_code == 202
    assert resp.json() == {"status": "started", "scene_id": scene["id"], "actions": 2}

    # Steps run on a background thread
    with anyio.fail_after(5):
        while not home.scenes.get_scene(scene["id"]).get("last_run"):
            await anyio.sleep(0.02)
    device = home.registry.get_device(lamp["id"])
    assert device["is_on"] is True
    assert device["brightness"] == 30

    resp = await client.delete(f"/api/v1/scenes/{scene['id']}")
    assert resp.status_code == 204
    resp = await client.get("/api/v1/scenes")
    assert resp.json() == []


async def test_automations_crud(client):
    lamp = await _create_device(client, type="light")
    socket = await _create_device(client, type="socket")
    payload = {
        "name": "Lamp follows socket",
        "trigger": {"type": "device_state_change", "device_id": socket["id"], "property": "is_on", "value": True},
        "actions": [{"type": "device_control", "device_id": lamp["id"], "property": "is_on", "value": True}],
    }
    resp = await client.post("/api/v1/automations", json=payload)
    assert resp.status_code == 201
    rule = resp.json()
    assert rule["is_active"] is True

    await client.post(f"/api/v1/devices/{socket['id']}/toggle")
    resp = await client.get(f"/api/v1/devices/{lamp['id']}")
    assert resp.json()["is_on"] is True

    resp = await client.patch(f"/api/v1/automations/{rule['id']}", json={"is_active": False})
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    resp = await client.get(f"/api/v1/automations/{rule['id']}")
    assert resp.json()["name"] == "Lamp follows socket"

    resp = await client.delete(f"/api/v1/automations/{rule['id']}")
    assert resp.status_code == 204
    resp = await client.get("/api/v1/automations")
    assert resp.json() == []


async def test_notifications_flow(client, home):
    first = home.notifications.add({"type": "info", "title": "One", "message": "first"})
    home.notifications.add({"type": "warning", "title": "Two", "message": "second"})

    resp = await client.get("/api/v1/notifications")
    assert [n["title"] for n in resp.json()] == ["Two", "One"]

    resp = await client.post(f"/api/v1/notifications/{first['id']}/read")
    assert resp.json() == {"status": "ok", "unread": 1}

    resp = await client.get("/api/v1/notifications", params={"unread": "true"})
    assert [n["title"] for n in resp.json()] == ["Two"]

    resp = await client.post("/api/v1/notifications/read-all")
    assert resp.json()["unread"] == 0

    resp = await client.delete(f"/api/v1/notifications/{first['id']}")
    assert resp.status_code == 204
    resp = await client.get("/api/v1/notifications")
    assert len(resp.json()) == 1


@pytest.mark.parametrize("period", ["today", "yesterday", "week", "month"])
async def test_energy_periods(client, home, period):
    lamp = await _create_device(client, type="light")
    home.analytics.record_energy(lamp["id"], 1.5)

    resp = await client.get("/api/v1/energy", params={"period": period})
    assert resp.status_code == 200
    body = resp.json()
    assert body["period"] == period
    if period == "yesterday":
        assert body["total"] == 0.0
    else:
        assert body["total"] == 1.5
        assert body["device_details"][0]["device_id"] == lamp["id"]


async def test_suggestions(client):
    await _create_device(client, type="water_heater", target_temperature=70)
    resp = await client.get("/api/v1/suggestions")
    assert resp.status_code == 200
    assert any(s["action"] == "reduce_temperature" for s in resp.json())
