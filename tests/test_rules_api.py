import pytest
from fastapi.testclient import TestClient

from voltwatch.main import app


def _headers(user_id, home_id="home1"):
    return {"X-User-Id": user_id, "X-Home-Id": home_id}


def _rule_payload(name="Heater guard", **overrides):
    payload = {
        "name": name,
        "conditions": [
            {"type": "power_threshold", "deviceId": "heater", "operator": ">", "threshold": 1500, "durationMinutes": 5},
            {"type": "time_of_day", "start": "22:00", "end": "06:00"},
        ],
        "actions": [
            {"type": "set_device", "device_id": "heater", "on": False},
            {"type": "alert", "severity": "warning", "message": "Heater switched off"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as test_client:
        yield test_client


def test_requests_without_identity_are_rejected(client):
    resp = client.get("/api/v1/rules")
    assert resp.status_code == 401


def test_create_and_fetch_rule(client):
    resp = client.post("/api/v1/rules", json=_rule_payload(), headers=_headers("alice"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"].startswith("rule_")
    assert body["user_id"] == "alice"
    assert body["home_id"] == "home1"
    assert body["enabled"] is True
    assert body["conditions"][0]["device_id"] == "heater"
    assert body["conditions"][0]["duration_minutes"] == 5
    assert body["conditions"][1]["mode"] == "range"

    fetched = client.get(f"/api/v1/rules/{body['id']}", headers=_headers("alice"))
    assert fetched.status_code == 200
    assert fetched.json()["name"] == "Heater guard"


def test_upsert_replaces_existing_rule(client):
    created = client.post("/api/v1/rules", json=_rule_payload(), headers=_headers("bob")).json()
    updated = client.post(
        "/api/v1/rules",
        json=_rule_payload(
            name="Weekday lights",
            id=created["id"],
            enabled=False,
            conditions=[{"type": "day_of_week", "days": ["monday", "friday"]}],
            actions=[{"type": "scene", "sceneName": "evening"}],
        ),
        headers=_headers("bob"),
    )
    assert updated.status_code == 200
    body = updated.json()
    assert body["id"] == created["id"]
    assert body["name"] == "Weekday lights"
    assert body["enabled"] is False
    assert body["conditions"] == [{"type": "day_of_week", "days": ["monday", "friday"]}]
    assert body["actions"] == [{"type": "scene", "scene_name": "evening"}]

    listed = client.get("/api/v1/rules", headers=_headers("bob")).json()
    assert [r["id"] for r in listed] == [created["id"]]


def test_rules_are_scoped_to_user_and_home(client):
    own = client.post("/api/v1/rules", json=_rule_payload(), headers=_headers("carol")).json()
    client.post("/api/v1/rules", json=_rule_payload(name="Other home"), headers=_headers("carol", "home2"))

    listed = client.get("/api/v1/rules", headers=_headers("carol")).json()
    assert [r["id"] for r in listed] == [own["id"]]
    other_home = client.get("/api/v1/rules", params={"home_id": "home2"}, headers=_headers("carol")).json()
    assert [r["name"] for r in other_home] == ["Other home"]

    assert client.get(f"/api/v1/rules/{own['id']}", headers=_headers("mallory")).status_code == 404
    assert client.get("/api/v1/rules", headers=_headers("mallory")).json() == []
    hijack = client.post("/api/v1/rules", json=_rule_payload(id=own["id"]), headers=_headers("mallory"))
    assert hijack.status_code == 404
    assert client.patch(f"/api/v1/rules/{own['id']}/toggle", headers=_headers("mallory")).status_code == 404
    assert client.delete(f"/api/v1/rules/{own['id']}", headers=_headers("mallory")).status_code == 404


def test_unknown_condition_or_action_is_rejected(client):
    bad_condition = _rule_payload(conditions=[{"type": "moon_phase", "phase": "full"}])
    assert client.post("/api/v1/rules", json=bad_condition, headers=_headers("dave")).status_code == 422
    bad_action = _rule_payload(actions=[{"type": "teleport"}])
    assert client.post("/api/v1/rules", json=bad_action, headers=_headers("dave")).status_code == 422
    bad_time = _rule_payload(conditions=[{"type": "time_of_day", "start": "25:00", "end": "06:00"}])
    assert client.post("/api/v1/rules", json=bad_time, headers=_headers("dave")).status_code == 422
    assert client.get("/api/v1/rules", headers=_headers("dave")).json() == []


def test_toggle_flips_enabled(client):
    rule = client.post("/api/v1/rules", json=_rule_payload(), headers=_headers("erin")).json()
    first = client.patch(f"/api/v1/rules/{rule['id']}/toggle", headers=_headers("erin"))
    assert first.json() == {"ok": True, "id": rule["id"], "enabled": False}
    second = client.patch(f"/api/v1/rules/{rule['id']}/toggle", headers=_headers("erin"))
    assert second.json()["enabled"] is True


def test_delete_and_bulk_delete(client):
    ids = [
        client.post("/api/v1/rules", json=_rule_payload(name=f"r{i}"), headers=_headers("frank")).json()["id"]
        for i in range(3)
    ]
    resp = client.delete(f"/api/v1/rules/{ids[0]}", headers=_headers("frank"))
    assert resp.json() == {"ok": True, "deleted": 1}
    assert client.delete(f"/api/v1/rules/{ids[0]}", headers=_headers("frank")).status_code == 404

    bulk = client.post(
        "/api/v1/rules/bulk-delete",
        json={"ids": ids[1:] + ["rule_missing"]},
        headers=_headers("frank"),
    )
    assert bulk.json() == {"ok": True, "deleted": 2}
    assert client.get("/api/v1/rules", headers=_headers("frank")).json() == []
    assert client.post("/api/v1/rules/bulk-delete", json={"ids": []}, headers=_headers("frank")).status_code == 422
