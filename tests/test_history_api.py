import datetime
import json

import pytest
from fastapi.testclient import TestClient

from voltwatch.core.db import SessionLocal
from voltwatch.core.errors import CommandPublishError
from voltwatch.main import app
from voltwatch.services.mqtt_publisher import command_payload, command_topic
from voltwatch.services.telemetry_store import insert_alert, insert_energy_reading, insert_power_reading, to_ms


HOME = "history-home"
HEADERS = {"X-User-Id": "hana", "X-Home-Id": HOME}
DAY_ONE = datetime.datetime(2026, 10, 14, 10, 0, tzinfo=datetime.timezone.utc)
DAY_TWO = DAY_ONE + datetime.timedelta(days=1)


class FakePublisher:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def publish_device_command(self, home_id, device_id, on):
        if self.fail:
            raise CommandPublishError("not connected to broker")
        self.sent.append((command_topic(home_id, device_id), command_payload(on)))

    def is_connected(self):
        return not self.fail


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as test_client:
        with SessionLocal() as db:
            for minute, watts in enumerate([100, 2000, 3]):
                insert_power_reading(
                    db,
                    home_id=HOME,
                    device_id="kettle",
                    timestamp=to_ms(DAY_ONE + datetime.timedelta(minutes=minute)),
                    watts=watts,
                    voltage=230,
                )
            insert_power_reading(db, home_id=HOME, device_id="kettle", timestamp=to_ms(DAY_TWO), watts=50)
            insert_power_reading(db, home_id="elsewhere", device_id="kettle", timestamp=to_ms(DAY_TWO), watts=9999)
            insert_energy_reading(db, home_id=HOME, device_id="kettle", timestamp=to_ms(DAY_ONE), wh_total=1000)
            insert_energy_reading(
                db, home_id=HOME, device_id="kettle", timestamp=to_ms(DAY_ONE + datetime.timedelta(hours=5)), wh_total=1250
            )
            insert_alert(
                db, home_id=HOME, severity="info", message="older", alert_type="mqtt", device_id="kettle", timestamp=to_ms(DAY_ONE)
            )
            insert_alert(
                db, home_id=HOME, severity="danger", message="newer", alert_type="rule_action", timestamp=to_ms(DAY_TWO)
            )
        yield test_client
        test_client.app.state.command_publisher = None


def test_power_history_is_chronological_and_home_scoped(client):
    rows = client.get("/api/v1/history/power/kettle", headers=HEADERS).json()
    assert [r["watts"] for r in rows] == [100, 2000, 3, 50]
    assert rows[0]["voltage"] == 230
    assert rows[0]["timestamp"] == to_ms(DAY_ONE)


def test_power_history_range_and_limit(client):
    start = to_ms(DAY_ONE + datetime.timedelta(minutes=1))
    end = to_ms(DAY_ONE + datetime.timedelta(minutes=2))
    ranged = client.get("/api/v1/history/power/kettle", params={"start": start, "end": end}, headers=HEADERS).json()
    assert [r["watts"] for r in ranged] == [2000, 3]

    limited = client.get("/api/v1/history/power/kettle", params={"limit": 2}, headers=HEADERS).json()
    assert [r["watts"] for r in limited] == [3, 50]
    assert client.get("/api/v1/history/power/kettle", params={"limit": 0}, headers=HEADERS).status_code == 422


def test_energy_history(client):
    rows = client.get("/api/v1/history/energy/kettle", headers=HEADERS).json()
    assert [r["wh_total"] for r in rows] == [1000, 1250]


def test_power_stats(client):
    stats = client.get("/api/v1/history/stats/power", params={"device_id": "kettle"}, headers=HEADERS).json()
    assert stats["count"] == 4
    assert stats["max_watts"] == 2000
    assert stats["min_watts"] == 3
    assert stats["avg_watts"] == pytest.approx((100 + 2000 + 3 + 50) / 4)
    assert stats["on_readings"] == 3


def test_daily_stats(client):
    rows = client.get("/api/v1/history/daily-stats", headers=HEADERS).json()
    assert [(r["date"], r["device_id"]) for r in rows] == [("2026-10-15", "kettle"), ("2026-10-14", "kettle")]
    day_one = rows[1]
    assert day_one["samples"] == 3
    assert day_one["max_watts"] == 2000
    assert day_one["energy_wh"] == 250
    assert rows[0]["energy_wh"] is None

    only_first = client.get(
        "/api/v1/history/daily-stats",
        params={"start_date": "2026-10-14", "end_date": "2026-10-14"},
        headers=HEADERS,
    ).json()
    assert [r["date"] for r in only_first] == ["2026-10-14"]
    backwards = client.get(
        "/api/v1/history/daily-stats",
        params={"start_date": "2026-10-15", "end_date": "2026-10-14"},
        headers=HEADERS,
    )
    assert backwards.status_code == 422


def test_alerts_list_filter_and_acknowledge(client):
    alerts = client.get("/api/v1/history/alerts", headers=HEADERS).json()
    assert [a["message"] for a in alerts] == ["newer", "older"]
    assert all(a["acknowledged"] is False for a in alerts)

    danger = client.get("/api/v1/history/alerts", params={"severity": "danger"}, headers=HEADERS).json()
    assert [a["type"] for a in danger] == ["rule_action"]

    alert_id = alerts[1]["id"]
    other_home = {"X-User-Id": "hana", "X-Home-Id": "elsewhere"}
    assert client.patch(f"/api/v1/history/alerts/{alert_id}/acknowledge", headers=other_home).status_code == 404
    ack = client.patch(f"/api/v1/history/alerts/{alert_id}/acknowledge", headers=HEADERS)
    assert ack.json() == {"ok": True, "changes": 1}
    refreshed = client.get("/api/v1/history/alerts", params={"device_id": "kettle"}, headers=HEADERS).json()
    assert refreshed[0]["acknowledged"] is True
    assert client.patch("/api/v1/history/alerts/alert_missing/acknowledge", headers=HEADERS).status_code == 404


def test_device_command_publishes_to_home_topic(client):
    client.app.state.command_publisher = None
    unavailable = client.post("/api/v1/devices/lamp/command", json={"on": True}, headers=HEADERS)
    assert unavailable.status_code == 503

    publisher = FakePublisher()
    client.app.state.command_publisher = publisher
    resp = client.post("/api/v1/devices/lamp/command", json={"on": True}, headers=HEADERS)
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "topic": f"home/{HOME}/cmd/lamp/set", "on": True}
    topic, payload = publisher.sent[0]
    assert topic == f"home/{HOME}/cmd/lamp/set"
    assert json.loads(payload) == {"on": True}

    client.app.state.command_publisher = FakePublisher(fail=True)
    failed = client.post("/api/v1/devices/lamp/command", json={"on": False}, headers=HEADERS)
    assert failed.status_code == 503
    client.app.state.command_publisher = None


def test_health_is_public(client):
    body = client.get("/api/v1/health").json()
    assert body["status"] == "ok"
    assert body["mqtt_ingest_connected"] is None
    assert body["rule_engine"] is None
