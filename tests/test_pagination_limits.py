import datetime

from fastapi.testclient import TestClient

from voltwatch.core.db import SessionLocal
from voltwatch.core.pagination import clamp_limit, get_max_limit
from voltwatch.main import create_app
from voltwatch.models.telemetry import PowerReading
from voltwatch.services.telemetry_store import insert_power_reading, to_ms


HOME = "paging-home"
HEADERS = {"X-User-Id": "pat", "X-Home-Id": HOME}


def _client() -> TestClient:
    app = create_app()
    return TestClient(app)


def _seed_readings(count: int = 10) -> None:
    base = datetime.datetime(2026, 10, 1, tzinfo=datetime.timezone.utc)
    with SessionLocal() as db:
        existing = db.query(PowerReading).filter(PowerReading.home_id == HOME).count()
        for i in range(existing, count):
            insert_power_reading(
                db,
                home_id=HOME,
                device_id="meter",
                timestamp=to_ms(base + datetime.timedelta(seconds=i)),
                watts=float(i),
            )


def test_history_limit_capped(monkeypatch):
    monkeypatch.setenv("API_MAX_LIMIT", "5")
    with _client() as client:
        _seed_readings(12)
        resp = client.get("/api/v1/history/power/meter?limit=100", headers=HEADERS)
        assert resp.status_code == 200
        # Newest readings win, returned oldest first.
        assert [r["watts"] for r in resp.json()] == [7.0, 8.0, 9.0, 10.0, 11.0]


def test_non_positive_limit_rejected():
    with _client() as client:
        resp = client.get("/api/v1/history/power/meter?limit=0", headers=HEADERS)
        assert resp.status_code == 422
        resp = client.get("/api/v1/history/alerts?limit=-1", headers=HEADERS)
        assert resp.status_code == 422


def test_max_limit_env_parsing(monkeypatch):
    monkeypatch.setenv("API_MAX_LIMIT", "not-a-number")
    assert get_max_limit() == 5000
    monkeypatch.setenv("API_MAX_LIMIT", "0")
    assert get_max_limit() == 5000
    monkeypatch.setenv("API_MAX_LIMIT", "20")
    assert clamp_limit(50) == 20
    assert clamp_limit(0) == 1
