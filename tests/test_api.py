from fastapi.testclient import TestClient

from charts import build_calculators
from main import app
from routers import get_calculators
from settings import Settings

from fakes import FakeAdapter

client = TestClient(app)

BIRTH = {
    "date_of_birth": "1990-06-15",
    "time_of_birth": "14:30:00",
    "is_time_unknown": False,
    "latitude": 40.7128,
    "longitude": -74.0060,
    "timezone": "America/New_York",
}
PARTNER = {
    "date_of_birth": "1988-02-03",
    "time_of_birth": "08:00",
    "latitude": 51.5074,
    "longitude": -0.1278,
    "timezone": "Europe/London",
}


def use_adapter(adapter):
    app.dependency_overrides[get_calculators] = lambda: build_calculators(Settings(), adapter)


def teardown_function():
    app.dependency_overrides.clear()


def test_health():
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_natal_chart():
    use_adapter(FakeAdapter())
    res = client.post("/api/v1/charts/calculate", json={"calculation_type": "natal", "birth_data": BIRTH})
    assert res.status_code == 200, res.text

    data = res.json()
    assert data["calculation_type"] == "natal"
    assert data["house_system"] == "W"
    assert data["time_unknown_applied"] is False
    assert [p["name"] for p in data["points"]][:2] == ["Sun", "Moon"]
    assert len(data["points"]) == 12
    assert len(data["houses"]) == 12
    assert data["ascendant"]["sign"] == "Aries"
    assert data["aspects"]
    assert "orb:" in data["aspects"][0]["description"]


def test_natal_chart_unknown_time():
    use_adapter(FakeAdapter())
    birth = dict(BIRTH, time_of_birth=None, is_time_unknown=True)
    res = client.post("/api/v1/charts/calculate", json={"calculation_type": "natal", "birth_data": birth})
    assert res.status_code == 200, res.text
    assert res.json()["time_unknown_applied"] is True


def test_natal_chart_rejects_quadrant_house_system():
    use_adapter(FakeAdapter())
    res = client.post("/api/v1/charts/calculate", json={
        "calculation_type": "natal", "birth_data": BIRTH, "house_system": "Placidus",
    })
    assert res.status_code == 422
    body = res.json()
    assert body["error"] == "ChartCalculationError"
    assert body["detail"]["cause"] == "UnsupportedHouseSystemError"


def test_ephemeris_failure_is_server_error():
    use_adapter(FakeAdapter(fail_on="Saturn"))
    res = client.post("/api/v1/charts/calculate", json={"calculation_type": "natal", "birth_data": BIRTH})
    assert res.status_code == 500
    body = res.json()
    assert body["error"] == "ChartCalculationError"
    assert body["detail"] == {"chart_type": "natal", "cause": "EphemerisComputationError"}


def test_unknown_timezone_is_validation_error():
    use_adapter(FakeAdapter())
    birth = dict(BIRTH, timezone="Mars/Olympus")
    res = client.post("/api/v1/charts/calculate", json={"calculation_type": "natal", "birth_data": birth})
    assert res.status_code == 422
    assert res.json()["error"] == "ValidationError"


def test_transits_floor_to_hour():
    use_adapter(FakeAdapter())
    res = client.post("/api/v1/charts/calculate", json={
        "calculation_type": "transits", "target_date_utc": "2024-03-10T14:45:00Z",
    })
    assert res.status_code == 200, res.text

    data = res.json()
    assert data["calculation_type"] == "transits"
    assert data["date"] == "2024-03-10T14:00:00+00:00"
    assert data["aspects"] is None
    assert all(p["house"] is None for p in data["points"])


def test_transits_with_natal_aspects():
    use_adapter(FakeAdapter())
    res = client.post("/api/v1/charts/calculate", json={
        "calculation_type": "transits", "target_date_utc": "2024-03-10T14:00:00Z", "birth_data": BIRTH,
    })
    assert res.status_code == 200, res.text
    aspects = res.json()["aspects"]
    assert aspects
    assert all(a["point2"].startswith("Transit ") for a in aspects)


def test_composite_chart():
    use_adapter(FakeAdapter(drift=1.0))
    res = client.post("/api/v1/charts/calculate", json={
        "calculation_type": "composite", "birth_data": BIRTH, "birth_data_profile_b": PARTNER,
    })
    assert res.status_code == 200, res.text
    data = res.json()
    assert data["calculation_type"] == "composite"
    assert len(data["points"]) == 12
    assert all(1 <= p["house"] <= 12 for p in data["points"])


def test_composite_requires_second_profile():
    res = client.post("/api/v1/charts/calculate", json={"calculation_type": "composite", "birth_data": BIRTH})
    assert res.status_code == 422


def test_invalid_calculation_type():
    res = client.post("/api/v1/charts/calculate", json={"calculation_type": "synastry", "birth_data": BIRTH})
    assert res.status_code == 422


def test_config_house_systems():
    res = client.get("/api/v1/config/house-systems")
    assert res.status_code == 200
    data = res.json()
    assert data["default"] == "W"
    whole_sign = [h for h in data["house_systems"] if h["code"] == "W"]
    assert whole_sign[0]["house_assignment"] is True
    assert sum(h["house_assignment"] for h in data["house_systems"]) == 1


def test_config_aspects():
    res = client.get("/api/v1/config/aspects")
    assert res.status_code == 200
    data = res.json()
    assert {a["type"] for a in data["major_aspects"]} == {"conjunction", "opposition", "trine", "square", "sextile"}
    assert len(data["minor_aspects"]) == 6


def test_transits_with_natal_aspects_ignore_quadrant_house_system():
    use_adapter(FakeAdapter())
    res = client.post("/api/v1/charts/calculate", json={
        "calculation_type": "transits", "target_date_utc": "2024-03-10T14:00:00Z",
        "birth_data": BIRTH, "house_system": "P",
    })
    assert res.status_code == 200, res.text
    assert res.json()["aspects"]


def test_points_include_dignity():
    use_adapter(FakeAdapter())
    res = client.post("/api/v1/charts/calculate", json={"calculation_type": "natal", "birth_data": BIRTH})
    assert res.status_code == 200, res.text
    points = {p["name"]: p for p in res.json()["points"]}
    assert points["Sun"]["dignity"] == "exaltation"
    assert points["Chiron"]["dignity"] is None
