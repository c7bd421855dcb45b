import pytest
from fastapi.testclient import TestClient

from glp_tracker.api import routes
from glp_tracker.main import create_app

NOW = 1_760_000_000_000
HOUR = 3_600_000
DAY = 24 * HOUR


@pytest.fixture
def client(db, monkeypatch):
    monkeypatch.setattr(routes, "API_KEY", "")
    monkeypatch.setattr(routes, "now_ms", lambda: NOW)
    with TestClient(create_app()) as c:
        yield c


def log(client, substance_id, dose_mg, timestamp_ms, **extra):
    return client.post("/api/injections", json={
        "substance_id": substance_id,
        "dose_mg": dose_mg,
        "timestamp_ms": timestamp_ms,
        **extra,
    })


def test_status(client):
    body = client.get("/api/status").json()
    assert body["status"] == "ok"


def test_api_key_is_enforced(client, monkeypatch):
    monkeypatch.setattr(routes, "API_KEY", "secret")
    assert client.get("/api/substances").status_code == 401
    assert client.get("/api/substances", headers={"x-api-key": "secret"}).status_code == 200


def test_substances_include_pens_and_legacy_map(client):
    body = client.get("/api/substances").json()
    ids = [s["substance_id"] for s in body["substances"]]
    assert ids == ["tirz", "wegovy", "ozempic", "saxenda", "reta"]
    assert body["legacy_ids"] == {"sema": "wegovy", "lira": "saxenda"}
    tirz = body["substances"][0]
    assert tirz["pens"] and tirz["pens"][0]["mg"] == tirz["common_doses"][0]


def test_log_and_list_injections(client):
    resp = log(client, "tirz", 2.5, NOW - DAY, site="abdomen")
    assert resp.status_code == 200
    row = resp.json()
    assert row["status"] == "ok"
    assert row["site"] == "abdomen"

    rows = client.get("/api/injections").json()
    assert [r["id"] for r in rows] == [row["id"]]


def test_iso_timestamp_is_accepted(client):
    resp = log(client, "tirz", 2.5, None, timestamp="2025-10-01T08:00:00+00:00")
    assert resp.status_code == 200
    assert resp.json()["timestamp_ms"] == 1_759_305_600_000

    assert log(client, "tirz", 2.5, None, timestamp="not a date").status_code == 422


def test_unknown_substance_and_bad_dose_rejected(client):
    assert log(client, "insulin", 2.5, NOW - DAY).status_code == 422
    assert log(client, "tirz", 0, NOW - DAY).status_code == 422
    # legacy ids are still accepted on the way in
    assert log(client, "sema", 0.5, NOW - DAY).status_code == 200


def test_future_injection_needs_premium(client):
    assert log(client, "tirz", 5.0, NOW + DAY).status_code == 403

    resp = client.put("/api/profile", json={"is_premium": True})
    assert resp.status_code == 200
    assert resp.json()["policy"]["include_future_events"] is True

    assert log(client, "tirz", 5.0, NOW + DAY).status_code == 200


def test_edit_and_delete_injection(client):
    row_id = log(client, "tirz", 2.5, NOW - DAY).json()["id"]

    resp = client.patch(f"/api/injections/{row_id}", json={"dose_mg": 5.0})
    assert resp.status_code == 200
    assert resp.json()["dose_mg"] == 5.0
    assert client.patch(f"/api/injections/{row_id}", json={"timestamp_ms": NOW + DAY}).status_code == 403
    assert client.patch("/api/injections/999", json={"dose_mg": 5.0}).status_code == 404

    assert client.delete(f"/api/injections/{row_id}").json() == {"deleted": row_id, "status": "ok"}
    assert client.delete(f"/api/injections/{row_id}").status_code == 404


def test_profile_interval_is_snapped(client):
    body = client.put("/api/profile", json={
        "custom_interval_enabled": True,
        "injection_interval_days": 3.3,
        "half_day_dosing": True,
    }).json()
    assert body["profile"]["injection_interval_days"] == 3.3
    assert body["policy"]["injection_interval_days"] == 3.5

    assert client.put("/api/profile", json={"injection_interval_days": 31}).status_code == 422
    assert client.put("/api/profile", json={"default_substance_id": "nope"}).status_code == 422


def test_level_after_one_half_life(client):
    log(client, "tirz", 5.0, NOW - 120 * HOUR)
    body = client.get("/api/level").json()
    assert body["level_mg"] == pytest.approx(2.5)
    assert body["by_substance"] == {"tirz": pytest.approx(2.5)}
    assert body["phase"] == "washout"


def test_level_curve(client):
    log(client, "tirz", 5.0, NOW - 2 * DAY)
    body = client.get("/api/level/curve", params={"points": 10}).json()
    assert len(body["points"]) == 11
    assert body["end"] == NOW
    assert body["points"][-1]["level"] > 0

    bad = client.get("/api/level/curve", params={"start": NOW, "end": NOW - DAY})
    assert bad.status_code == 422


def test_level_curves_shape(client):
    log(client, "tirz", 5.0, NOW - 2 * DAY)
    log(client, "sema", 0.5, NOW - 3 * DAY)

    body = client.get("/api/level/curves", params={"range": "week", "points": 14}).json()
    assert body["range"] == "week"
    assert body["start"] == NOW - 7 * DAY
    assert body["end"] == NOW
    assert body["substances"] == ["tirz", "wegovy"]
    assert body["has_data"] is True
    assert len(body["points"]) == 15
    assert {"tirz", "wegovy", "label", "is_future"} <= set(body["points"][0])

    assert client.get("/api/level/curves", params={"range": "decade"}).status_code == 422


def test_level_curves_without_history(client):
    body = client.get("/api/level/curves", params={"range": "week", "points": 5}).json()
    assert body["substances"] == ["tirz"]
    assert body["has_data"] is False


def test_titration(client):
    body = client.get("/api/titration").json()
    assert body == {"found": False, "starting_dose": 2.5}

    for week in range(4):
        log(client, "tirz", 2.5, NOW - (1 + 7 * week) * DAY)
    body = client.get("/api/titration").json()
    assert body["found"] is True
    assert body["substance_id"] == "tirz"
    assert body["dose"] == 5.0
    assert body["is_max"] is False


def test_schedule_next(client):
    assert client.get("/api/schedule/next").json() == {"found": False}
    log(client, "tirz", 5.0, NOW - 3 * DAY)
    body = client.get("/api/schedule/next").json()
    assert body["found"] is True
    assert body["days_until"] == 4
    assert body["next_injection_at"] == NOW + 4 * DAY


def test_calculator_endpoints(client):
    body = client.post("/api/calc/units", json={"want_mg": 2.5, "vial_mg": 10, "vial_ml": 2}).json()
    assert body["units"] == 50.0
    assert body["syringe_fill_pct"] == 50.0
    assert body["doses_per_vial"] == 4

    assert client.post("/api/calc/mg", json={"units": 50, "vial_mg": 10, "vial_ml": 2}).json() == {"mg": 2.5}
    assert client.post("/api/calc/pen-clicks", json={"want_mg": 5, "pen_total_mg": 20}).json() == {"clicks": 15}
    assert client.post("/api/calc/vial-doses", json={"vial_mg": 10, "dose_want_mg": 3}).json() == {
        "doses": 3, "remnant": 1.0,
    }


def test_calculator_rejects_zero(client):
    resp = client.post("/api/calc/units", json={"want_mg": 2.5, "vial_mg": 10, "vial_ml": 0})
    assert resp.status_code == 422


@pytest.mark.parametrize("path, body", [
    ("/api/calc/vial-doses", {"vial_mg": 1e300, "dose_want_mg": 1e-300}),
    ("/api/calc/units", {"want_mg": 1e300, "vial_mg": 1e-300, "vial_ml": 1}),
    ("/api/calc/mg", {"units": 2000, "vial_mg": 10, "vial_ml": 1}),
    ("/api/calc/pen-clicks", {"want_mg": 5, "pen_total_mg": 1e4}),
])
def test_calculator_rejects_out_of_range_inputs(client, path, body):
    assert client.post(path, json=body).status_code == 422


@pytest.mark.parametrize("path, body", [
    ("/api/calc/vial-doses", {"vial_mg": 1000, "dose_want_mg": 1e-320}),
    ("/api/calc/units", {"want_mg": 1000, "vial_mg": 1e-320, "vial_ml": 1000}),
    ("/api/calc/mg", {"units": 1000, "vial_mg": 1000, "vial_ml": 1e-320}),
    ("/api/calc/pen-clicks", {"want_mg": 1000, "pen_total_mg": 1e-320}),
])
def test_calculator_overflowing_result_is_422(client, path, body):
    resp = client.post(path, json=body)
    assert resp.status_code == 422
    assert "out of range" in resp.json()["detail"]


def test_profile_null_default_substance_is_ignored(client):
    resp = client.put("/api/profile", json={"default_substance_id": None})
    assert resp.status_code == 200
    assert resp.json()["profile"]["default_substance_id"] == "tirz"
