"""Tests for the Flask JSON API."""
import pytest
from unittest.mock import MagicMock

from models.alarm import Event
from web.app import create_app


AUTOSCALE = {
    "name": "api",
    "minUnits": 2,
    "scaleUp": {"aggregator": "avg", "metric": "cpu", "operator": ">", "value": 80,
                "step": 2, "wait": 300},
    "scaleDown": {"aggregator": "avg", "metric": "cpu", "operator": "<", "value": 20,
                  "step": 1, "wait": 600},
}


@pytest.fixture
def client(components):
    app = create_app({}, components)
    app.config["TESTING"] = True
    return app.test_client()


def test_healthcheck(client):
    resp = client.get("/healthcheck")
    assert resp.status_code == 200
    assert resp.data == b"WORKING"


# ── Autoscale ───────────────────────────────────────────

def test_create_and_show_autoscale(client):
    resp = client.post("/api/autoscale", json=AUTOSCALE)
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["name"] == "api"
    assert data["min_units"] == 2
    assert data["scale_up"]["value"] == "80"
    assert data["enabled"] is True

    resp = client.get("/api/autoscale/api")
    assert resp.status_code == 200
    assert resp.get_json()["scale_down"]["wait"] == 600

    names = [a["name"] for a in client.get("/api/alarm").get_json()]
    assert names == ["scale_down_api", "scale_up_api"]


def test_list_autoscales(client):
    client.post("/api/autoscale", json=AUTOSCALE)
    data = client.get("/api/autoscale").get_json()
    assert [a["name"] for a in data] == ["api"]


def test_duplicate_autoscale_is_400(client):
    client.post("/api/autoscale", json=AUTOSCALE)
    resp = client.post("/api/autoscale", json=AUTOSCALE)
    assert resp.status_code == 400
    assert "already exists" in resp.get_json()["error"]


def test_invalid_body_is_400(client):
    resp = client.post("/api/autoscale", data="nope", content_type="text/plain")
    assert resp.status_code == 400


def test_invalid_operator_is_400(client):
    body = dict(AUTOSCALE, scaleUp=dict(AUTOSCALE["scaleUp"], operator="~"))
    resp = client.post("/api/autoscale", json=body)
    assert resp.status_code == 400


def test_non_numeric_units_is_400(client):
    resp = client.post("/api/autoscale", json=dict(AUTOSCALE, minUnits="two"))
    assert resp.status_code == 400
    assert "min_units" in resp.get_json()["error"]

    client.post("/api/autoscale", json=AUTOSCALE)
    body = dict(AUTOSCALE, scaleDown=dict(AUTOSCALE["scaleDown"], wait="later"))
    resp = client.put("/api/autoscale/api", json=body)
    assert resp.status_code == 400
    assert "scale_down.wait" in resp.get_json()["error"]


def test_zero_threshold_accepted(client):
    body = dict(AUTOSCALE, scaleDown=dict(AUTOSCALE["scaleDown"], value=0))
    resp = client.post("/api/autoscale", json=body)
    assert resp.status_code == 201
    assert resp.get_json()["scale_down"]["value"] == "0"


def test_missing_autoscale_is_404(client):
    resp = client.get("/api/autoscale/missing")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "autoscale 'missing' not found"


def test_update_autoscale(client, components):
    client.post("/api/autoscale", json=AUTOSCALE)
    body = dict(AUTOSCALE, scaleUp=dict(AUTOSCALE["scaleUp"], value=95))
    resp = client.put("/api/autoscale/api", json=body)
    assert resp.status_code == 200
    assert components["alarms"].find_by_name("scale_up_api").expression.endswith("> 95")


def test_enable_disable_autoscale(client):
    client.post("/api/autoscale", json=AUTOSCALE)
    resp = client.post("/api/autoscale/api/disable")
    assert resp.get_json() == {"name": "api", "enabled": False}
    assert client.get("/api/autoscale/api").get_json()["enabled"] is False
    client.post("/api/autoscale/api/enable")
    assert client.get("/api/autoscale/api").get_json()["enabled"] is True


def test_delete_autoscale(client):
    client.post("/api/autoscale", json=AUTOSCALE)
    resp = client.delete("/api/autoscale/api")
    assert resp.status_code == 204
    assert client.get("/api/autoscale/api").status_code == 404
    assert client.get("/api/alarm").get_json() == []
    assert client.delete("/api/autoscale/api").status_code == 404


def test_autoscale_events(client, components):
    client.post("/api/autoscale", json=AUTOSCALE)
    db = components["db"]
    event = db.create_event(Event(alarm_name="scale_up_api", instance="api",
                                  actions=["scale_up"]))
    event.close(False, "connection refused")
    db.close_event(event)

    data = client.get("/api/autoscale/api/events").get_json()
    assert len(data) == 1
    assert data[0]["successful"] is False
    assert data[0]["error"] == "connection refused"
    assert data[0]["type"] == "increase"

    assert client.get("/api/autoscale/api/events?limit=abc").status_code == 400


# ── Alarms ──────────────────────────────────────────────

def test_alarm_events_for_missing_alarm(client):
    assert client.get("/api/alarm/missing/events").status_code == 404


def test_alarm_events(client, components):
    client.post("/api/autoscale", json=AUTOSCALE)
    components["db"].create_event(Event(alarm_name="scale_down_api", instance="api",
                                        actions=["scale_down"], type="decrease"))
    data = client.get("/api/alarm/scale_down_api/events").get_json()
    assert [e["type"] for e in data] == ["decrease"]


# ── Datasources & actions ───────────────────────────────

def test_datasource_crud(client):
    resp = client.post("/api/datasource", json={"name": "cpu", "url": "http://metrics/{instance}"})
    assert resp.status_code == 201
    assert resp.get_json()["method"] == "GET"
    assert [d["name"] for d in client.get("/api/datasource").get_json()] == ["cpu"]
    assert client.post("/api/datasource", json={"name": "cpu"}).status_code == 400


def test_action_crud(client):
    resp = client.post("/api/action", json={"name": "scale_up", "url": "http://platform/units"})
    assert resp.status_code == 201
    assert resp.get_json()["kind"] == "webhook"
    assert [a["name"] for a in client.get("/api/action").get_json()] == ["scale_up"]
    assert client.post("/api/action", json={"name": "x", "kind": "fax"}).status_code == 400


def test_unexpected_error_is_500(components):
    from models.errors import DataSourceError

    wizard = MagicMock()
    wizard.list.side_effect = DataSourceError("boom")
    app = create_app({}, dict(components, wizard=wizard))
    resp = app.test_client().get("/api/autoscale")
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "boom"}
