from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from actionlog.models import ContainerTransaction, LogEvent
from action_logger.api.server import app, create_app
from action_logger.core.context import start_service

BASE = datetime(2024, 5, 1, 12, 0, 0)


def _assert_schema(payload: dict):
    assert "ok" in payload
    assert "command" in payload
    assert "params" in payload
    assert "warnings" in payload
    assert "data" in payload
    assert "error" in payload
    assert "meta" in payload


@pytest.fixture
def client(context):
    return TestClient(create_app(context))


@pytest.fixture
def loaded(context):
    for i in range(3):
        context.recorder.submit(LogEvent("Bob", "Login", timestamp=BASE + timedelta(seconds=i)))
    context.recorder.submit(LogEvent("Alice", "Login", "", "world", 10, 64, -5, BASE + timedelta(minutes=1)))
    context.recorder.submit(LogEvent("Alice", "Chat", 'say "hi"\nback\\slash', timestamp=BASE + timedelta(minutes=2)))
    context.recorder.submit_container(ContainerTransaction("Alice", 1, "CHEST", "DIAMOND", 4, "world", 1, 2, 3, time=int(BASE.timestamp())))
    context.flush()
    return context


def test_health():
    client = TestClient(app)
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_logs_empty(client):
    resp = client.get("/logs")
    assert resp.status_code == 200
    assert resp.json() == {"logs": [], "total": 0}


def test_logs_shape(client, loaded):
    resp = client.get("/logs?player=Alice&action=Login")
    assert resp.status_code == 200
    payload = resp.json()
    assert payload["total"] == 1
    assert payload["logs"] == [
        {
            "playerName": "Alice",
            "action": "Login",
            "detail": "",
            "location": "/tp 10 64 -5",
            "timestamp": "2024-05-01T12:01:00",
        }
    ]


def test_logs_filters_and_escaping(client, loaded):
    payload = client.get("/logs?itemContainer=slash").json()
    assert payload["total"] == 1
    row = payload["logs"][0]
    assert row["detail"] == 'say "hi"\nback\\slash'
    assert row["location"] == "Unknown"

    assert client.get("/logs?player=Bob").json()["total"] == 3


def test_logs_pagination_and_sort(client, loaded):
    payload = client.get("/logs?page=5&size=25").json()
    assert payload == {"logs": [], "total": 5}

    asc = client.get("/logs?sort=asc&size=2").json()
    assert [r["playerName"] for r in asc["logs"]] == ["Bob", "Bob"]
    desc = client.get("/logs?size=1").json()
    assert desc["logs"][0]["action"] == "Chat"


def test_logs_bad_paging_falls_back(client, loaded):
    resp = client.get("/logs?page=abc&size=xyz")
    assert resp.status_code == 200
    assert len(resp.json()["logs"]) == 5
    assert len(client.get("/logs?size=0").json()["logs"]) == 1


def test_logs_huge_page_is_empty(client, context):
    context.recorder.submit(LogEvent("Alice", "Login", timestamp=BASE))
    context.flush()
    resp = client.get("/logs?page=1000000000000000000&size=25")
    assert resp.status_code == 200
    assert resp.json() == {"logs": [], "total": 1}


def test_logs_out_of_range_time_bounds(client, loaded):
    resp = client.get(f"/logs?from={10**30}")
    assert resp.status_code == 200
    assert resp.json() == {"logs": [], "total": 0}
    assert client.get(f"/logs?to={-10**30}").json()["total"] == 0
    assert client.get(f"/logs?from={-10**30}&to={10**30}").json()["total"] == 5
    assert client.get(f"/containers?page={10**20}").status_code == 200


def test_logs_time_bounds(client, loaded):
    since = int((BASE + timedelta(seconds=30)).timestamp())
    payload = client.get(f"/logs?from={since}").json()
    assert payload["total"] == 2


def test_logs_read_failure_reports_error(context):
    client = TestClient(create_app(context))
    context.pool.close()
    payload = client.get("/logs").json()
    assert payload["logs"] == []
    assert payload["total"] == 0
    assert "error" in payload


def test_players_and_actions(client, loaded):
    assert sorted(client.get("/players").json()) == ["Alice", "Bob"]
    assert sorted(client.get("/actions").json()) == ["Chat", "Login"]


def test_containers(client, loaded):
    payload = client.get("/containers?material=dia").json()
    assert payload["total"] == 1
    row = payload["transactions"][0]
    assert row["action"] == "Placed"
    assert row["amount"] == 4
    assert row["location"] == "world (1, 2, 3)"


def test_summary_window(client, loaded):
    start = int(BASE.timestamp())
    end = start + 3600
    payload = client.get(f"/summary?from={start}&to={end}").json()
    assert payload["total"] == 5
    assert payload["counts"] == {"Login": 4, "Chat": 1}

    payload = client.get(f"/summary?player=Alice&from={start}&to={end}").json()
    assert payload["counts"] == {"Login": 1, "Chat": 1}

    # default window is the last hour, long after BASE
    assert client.get("/summary").json()["total"] == 0


def test_stats_and_admin(client, context):
    context.recorder.submit(LogEvent("Alice", "Login"))
    stats = client.get("/stats").json()
    assert stats["log_queue"] == 1
    assert stats["pool"]["total"] >= 1

    admin = client.get("/admin/stats").json()
    _assert_schema(admin)
    assert admin["data"]["log_queue"] == 1

    flushed = client.post("/admin/flush").json()
    _assert_schema(flushed)
    assert flushed["ok"] is True
    assert flushed["data"] == {"logs": 1, "containers": 0, "total": 1}

    pool = client.get("/admin/pool").json()
    assert set(pool["data"]) == {"active", "idle", "total", "waiting"}

    missing = client.get("/admin/nope")
    assert missing.status_code == 404
    _assert_schema(missing.json())


def test_token_required_when_configured(settings):
    from dataclasses import replace

    ctx = start_service(replace(settings, token="s3cret"), start_writer=False)
    try:
        client = TestClient(create_app(ctx))
        assert client.get("/health").status_code == 200

        resp = client.get("/logs")
        assert resp.status_code == 401
        payload = resp.json()
        _assert_schema(payload)
        assert payload["error"]["code"] == "UNAUTHORIZED"

        assert client.get("/logs?token=wrong").status_code == 401
        assert client.get("/logs?token=s3cret").status_code == 200
    finally:
        ctx.shutdown()


def test_service_not_started_is_reported():
    client = TestClient(create_app())
    resp = client.get("/players")
    assert resp.status_code == 503
    _assert_schema(resp.json())
