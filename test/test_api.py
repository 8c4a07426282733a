import asyncio
import os
import sys

import pytest
from fastapi.testclient import TestClient

_test_dir = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, _test_dir)

from _helper import NOW, FakeSink, make_record

from order_board.main import app
from order_board.pipeline import BoardPipeline, SnapshotReceived
from order_board.sink import SERVER_TIMESTAMP, OrderNotFoundError, StaleTransitionError
from order_board.transitions import TransitionController
from order_board.ws import manager


def _board(sink: FakeSink) -> TestClient:
    pipeline = BoardPipeline(clock=lambda: NOW)
    records = [
        ("fresh", make_record("pending", age_min=3, orderNumber=101)),
        ("late", make_record("pending", age_min=25)),
        ("cooking", make_record("preparing", age_min=10)),
        ("done", make_record("completed", age_min=5)),
    ]
    asyncio.run(pipeline.handle(SnapshotReceived(records)))
    app.state.pipeline = pipeline
    app.state.controller = TransitionController(sink)
    # no context manager: the lifespan (Redis subscription) is not started
    return TestClient(app)


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def client(sink):
    return _board(sink)


def test_board_defaults_to_pending_tab_urgent_first(client):
    resp = client.get("/board")
    assert resp.status_code == 200
    body = resp.json()
    assert body["tab"] == "pending"
    assert body["stale"] is False
    assert [o["id"] for o in body["orders"]] == ["late", "fresh"]
    late, fresh = body["orders"]
    assert late["urgent"] is True
    assert late["timeElapsed"] == "25 min"
    assert fresh["orderNumberDisplay"] == "101"
    assert late["orderNumberDisplay"] == "N/A"
    assert fresh["nextStatus"] == "preparing"
    assert fresh["action"] == "Start Preparing"
    assert fresh["estimatedMinutes"] == 19
    assert fresh["tableNumber"] == 4
    assert body["counts"] == {"pending": 2, "preparing": 1, "ready": 0, "completed": 1}


def test_board_all_tab_and_unknown_tab(client):
    assert len(client.get("/board", params={"tab": "all"}).json()["orders"]) == 4
    assert client.get("/board", params={"tab": "archived"}).status_code == 422


def test_counts_endpoint(client):
    assert client.get("/counts").json() == {"pending": 2, "preparing": 1, "ready": 0, "completed": 1}


def test_order_details(client):
    resp = client.get("/orders/cooking")
    assert resp.status_code == 200
    assert resp.json()["status"] == "preparing"
    assert client.get("/orders/missing").status_code == 404


def test_transition_is_forwarded_to_sink(client, sink):
    resp = client.post("/orders/cooking/transition", json={"target": "ready", "actor": "Sr. Chef"})
    assert resp.status_code == 202
    assert resp.json() == {"status": "accepted", "order_id": "cooking", "target": "ready"}
    assert sink.calls == [("cooking", {"status": "ready", "readyAt": SERVER_TIMESTAMP, "updatedBy": "Sr. Chef"})]


def test_invalid_target_is_a_conflict(client, sink):
    resp = client.post("/orders/cooking/transition", json={"target": "pending"})
    assert resp.status_code == 409
    assert resp.json()["error"] == "invalid_transition"
    assert sink.calls == []


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        (StaleTransitionError("cooking", "ready"), 409, "stale_transition"),
        (OrderNotFoundError("cooking"), 404, "order_not_found"),
        (ConnectionError("store down"), 502, "update_failed"),
    ],
)
def test_sink_failures_are_reported(error, status_code, code):
    client = _board(FakeSink(error=error))
    resp = client.post("/orders/cooking/transition", json={"target": "ready"})
    assert resp.status_code == status_code
    assert resp.json()["error"] == code
    # the board keeps showing the last snapshot
    assert client.get("/orders/cooking").json()["status"] == "preparing"


def test_advance_uses_displayed_status(client, sink):
    resp = client.post("/orders/fresh/advance", json={})
    assert resp.status_code == 202
    assert resp.json()["target"] == "preparing"
    assert sink.calls[0][1]["status"] == "preparing"

    assert client.post("/orders/done/advance", json={}).status_code == 409
    assert client.post("/orders/missing/advance", json={}).status_code == 404


def test_health_and_metrics(client):
    assert client.get("/health").json() == {"status": "ok"}
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert b"snapshots_processed_total" in resp.content


def test_websocket_client_is_released_on_close(client):
    with client.websocket_connect("/ws"):
        assert len(manager.active_connections) == 1
    assert not manager.active_connections
