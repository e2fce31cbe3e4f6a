import json
import logging
import random
import sys
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.responses import JSONResponse

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
from api.queueboard.middlewares.logging import LoggingMiddleware  # noqa: E402
from api.queueboard.middlewares.request_id import RequestIdMiddleware  # noqa: E402
from api.queueboard.obs.logging import JsonFormatter  # noqa: E402


def _api_lines(caplog):
    """Lines written by the request logger; client libraries log too."""
    return [record.getMessage() for record in caplog.records if record.name == "api"]


def _make_app():
    test_app = FastAPI()
    test_app.add_middleware(RequestIdMiddleware)
    test_app.add_middleware(LoggingMiddleware)

    @test_app.get("/health")
    async def health():
        return {"ok": True}

    @test_app.post("/api/queues/q1/tokens")
    async def add(data: dict):
        return data

    @test_app.post("/fail")
    async def fail():
        return JSONResponse({}, status_code=409)

    @test_app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    return test_app


def test_request_id_propagation(monkeypatch, caplog):
    monkeypatch.setattr("api.queueboard.middlewares.logging.LOG_SAMPLE_2XX", 1)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        resp = client.get("/health", headers={"X-Request-ID": "abc"})
    assert resp.headers["X-Request-ID"] == "abc"
    data = json.loads(_api_lines(caplog)[1])
    assert data["req_id"] == "abc"
    assert data["status"] == 200


def test_request_id_generation(monkeypatch, caplog):
    monkeypatch.setattr("api.queueboard.middlewares.logging.LOG_SAMPLE_2XX", 1)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        resp = client.get("/health")
    rid = resp.headers["X-Request-ID"]
    assert rid
    assert json.loads(_api_lines(caplog)[1])["req_id"] == rid


def test_token_body_redaction(monkeypatch, caplog):
    monkeypatch.setattr("api.queueboard.middlewares.logging.LOG_SAMPLE_2XX", 1)
    client = TestClient(_make_app())
    payload = {"person_name": "Ann", "contact_number": "5550001111", "priority_level": 2}
    with caplog.at_level(logging.INFO, logger="api"):
        resp = client.post(
            "/api/queues/q1/tokens", json=payload, headers={"X-Manager-ID": "m1"}
        )
    assert resp.json() == payload
    inbound = json.loads(_api_lines(caplog)[0])
    assert inbound["manager"] == "m1"
    assert inbound["body"]["person_name"] == "***"
    assert inbound["body"]["contact_number"] == "***"
    assert inbound["body"]["priority_level"] == 2


def test_non_2xx_always_logged(monkeypatch, caplog):
    monkeypatch.setattr("api.queueboard.middlewares.logging.LOG_SAMPLE_2XX", 0)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        for _ in range(5):
            client.post("/fail")
    assert len(_api_lines(caplog)) == 10


def test_2xx_sampling(monkeypatch, caplog):
    monkeypatch.setattr("api.queueboard.middlewares.logging.LOG_SAMPLE_2XX", 0.1)
    random.seed(1)
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="api"):
        for _ in range(100):
            client.get("/health")
    logged = len(_api_lines(caplog)) // 2
    assert 5 <= logged <= 15


def test_unhandled_error_becomes_envelope(caplog):
    client = TestClient(_make_app(), raise_server_exceptions=False)
    with caplog.at_level(logging.INFO, logger="api"):
        resp = client.get("/boom")
    assert resp.status_code == 500
    body = resp.json()
    assert body["ok"] is False
    assert body["error"]["code"] == 500
    assert body["error_id"]


def test_json_logger_redaction():
    formatter = JsonFormatter()
    record = logging.LogRecord(
        "api",
        logging.INFO,
        __file__,
        0,
        "notify 9998887776 email foo@example.com",
        (),
        None,
    )
    record.queue = "q1"
    data = json.loads(formatter.format(record))
    assert "9998887776" not in data["msg"]
    assert "foo@example.com" not in data["msg"]
    assert data["msg"].count("***") == 2
    assert data["queue"] == "q1"
