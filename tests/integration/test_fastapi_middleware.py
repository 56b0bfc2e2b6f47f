"""End-to-end tests for the FastAPI middleware and setup helper."""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from treebeard import TreebeardContext, TreebeardCore, log, setup_observability

pytestmark = pytest.mark.integration


def _app(service, **options) -> FastAPI:
    app = FastAPI(title="Order Service")

    @app.get("/orders")
    async def list_orders():
        log.info("listing orders")
        return {"trace_id": TreebeardContext.get_trace_id()}

    @app.get("/missing")
    async def missing():
        raise HTTPException(status_code=404, detail="not here")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database unavailable")

    setup_observability(
        app,
        api_key="test-key",
        service=service,
        capture_unhandled=False,
        flush_interval=60.0,
        **options,
    )
    return app


def test_requests_run_inside_their_own_trace(service) -> None:
    app = _app(service)

    with TestClient(app) as client:
        response = client.get("/orders", headers={"x-trace-id": "incoming-trace"})
        assert response.status_code == 200
        assert response.headers["x-trace-id"] == "incoming-trace"
        assert response.json() == {"trace_id": "incoming-trace"}

    messages = [(entry["msg"], entry.get("tid")) for entry in service.logs]
    assert messages == [
        ("Starting trace: GET /orders", "incoming-trace"),
        ("listing orders", "incoming-trace"),
        ("Completed trace: GET /orders", "incoming-trace"),
    ]
    assert service.logs[-1]["props"]["status_code"] == 200


def test_requests_without_header_get_distinct_traces(service) -> None:
    app = _app(service)

    with TestClient(app) as client:
        first = client.get("/orders").json()["trace_id"]
        second = client.get("/orders").json()["trace_id"]

    assert first and second
    assert first != second


def test_client_errors_complete_successfully(service) -> None:
    app = _app(service)

    with TestClient(app) as client:
        assert client.get("/missing").status_code == 404

    end = service.logs[-1]
    assert end["msg"] == "Completed trace: GET /missing"
    assert end["props"]["status_code"] == 404


def test_unhandled_errors_fail_the_trace(service) -> None:
    app = _app(service)

    with TestClient(app, raise_server_exceptions=False) as client:
        assert client.get("/boom").status_code == 500

    messages = [entry["msg"] for entry in service.logs]
    assert "Failed trace: GET /boom" in messages
    error = next(entry for entry in service.logs if entry.get("ext") == "RuntimeError")
    assert error["exv"] == "database unavailable"


def test_project_name_defaults_to_app_title(service) -> None:
    _app(service)

    assert TreebeardCore.get_instance().config.project_name == "order_service"


def test_unknown_options_are_ignored(service) -> None:
    _app(service, bogus_option=1, batch_size=5)

    assert TreebeardCore.get_instance().config.batch_size == 5


def test_disabled_setup_returns_none(service) -> None:
    app = FastAPI()

    assert setup_observability(app, enabled=False, service=service) is None
    assert TreebeardCore.get_instance() is None


def test_enabled_flag_read_from_environment(service, monkeypatch) -> None:
    monkeypatch.setenv("TREEBEARD_ENABLED", "false")

    assert setup_observability(FastAPI(), service=service) is None
