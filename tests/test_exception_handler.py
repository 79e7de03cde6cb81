"""Unit tests for the global exception handlers.

All tests use a standalone FastAPI app with inline routes so that no
database connections or real routers are needed.
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel

from app.errors import JobExecutionError, NotFoundError, ValidationError
from app.middleware import RequestIDMiddleware
from app.middleware.exception_handler import setup_exception_handlers


@pytest.fixture()
def test_app() -> FastAPI:
    """Create a minimal FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/raise-unhandled")
    async def _raise_unhandled() -> None:
        raise RuntimeError("something went very wrong")

    @app.get("/raise-http-404")
    async def _raise_http_404() -> None:
        raise HTTPException(status_code=404, detail="Item not found")

    class Item(BaseModel):
        name: str
        price: float

    @app.post("/validate")
    async def _validate(item: Item) -> dict:
        return item.model_dump()

    @app.get("/raise-not-found")
    async def _raise_not_found() -> None:
        raise NotFoundError("Project not found")

    @app.get("/raise-too-long")
    async def _raise_too_long() -> None:
        raise ValidationError("Message is too long", constraint="max_length")

    @app.get("/raise-job-error")
    async def _raise_job_error() -> None:
        raise JobExecutionError("agent run failed")

    @app.get("/ok")
    async def _ok() -> dict:
        return {"status": "ok"}

    return app


@pytest.fixture()
def client(test_app: FastAPI) -> TestClient:
    return TestClient(test_app, raise_server_exceptions=False)


# ------------------------------------------------------------------
# Generic unhandled exception -> 500
# ------------------------------------------------------------------

def test_unhandled_exception_returns_500(client: TestClient) -> None:
    response = client.get("/raise-unhandled")
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal Server Error"
    assert body["request_id"]


def test_unhandled_exception_does_not_leak_message(client: TestClient) -> None:
    response = client.get("/raise-unhandled")
    assert "something went very wrong" not in response.text


def test_unhandled_exception_is_logged(client: TestClient) -> None:
    with patch("app.middleware.exception_handler.logger") as mock_logger:
        client.get("/raise-unhandled")
    mock_logger.error.assert_called_once()
    call_args = mock_logger.error.call_args
    assert "GET" in str(call_args)
    assert "/raise-unhandled" in str(call_args)
    assert call_args.kwargs.get("exc_info") is not None


# ------------------------------------------------------------------
# HTTPException / request validation
# ------------------------------------------------------------------

def test_http_exception_preserves_status(client: TestClient) -> None:
    response = client.get("/raise-http-404")
    assert response.status_code == 404
    assert response.json()["detail"] == "Item not found"


def test_request_validation_returns_422(client: TestClient) -> None:
    response = client.post("/validate", json={"name": 123})
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Validation failed"
    assert isinstance(body["detail"], list)


# ------------------------------------------------------------------
# Domain errors
# ------------------------------------------------------------------

def test_not_found_returns_404(client: TestClient) -> None:
    response = client.get("/raise-not-found")
    assert response.status_code == 404
    assert response.json()["detail"] == "Project not found"


def test_domain_validation_names_constraint(client: TestClient) -> None:
    response = client.get("/raise-too-long")
    assert response.status_code == 422
    body = response.json()
    assert body["detail"] == "Message is too long"
    assert body["constraint"] == "max_length"


def test_job_error_returns_500(client: TestClient) -> None:
    response = client.get("/raise-job-error")
    assert response.status_code == 500
    assert response.json()["detail"] == "agent run failed"


# ------------------------------------------------------------------
# Request ID propagation
# ------------------------------------------------------------------

def test_request_id_matches_header(client: TestClient) -> None:
    response = client.get("/raise-not-found", headers={"X-Request-ID": "trace-42"})
    assert response.json()["request_id"] == "trace-42"
    assert response.headers["X-Request-ID"] == "trace-42"


def test_successful_request_not_affected(client: TestClient) -> None:
    response = client.get("/ok")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
