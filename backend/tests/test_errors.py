"""
Tests for the error envelope handlers and database failure mapping.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from database import commit_or_fail
from errors import InternalError, NotFound, envelope, install_exception_handlers


@pytest.fixture
def error_app() -> FastAPI:
    error_app = FastAPI()
    install_exception_handlers(error_app)

    @error_app.get("/boom")
    def boom():
        raise RuntimeError("disk on fire")

    @error_app.get("/missing")
    def missing():
        raise NotFound("Widget not found")

    @error_app.get("/db")
    def db_failure():
        raise InternalError("Error saving widget", error="connection reset")

    return error_app


def test_envelope_omits_empty_keys():
    assert envelope(True, data={"x": 1}) == {"success": True, "data": {"x": 1}}
    assert envelope(False, message="Nope", errors=[]) == {"success": False, "message": "Nope", "errors": []}


def test_domain_error_envelope(error_app: FastAPI):
    response = TestClient(error_app).get("/missing")

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Widget not found"}


def test_unknown_route_uses_envelope(error_app: FastAPI):
    response = TestClient(error_app).get("/nowhere")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_unhandled_error_exposes_detail_when_enabled(error_app: FastAPI, monkeypatch):
    monkeypatch.setenv("EXPOSE_ERROR_DETAILS", "true")

    response = TestClient(error_app, raise_server_exceptions=False).get("/boom")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error", "error": "disk on fire"}


def test_unhandled_error_hides_detail_in_production(error_app: FastAPI, monkeypatch):
    monkeypatch.delenv("EXPOSE_ERROR_DETAILS", raising=False)
    monkeypatch.setenv("ENVIRONMENT", "production")

    response = TestClient(error_app, raise_server_exceptions=False).get("/boom")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}


def test_internal_error_carries_cause(error_app: FastAPI, monkeypatch):
    monkeypatch.setenv("EXPOSE_ERROR_DETAILS", "1")

    response = TestClient(error_app).get("/db")

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Error saving widget", "error": "connection reset"}


class BrokenSession:
    def __init__(self):
        self.rolled_back = False

    def commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    def rollback(self):
        self.rolled_back = True


def test_commit_failure_rolls_back_and_raises_internal_error():
    session = BrokenSession()

    with pytest.raises(InternalError) as exc_info:
        commit_or_fail(session, "creating widget")

    assert session.rolled_back
    assert exc_info.value.status_code == 500
    assert exc_info.value.detail == "Error creating widget"
    assert "database is locked" in exc_info.value.error
