"""Tests for normalized error responses."""

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from wordsmith.core.errors import (
    AppError,
    AuthenticationError,
    BillingProviderError,
    BillingUnavailableError,
    ConfigurationError,
    DroppedEventWarning,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    UnauthorizedError,
    ValidationError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from wordsmith.core.middleware.request_id import RequestIdMiddleware


@pytest.mark.parametrize(
    "error_cls, code, status",
    [
        (ValidationError, "validation_error", 400),
        (ConfigurationError, "configuration_error", 400),
        (AuthenticationError, "invalid_signature", 400),
        (UnauthorizedError, "unauthorized", 401),
        (QuotaExceededError, "quota_exceeded", 402),
        (ForbiddenError, "forbidden", 403),
        (NotFoundError, "not_found", 404),
        (PersistenceError, "persistence_error", 500),
        (BillingProviderError, "billing_provider_error", 502),
        (BillingUnavailableError, "billing_disabled", 503),
    ],
)
def test_error_taxonomy(error_cls, code, status):
    error = error_cls("boom")
    assert error.code == code
    assert error.status_code == status
    assert error.message == "boom"


def test_configuration_error_is_validation_error():
    assert issubclass(ConfigurationError, ValidationError)
    assert issubclass(NotFoundError, ValueError)


def test_dropped_event_is_app_error():
    assert issubclass(DroppedEventWarning, AppError)
    assert DroppedEventWarning.code == "dropped_event"


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/quota")
    async def quota():
        raise QuotaExceededError("Usage limit reached. Please upgrade your plan to continue generating content.")

    @app.get("/http")
    async def http():
        raise HTTPException(status_code=404, detail="nope")

    @app.get("/crash")
    async def crash():
        raise RuntimeError("internal detail")

    return app


def test_app_error_has_standard_shape():
    client = TestClient(_make_app())
    resp = client.get("/quota")
    assert resp.status_code == 402
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert body["error"]["code"] == "quota_exceeded"
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


def test_http_exception_normalized():
    client = TestClient(_make_app())
    resp = client.get("/http")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_unhandled_exception_is_generic():
    client = TestClient(_make_app(), raise_server_exceptions=False)
    resp = client.get("/crash")
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"]["code"] == "internal_error"
    assert "internal detail" not in resp.text
