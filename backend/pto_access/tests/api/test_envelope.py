"""Tests for the standard response envelope and its exception handlers."""

import re
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI, Query
from fastapi.testclient import TestClient

from pto_access.api.envelope import build_envelope, paginate, register_exception_handlers
from pto_access.platform.access import RequestIdMiddleware
from pto_access.platform.errors import (
    CrossTenantError,
    NotFoundError,
    PermissionDeniedError,
    UpstreamUnavailableError,
    generate_correlation_id,
)

REQUEST_ID_PATTERN = re.compile(r"^req_[0-9a-f]{12}$")


class TestBuildEnvelope:
    def test_success_shape(self):
        envelope = build_envelope({"id": "e1"}, request_id="req_aaaaaaaaaaaa", endpoint="/api/events", method="POST")

        assert envelope.success is True
        assert envelope.data == {"id": "e1"}
        assert envelope.errors is None
        assert envelope.meta.request_id == "req_aaaaaaaaaaaa"
        assert envelope.meta.version == "v1"
        assert envelope.meta.endpoint == "/api/events"
        assert envelope.meta.method == "POST"

    def test_error_shape(self):
        envelope = build_envelope(errors=PermissionDeniedError())

        assert envelope.success is False
        assert envelope.data is None
        assert len(envelope.errors) == 1
        assert envelope.errors[0].code == "FORBIDDEN"

    def test_error_drops_data(self):
        envelope = build_envelope({"leak": True}, errors=[{"code": "X", "message": "y"}])
        assert envelope.data is None
        assert envelope.success is False

    def test_generates_request_id(self):
        envelope = build_envelope([])
        assert REQUEST_ID_PATTERN.match(envelope.meta.request_id)

    def test_timestamp_is_iso8601(self):
        moment = datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)
        envelope = build_envelope(None, timestamp=moment)
        assert envelope.meta.timestamp == "2024-09-01T12:00:00+00:00"

    def test_correlation_id_format(self):
        assert REQUEST_ID_PATTERN.match(generate_correlation_id())


class TestPaginate:
    def test_middle_page(self):
        items, pagination = paginate(["a", "b"], page=2, limit=2, total=5)

        assert items == ["a", "b"]
        assert pagination.total_pages == 3
        assert pagination.has_next is True
        assert pagination.has_prev is True

    def test_empty(self):
        _, pagination = paginate([], page=1, limit=20, total=0)
        assert pagination.total_pages == 0
        assert pagination.has_next is False
        assert pagination.has_prev is False


@pytest.fixture
def handler_client():
    app = FastAPI()
    app.middleware("http")(RequestIdMiddleware())
    register_exception_handlers(app)

    @app.get("/forbidden")
    async def forbidden():
        raise PermissionDeniedError()

    @app.get("/cross-tenant")
    async def cross_tenant():
        raise CrossTenantError(resource_org_id="org-b")

    @app.get("/missing")
    async def missing():
        raise NotFoundError()

    @app.get("/upstream")
    async def upstream():
        raise UpstreamUnavailableError("tenant_context")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("secret internals")

    @app.get("/validated")
    async def validated(limit: int = Query(..., ge=1)):
        return {"limit": limit}

    return TestClient(app, raise_server_exceptions=False)


class TestExceptionHandlers:
    def test_app_error_rendered_in_envelope(self, handler_client):
        response = handler_client.get("/forbidden")

        assert response.status_code == 403
        body = response.json()
        assert body["success"] is False
        assert body["data"] is None
        assert body["errors"][0]["code"] == "FORBIDDEN"
        assert body["meta"]["request_id"] == response.headers["X-Request-ID"]
        assert body["meta"]["endpoint"] == "/forbidden"
        assert body["meta"]["method"] == "GET"

    def test_cross_tenant_identical_to_not_found(self, handler_client):
        cross = handler_client.get("/cross-tenant")
        missing = handler_client.get("/missing")

        assert cross.status_code == missing.status_code == 404
        assert cross.json()["errors"] == missing.json()["errors"]

    def test_upstream_unavailable(self, handler_client):
        response = handler_client.get("/upstream")
        assert response.status_code == 503
        assert response.json()["errors"][0]["code"] == "UPSTREAM_UNAVAILABLE"

    def test_validation_error(self, handler_client):
        response = handler_client.get("/validated?limit=0")

        assert response.status_code == 400
        error = response.json()["errors"][0]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["field"] == "limit"

    def test_unhandled_error_does_not_leak(self, handler_client):
        response = handler_client.get("/boom")

        assert response.status_code == 500
        body = response.json()
        assert body["errors"][0]["code"] == "INTERNAL_SERVER_ERROR"
        assert "secret internals" not in response.text

    def test_unknown_route_uses_envelope(self, handler_client):
        response = handler_client.get("/nope")
        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "NOT_FOUND"
