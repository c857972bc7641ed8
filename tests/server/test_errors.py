"""Tests for the standardized error responses."""

from __future__ import annotations

import json

import pytest

from hushnet_registry.core.exceptions import (
    AuthenticationError,
    DatabaseException,
    HostConflictError,
    HostResolutionError,
    MissingFieldError,
    NodeNotFoundError,
    ValidationException,
)
from hushnet_registry.core.logging import correlation_context
from hushnet_registry.server.errors import (
    AUTH_SIGNATURE_FAILED,
    FORBIDDEN_HOST_BOUND,
    INTERNAL_ERROR,
    NOT_FOUND_NODE,
    REQUEST_TIMEOUT,
    VALIDATION_INVALID_VALUE,
    VALIDATION_MISSING_FIELD,
    VALIDATION_UNRESOLVABLE_HOST,
    error_response,
    exception_response,
    internal_error,
    not_found_error,
    timeout_error,
)


def _body(response) -> dict:
    return json.loads(response.text)


class TestErrorResponse:
    def test_format(self):
        response = error_response("SOME_CODE", "went wrong", status_code=418)

        assert response.status == 418
        assert _body(response) == {
            "success": False,
            "error": {"code": "SOME_CODE", "message": "went wrong"},
        }

    def test_not_found(self):
        response = not_found_error("/nope")
        assert response.status == 404
        assert _body(response)["error"]["message"] == "/nope not found"

    def test_timeout(self):
        response = timeout_error(2.5)
        assert response.status == 408
        assert _body(response)["error"] == {"code": REQUEST_TIMEOUT, "message": "request exceeded 2.5s"}


class TestExceptionResponse:
    @pytest.mark.parametrize(
        "exc,status,code",
        [
            (MissingFieldError("host"), 400, VALIDATION_MISSING_FIELD),
            (HostResolutionError("h1", "no such domain"), 400, VALIDATION_UNRESOLVABLE_HOST),
            (ValidationException("invalid/expired nonce"), 400, VALIDATION_INVALID_VALUE),
            (AuthenticationError(), 401, AUTH_SIGNATURE_FAILED),
            (HostConflictError("h1"), 403, FORBIDDEN_HOST_BOUND),
            (NodeNotFoundError("h1"), 404, NOT_FOUND_NODE),
            (DatabaseException("connection refused"), 500, INTERNAL_ERROR),
        ],
    )
    def test_mapping(self, exc, status, code):
        response = exception_response(exc)

        assert response.status == status
        assert _body(response)["error"]["code"] == code

    def test_message_passed_through(self):
        body = _body(exception_response(MissingFieldError("pubkey_b64")))
        assert body["error"]["message"] == "pubkey_b64 is required"


class TestInternalError:
    def test_hides_detail_by_default(self):
        with correlation_context("req-1"):
            response = internal_error(exc=RuntimeError("secret dsn"))

        error = _body(response)["error"]
        assert response.status == 500
        assert error == {"code": INTERNAL_ERROR, "message": "internal", "request_id": "req-1"}

    def test_debug_includes_detail(self):
        error = _body(internal_error(exc=RuntimeError("secret dsn"), debug=True))["error"]

        assert error["exception"] == "RuntimeError"
        assert error["detail"] == "secret dsn"
        assert "RuntimeError" in error["traceback"]

    def test_request_id_without_context(self):
        error = _body(internal_error())["error"]
        assert len(error["request_id"]) == 12

    def test_logs_exception(self, caplog):
        with correlation_context("req-2"), caplog.at_level("ERROR"):
            internal_error(exc=RuntimeError("boom"))

        assert any("req-2" in record.getMessage() for record in caplog.records)
