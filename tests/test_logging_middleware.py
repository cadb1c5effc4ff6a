"""Tests for the logging middleware."""

import logging

import pytest
from fakes import FakeClock

from conduit import HttpStatusError, LoggingMiddleware, Request, Response
from conduit.middleware import REDACTED, sanitize_headers


class TestSanitizeHeaders:
    @pytest.mark.parametrize(
        "name",
        ["Authorization", "X-API-Key", "api-key", "Token", "X-Auth-Key", "X-Auth-User-Service-Key", "Cookie"],
    )
    def test_masks_sensitive_headers(self, name):
        assert sanitize_headers({name: "secret"}) == {name: REDACTED}

    def test_keeps_other_headers(self):
        headers = {"Accept": "application/json", "X-Request-Id": "42"}
        assert sanitize_headers(headers) == headers


class TestLoggingMiddleware:
    def _logger(self) -> logging.Logger:
        return logging.getLogger("tests.http")

    def test_logs_request_and_response(self, caplog):
        clock = FakeClock()
        middleware = LoggingMiddleware(logger=self._logger(), clock=clock)

        def handler(request):
            clock.advance(0.125)
            return Response.build(200)

        request = Request.create(
            "GET",
            "https://api.example.com/users",
            data={"page": 1},
            headers={"Authorization": "Bearer secret-token", "Accept": "application/json"},
        )
        with caplog.at_level(logging.INFO, logger="tests.http"):
            middleware.handle(request, handler)

        assert "HTTP Request: GET https://api.example.com/users" in caplog.text
        assert "'page': 1" in caplog.text
        assert REDACTED in caplog.text
        assert "secret-token" not in caplog.text
        assert "HTTP Response: GET https://api.example.com/users | 200 OK (125.00ms)" in caplog.text

    def test_logs_and_reraises_errors(self, caplog):
        clock = FakeClock()
        middleware = LoggingMiddleware(logger=self._logger(), clock=clock)
        error = HttpStatusError(Response.build(503))

        def handler(request):
            clock.advance(2)
            raise error

        with caplog.at_level(logging.INFO, logger="tests.http"):
            with pytest.raises(HttpStatusError) as exc_info:
                middleware.handle(Request.create("DELETE", "https://api.example.com/users/1"), handler)

        assert exc_info.value is error
        error_records = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(error_records) == 1
        assert "HttpStatusError: HTTP 503 Service Unavailable (2000.00ms)" in error_records[0].getMessage()

    def test_custom_levels(self, caplog):
        middleware = LoggingMiddleware(
            logger=self._logger(),
            request_level=logging.DEBUG,
            response_level=logging.WARNING,
        )

        with caplog.at_level(logging.DEBUG, logger="tests.http"):
            middleware.handle(Request.create("GET", "https://x.test"), lambda r: Response.build(200))

        levels = [r.levelno for r in caplog.records if r.name == "tests.http"]
        assert levels == [logging.DEBUG, logging.WARNING]

    def test_defaults_to_module_logger(self):
        assert LoggingMiddleware().logger.name == "conduit.middleware._logging"
