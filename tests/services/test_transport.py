"""Tests for the HTTP transport: envelopes, headers and error classification."""

import asyncio

import aiohttp
import pytest

from quotesync.services.transport import RequestOptions
from quotesync.services.transport.classification import classify_response
from quotesync.services.transport.models import RateLimitInfo
from quotesync.shared.errors import (
    AuthorizationError,
    BusinessLogicError,
    ErrorCode,
    ExternalServiceError,
    InternalServerError,
    NetworkError,
    RequestTimeoutError,
    ResourceNotFoundError,
    ValidationError,
)
from tests.helpers import FakeResponse, envelope, error_envelope

RATE_LIMIT_HEADERS = {
    "X-RateLimit-Limit": "100",
    "X-RateLimit-Remaining": "97",
    "X-RateLimit-Reset": "1700000000",
}


class TestRequestConstruction:
    """Test what goes on the wire."""

    @pytest.mark.asyncio
    async def test_headers_and_body(self, transport, session) -> None:
        session.add(FakeResponse(201, envelope({"id": "Q1"})))

        await transport.post("/quotations", {"customerId": "C1", "items": []})

        sent = session.requests[0]
        assert sent.method == "POST"
        assert sent.url == "http://test.local/api/quotations"
        assert sent.headers["Authorization"] == "Bearer access-1"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.headers["X-Request-ID"]
        assert sent.json == {"customerId": "C1", "items": []}

    @pytest.mark.asyncio
    async def test_each_attempt_gets_a_new_request_id(self, transport, session) -> None:
        session.add(FakeResponse(503), FakeResponse(200, envelope([])))

        await transport.get("/products")

        first, second = session.requests
        assert first.headers["X-Request-ID"] != second.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_query_params_are_encoded(self, transport, session) -> None:
        session.add(FakeResponse(200, envelope([])))

        await transport.get(
            "/orders",
            RequestOptions(params={"page": 2, "active": True, "status": None}),
        )

        assert session.requests[0].params == {"page": "2", "active": "true"}

    @pytest.mark.asyncio
    async def test_unauthenticated_request_has_no_authorization(self, transport, session) -> None:
        session.add(FakeResponse(200, envelope({"ok": True})))

        await transport.post("/auth/login", {"email": "a@b.c"}, RequestOptions(authenticated=False))

        assert "Authorization" not in session.requests[0].headers

    @pytest.mark.asyncio
    async def test_extra_headers_are_merged(self, transport, session) -> None:
        session.add(FakeResponse(200, envelope([])))

        await transport.get("/orders", RequestOptions(headers={"X-Tenant": "t1"}))

        assert session.requests[0].headers["X-Tenant"] == "t1"


class TestResponseHandling:
    """Test envelope unwrapping."""

    @pytest.mark.asyncio
    async def test_success_envelope_is_unwrapped(self, transport, session) -> None:
        session.add(FakeResponse(200, envelope({"id": "C1"}, message="ok", requestId="srv-1")))

        response = await transport.get("/customers/C1")

        assert response.data == {"id": "C1"}
        assert response.status == 200
        assert response.message == "ok"
        assert response.request_id == "srv-1"

    @pytest.mark.asyncio
    async def test_non_envelope_body_is_returned_as_is(self, transport, session) -> None:
        session.add(FakeResponse(200, [1, 2, 3]))

        response = await transport.get("/analytics/raw")

        assert response.data == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_empty_body(self, transport, session) -> None:
        session.add(FakeResponse(204))

        response = await transport.delete("/customers/C1")

        assert response.data is None
        assert response.status == 204

    @pytest.mark.asyncio
    async def test_rate_limit_is_recorded(self, transport, session) -> None:
        session.add(FakeResponse(200, envelope([]), headers=RATE_LIMIT_HEADERS))

        response = await transport.get("/orders")

        expected = RateLimitInfo(limit=100, remaining=97, reset=1700000000)
        assert response.rate_limit == expected
        assert transport.last_rate_limit == expected


class TestErrorClassification:
    """Test mapping of failures to ApiError subclasses."""

    @pytest.mark.asyncio
    async def test_error_envelope_fields(self, transport, session) -> None:
        session.add(
            FakeResponse(
                404,
                error_envelope("RESOURCE_NOT_FOUND", "Customer C9 not found", {"id": "C9"}),
                headers=RATE_LIMIT_HEADERS,
            ),
        )

        with pytest.raises(ResourceNotFoundError) as exc_info:
            await transport.get("/customers/C9")

        error = exc_info.value
        assert error.status_code == 404
        assert error.message == "Customer C9 not found"
        assert error.user_message == "The requested item could not be found."
        assert error.details == {"id": "C9"}
        assert error.request_id == "req-err"
        assert error.rate_limit is not None and error.rate_limit.remaining == 97

    @pytest.mark.asyncio
    async def test_success_false_with_200_is_an_error(self, transport, session) -> None:
        session.add(FakeResponse(200, error_envelope("AUTHORIZATION_ERROR", "not yours")))

        with pytest.raises(AuthorizationError):
            await transport.get("/orders/O1")

    @pytest.mark.asyncio
    async def test_unknown_status_without_body(self, transport, session) -> None:
        session.add(FakeResponse(409, reason="Conflict"))

        with pytest.raises(BusinessLogicError) as exc_info:
            await transport.put("/orders/O1", {"status": "shipped"})

        assert exc_info.value.status_code == 409
        assert exc_info.value.message == "Conflict"

    @pytest.mark.parametrize(
        ("status", "body", "expected"),
        [
            (400, None, ValidationError),
            (403, None, AuthorizationError),
            (422, None, BusinessLogicError),
            (502, None, ExternalServiceError),
            (504, None, ExternalServiceError),
            (501, None, InternalServerError),
            (500, {"error": {"code": "EXTERNAL_SERVICE_ERROR", "message": "pg down"}}, ExternalServiceError),
            (400, {"error": {"code": "SOMETHING_NEW", "message": "?"}}, ValidationError),
        ],
    )
    def test_classify_response(self, status, body, expected) -> None:
        error = classify_response(status, body, method="GET", path="/x")

        assert type(error) is expected
        assert error.status_code == status

    @pytest.mark.asyncio
    async def test_connection_failure_reports_offline(self, transport, session, connectivity) -> None:
        session.add(aiohttp.ClientConnectionError("refused"))

        with pytest.raises(NetworkError) as exc_info:
            await transport.post("/orders", {"total": 1}, RequestOptions(retry=False))

        assert exc_info.value.status_code == 0
        assert exc_info.value.code is ErrorCode.NETWORK_ERROR
        assert not connectivity.is_online

    @pytest.mark.asyncio
    async def test_response_reports_online(self, transport, session, connectivity) -> None:
        connectivity.report_offline()
        session.add(FakeResponse(500))

        with pytest.raises(InternalServerError):
            await transport.post("/orders", {"total": 1})

        assert connectivity.is_online

    @pytest.mark.asyncio
    async def test_timeout(self, transport, session, connectivity) -> None:
        session.add(asyncio.TimeoutError())

        with pytest.raises(RequestTimeoutError) as exc_info:
            await transport.get("/orders", RequestOptions(retry=False, timeout=5))

        assert exc_info.value.status_code == 408
        assert exc_info.value.context.additional_data["timeout"] == 5
        assert connectivity.is_online


class TestSessionLifecycle:
    """Test session ownership."""

    @pytest.mark.asyncio
    async def test_injected_session_is_not_closed(self, transport, session) -> None:
        await transport.close()

        assert not session.closed

    @pytest.mark.asyncio
    async def test_owned_session_is_created_lazily_and_closed(self, credentials) -> None:
        from quotesync.services.transport import Transport

        transport = Transport(credentials, base_url="http://test.local/api")

        created = await transport._get_session()
        assert await transport._get_session() is created

        await transport.close()

        assert created.closed
