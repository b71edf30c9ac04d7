"""
Test helpers: a fake aiohttp session, API envelopes and a manual clock.

The fake session records every request and answers it either from a FIFO
of prepared responses or from a handler function, so transport tests run
without a network.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Callable

import orjson

BASE_URL = "http://test.local/api"
def envelope(data: Any, **extra: Any) -> dict[str, Any]:
    """Success envelope as sent by the API."""
    return {
        "success": True,
        "data": data,
        "timestamp": "2024-01-01T00:00:00Z",
        "requestId": extra.pop("requestId", "req-1"),
        **extra,
    }


def error_envelope(code: str, message: str, details: Any = None) -> dict[str, Any]:
    """Error envelope as sent by the API."""
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "timestamp": "2024-01-01T00:00:00Z",
            "requestId": "req-err",
        },
    }


@dataclass
class RecordedRequest:
    method: str
    url: str
    params: dict[str, str] | None = None
    data: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def json(self) -> Any:
        return orjson.loads(self.data) if self.data else None

    @property
    def path(self) -> str:
        return self.url.split("/api", 1)[-1]


class FakeResponse:
    """Stand-in for ``aiohttp.ClientResponse``."""

    def __init__(
        self,
        status: int = 200,
        body: Any = None,
        headers: dict[str, str] | None = None,
        reason: str | None = None,
    ) -> None:
        self.status = status
        self.headers = headers or {}
        self.reason = reason or ("OK" if status < 400 else "Error")
        if body is None:
            self._text = ""
        elif isinstance(body, str):
            self._text = body
        else:
            self._text = orjson.dumps(body).decode("utf-8")

    async def text(self) -> str:
        return self._text


class _RequestContext:
    def __init__(self, session: FakeSession, request: RecordedRequest) -> None:
        self._session = session
        self._request = request

    async def __aenter__(self) -> FakeResponse:
        outcome = await self._session.resolve(self._request)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def __aexit__(self, *exc_info: object) -> None:
        return None


Handler = Callable[[RecordedRequest], Any]


class FakeSession:
    """Minimal ``aiohttp.ClientSession`` replacement."""

    def __init__(self, *responses: FakeResponse | BaseException, handler: Handler | None = None) -> None:
        self._responses: list[FakeResponse | BaseException] = list(responses)
        self.handler = handler
        self.requests: list[RecordedRequest] = []
        self.closed = False

    def add(self, *responses: FakeResponse | BaseException) -> None:
        self._responses.extend(responses)

    def request(self, method: str, url: str, **kwargs: Any) -> _RequestContext:
        recorded = RecordedRequest(
            method=method,
            url=url,
            params=kwargs.get("params"),
            data=kwargs.get("data"),
            headers=dict(kwargs.get("headers") or {}),
        )
        self.requests.append(recorded)
        return _RequestContext(self, recorded)

    async def resolve(self, request: RecordedRequest) -> FakeResponse | BaseException:
        if self.handler is not None:
            outcome = self.handler(request)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome
        if not self._responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")
        return self._responses.pop(0)

    def calls_to(self, method: str, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.method == method and r.path == path]

    async def close(self) -> None:
        self.closed = True


class ManualClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


async def settle() -> None:
    """Let scheduled tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)
