"""Async HTTP transport for the quotation/order REST API.

Attaches credentials and request ids, unwraps the response envelope,
classifies failures, retries what may be retried and coordinates token
refresh on 401.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Mapping

import aiohttp
import orjson

from quotesync.services.connectivity import ConnectivityMonitor
from quotesync.services.credentials import CredentialPair, CredentialStore
from quotesync.services.transport.classification import (
    classify_response,
    network_error,
    timeout_error,
)
from quotesync.services.transport.models import ApiResponse, RateLimitInfo, RequestOptions
from quotesync.services.transport.refresh import RefreshCoordinator, SessionListener
from quotesync.services.transport.retry import RetryPolicy
from quotesync.shared.constants import Headers, HTTPMethods, HTTPStatusCodes, NetworkConfig
from quotesync.shared.errors import (
    ApiError,
    AuthenticationError,
    ErrorCode,
    ErrorContext,
)
from quotesync.shared.logging import log_api_call

logger = logging.getLogger(__name__)


def _decode_body(text: str) -> Any:
    if not text:
        return None
    try:
        return orjson.loads(text)
    except orjson.JSONDecodeError:
        return text


def _encode_params(params: Mapping[str, Any] | None) -> dict[str, str] | None:
    if not params:
        return None
    encoded: dict[str, str] = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            encoded[key] = "true" if value else "false"
        else:
            encoded[key] = str(value)
    return encoded


class Transport:
    """REST client with retry, refresh coordination and error classification.

    Args:
        credentials: Token store; read for every request
        base_url: API base URL without trailing slash
        timeout: Default deadline in seconds
        retry_policy: Retry schedule (defaults to 1s/2s/4s)
        connectivity: Monitor told about reachability, if any
        session: Pre-built aiohttp session; created lazily when omitted
        refresh_path: Path of the refresh endpoint
    """

    def __init__(
        self,
        credentials: CredentialStore,
        base_url: str = NetworkConfig.DEFAULT_BASE_URL,
        timeout: float = NetworkConfig.DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
        connectivity: ConnectivityMonitor | None = None,
        session: aiohttp.ClientSession | None = None,
        refresh_path: str = NetworkConfig.REFRESH_PATH,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.refresh_path = refresh_path
        self.retry_policy = retry_policy or RetryPolicy()
        self.connectivity = connectivity
        self.last_rate_limit: RateLimitInfo | None = None

        self._credentials = credentials
        self._session = session
        self._owns_session = session is None
        self._session_lock = asyncio.Lock()
        self._refresh = RefreshCoordinator(credentials, self._refresh_tokens)

    @property
    def refresh_coordinator(self) -> RefreshCoordinator:
        return self._refresh

    def on_session_invalidated(self, listener: SessionListener) -> Callable[[], None]:
        """Register a logout listener; returns an unsubscribe function."""
        return self._refresh.on_session_invalidated(listener)

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    headers={
                        "User-Agent": NetworkConfig.USER_AGENT,
                        Headers.ACCEPT: Headers.CONTENT_TYPE_JSON,
                    },
                )
                self._owns_session = True
                logger.debug("aiohttp.ClientSession created")
            return self._session

    async def close(self) -> None:
        """Close the session if the transport created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.debug("aiohttp.ClientSession closed")
        self._session = None

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        options: RequestOptions | None = None,
    ) -> ApiResponse:
        """Send a request and return the unwrapped response.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            body: JSON-serializable request body
            options: Per-request options

        Returns:
            ApiResponse with the envelope's data

        Raises:
            ApiError: Classified failure after retries and refresh
        """
        options = options or RequestOptions()
        method = method.upper()
        refreshed = False

        async def attempt() -> ApiResponse:
            nonlocal refreshed
            token = self._credentials.access_token if options.authenticated else None
            try:
                return await self._send(method, path, body, options, token)
            except AuthenticationError:
                if (
                    refreshed
                    or token is None
                    or options.skip_auth_refresh
                    or options.is_refresh_retry
                ):
                    raise
                refreshed = True
                fresh_token = await self._refresh.get_fresh_token(token)
                return await self._send(
                    method,
                    path,
                    body,
                    options.as_refresh_retry(),
                    fresh_token,
                )

        return await self.retry_policy.execute(method, attempt, enabled=options.retry)

    async def get(self, path: str, options: RequestOptions | None = None) -> ApiResponse:
        return await self.request(HTTPMethods.GET, path, options=options)

    async def post(self, path: str, body: Any = None, options: RequestOptions | None = None) -> ApiResponse:
        return await self.request(HTTPMethods.POST, path, body, options)

    async def put(self, path: str, body: Any = None, options: RequestOptions | None = None) -> ApiResponse:
        return await self.request(HTTPMethods.PUT, path, body, options)

    async def patch(self, path: str, body: Any = None, options: RequestOptions | None = None) -> ApiResponse:
        return await self.request(HTTPMethods.PATCH, path, body, options)

    async def delete(self, path: str, options: RequestOptions | None = None) -> ApiResponse:
        return await self.request(HTTPMethods.DELETE, path, options=options)

    async def _send(
        self,
        method: str,
        path: str,
        body: Any,
        options: RequestOptions,
        token: str | None,
    ) -> ApiResponse:
        """Perform one HTTP exchange and classify its outcome."""
        session = await self._get_session()
        request_id = str(uuid.uuid4())
        url = f"{self.base_url}/{path.lstrip('/')}"
        timeout = options.timeout if options.timeout is not None else self.timeout

        headers = {
            Headers.CONTENT_TYPE: Headers.CONTENT_TYPE_JSON,
            Headers.REQUEST_ID: request_id,
        }
        if token and options.authenticated:
            headers[Headers.AUTHORIZATION] = f"{Headers.BEARER_PREFIX}{token}"
        headers.update(options.headers)

        data = orjson.dumps(body) if body is not None else None
        log_context = {"request_id": request_id, "refresh_retry": options.is_refresh_retry}
        start = time.perf_counter()

        try:
            async with session.request(
                method,
                url,
                params=_encode_params(options.params),
                data=data,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                status = response.status
                reason = response.reason
                response_headers = response.headers
                text = await response.text()
        except asyncio.TimeoutError as e:
            log_api_call(logger, path, method, None, (time.perf_counter() - start) * 1000, log_context)
            raise timeout_error(e, method=method, path=path, timeout=timeout) from e
        except aiohttp.ClientError as e:
            log_api_call(logger, path, method, None, (time.perf_counter() - start) * 1000, log_context)
            if self.connectivity is not None:
                self.connectivity.report_offline()
            raise network_error(e, method=method, path=path) from e

        log_api_call(logger, path, method, status, (time.perf_counter() - start) * 1000, log_context)
        if self.connectivity is not None:
            self.connectivity.report_online()

        rate_limit = RateLimitInfo.from_headers(response_headers)
        if rate_limit is not None:
            self.last_rate_limit = rate_limit

        payload = _decode_body(text)

        if not HTTPStatusCodes.is_success(status) or (
            isinstance(payload, dict) and payload.get("success") is False
        ):
            raise classify_response(
                status,
                payload,
                reason=reason,
                method=method,
                path=path,
                rate_limit=rate_limit,
            )

        if isinstance(payload, dict) and payload.get("success") is True:
            return ApiResponse(
                data=payload.get("data"),
                status=status,
                message=payload.get("message"),
                timestamp=payload.get("timestamp"),
                request_id=payload.get("requestId", request_id),
                rate_limit=rate_limit,
            )

        return ApiResponse(data=payload, status=status, request_id=request_id, rate_limit=rate_limit)

    async def _refresh_tokens(self, refresh_token: str) -> CredentialPair:
        """Exchange the refresh token; called only by the refresh coordinator."""
        response = await self._send(
            HTTPMethods.POST,
            self.refresh_path,
            {"refreshToken": refresh_token},
            RequestOptions(retry=False, skip_auth_refresh=True, authenticated=False),
            None,
        )
        data = response.data if isinstance(response.data, dict) else {}
        access_token = data.get("accessToken")
        if not access_token:
            raise ApiError(
                "Refresh response did not contain an access token",
                code=ErrorCode.INVALID_RESPONSE,
                status_code=response.status,
                request_id=response.request_id,
                context=ErrorContext(operation="token_refresh", resource=self.refresh_path),
            )
        return CredentialPair(access_token, data.get("refreshToken") or refresh_token)


__all__ = [
    "Transport",
]
