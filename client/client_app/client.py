"""
Resilient async HTTP client for the workspace platform API.

Request pipeline:
    1. build the request (JSON content type unless uploading, bearer token
       unless ``skip_auth``; an expired token is refreshed first)
    2. request interceptors, in registration order; headers are merged,
       other fields replaced
    3. send under a timeout
    4. on 401: one single-flight token refresh, then one replay; on a
       retryable failure: back off and retry while attempts remain;
       otherwise classify into a typed ``ApiError``
    5. response or error interceptors
    6. log the outcome to the ``ApiLogger``

Only one refresh call is in flight at a time: concurrent 401s await the
same task and replay with its token, or all fail with ``AuthError``.
"""
import asyncio
import dataclasses
import inspect
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import httpx
import structlog

from client_app.config import ApiConfig, get_api_config
from client_app.errors import (
    ApiError,
    AuthError,
    NetworkError,
    RequestTimeoutError,
    create_api_error,
    is_retryable,
)
from client_app.events import SessionEvents
from client_app.interceptors import InterceptorRegistry
from client_app.logger import ApiLogger
from client_app.tokens import TokenStore, is_token_expired
from shared.ids import generate_prefixed_id

logger = structlog.get_logger(__name__)

T = TypeVar("T")

IDEMPOTENT_METHODS = frozenset(["GET", "HEAD", "OPTIONS", "PUT", "DELETE"])
HEALTH_CHECK_TIMEOUT_MS = 5000
REFRESH_PATH = "/auth/refresh"


@dataclass
class RequestOptions:
    """Per-call options. ``timeout`` is in milliseconds."""
    retries: Optional[int] = None
    skip_auth: bool = False
    skip_refresh: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    method: Optional[str] = None
    timeout: Optional[int] = None
    params: Optional[dict[str, Any]] = None


@dataclass
class RequestConfig:
    """What request interceptors see and may change."""
    method: str
    url: str
    headers: dict[str, str]
    json: Any = None
    files: Any = None
    data: Any = None
    params: Optional[dict[str, Any]] = None
    timeout: int = 30000
    skip_auth: bool = False


@dataclass
class ApiResponse(Generic[T]):
    data: T
    status: int
    headers: httpx.Headers
    ok: bool = True
    request_id: Optional[str] = None


async def _resolve(value):
    if inspect.isawaitable(value):
        return await value
    return value


class ApiClient:
    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        tokens: Optional[TokenStore] = None,
        events: Optional[SessionEvents] = None,
        api_logger: Optional[ApiLogger] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or get_api_config()
        self.tokens = tokens or TokenStore()
        self.events = events or SessionEvents()
        self.api_logger = api_logger or ApiLogger.from_config(self.config)
        self.interceptors = InterceptorRegistry()
        self._sleep = sleep
        self._refresh_task: Optional[asyncio.Task] = None
        self._http = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )
        self.default_interceptor = self.interceptors.add_request(self._tag_request)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # =========================================================================
    # Verbs
    # =========================================================================

    async def get(self, path: str, params: Optional[dict] = None, options: Optional[RequestOptions] = None) -> ApiResponse:
        return await self.request("GET", path, params=params, options=options)

    async def post(self, path: str, body: Any = None, options: Optional[RequestOptions] = None) -> ApiResponse:
        return await self.request("POST", path, json=body, options=options)

    async def put(self, path: str, body: Any = None, options: Optional[RequestOptions] = None) -> ApiResponse:
        return await self.request("PUT", path, json=body, options=options)

    async def patch(self, path: str, body: Any = None, options: Optional[RequestOptions] = None) -> ApiResponse:
        return await self.request("PATCH", path, json=body, options=options)

    async def delete(self, path: str, options: Optional[RequestOptions] = None) -> ApiResponse:
        return await self.request("DELETE", path, options=options)

    async def upload(
        self,
        path: str,
        file: Any,
        filename: str = "upload",
        content_type: str = "application/octet-stream",
        field_name: str = "file",
        data: Optional[dict[str, Any]] = None,
        options: Optional[RequestOptions] = None,
    ) -> ApiResponse:
        """Multipart upload; POST unless ``options.method`` says otherwise."""
        files = {field_name: (filename, file, content_type)}
        return await self.request("POST", path, files=files, data=data, options=options)

    async def health_check(self) -> bool:
        try:
            await self.get("/health", options=RequestOptions(skip_auth=True, timeout=HEALTH_CHECK_TIMEOUT_MS, retries=0))
        except ApiError:
            return False
        return True

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        files: Any = None,
        data: Any = None,
        params: Optional[dict[str, Any]] = None,
        options: Optional[RequestOptions] = None,
    ) -> ApiResponse:
        opts = options or RequestOptions()
        method = (opts.method or method).upper()
        max_retries = self._retries_for(method, opts)
        attempt = 0
        replayed_after_refresh = False

        while True:
            token = None if opts.skip_auth else await self._current_token(opts)
            request_config = await self._apply_request_interceptors(
                self._build_config(method, path, json, files, data, params or opts.params, opts, token)
            )
            request_id = request_config.headers.get("X-Request-ID")
            self.api_logger.log_request(method, path, request_id, json)

            start = time.perf_counter()
            try:
                response = await self._send(request_config)
            except httpx.TimeoutException:
                error: ApiError = RequestTimeoutError()
            except httpx.TransportError as e:
                error = NetworkError(str(e) or None)
            else:
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                if response.is_success:
                    try:
                        result = self._to_api_response(response, request_id)
                    except ApiError as invalid:
                        self.api_logger.log_error(method, path, invalid, duration_ms, request_id)
                        raise await self._apply_error_interceptors(invalid)
                    self.api_logger.log_response(method, path, response.status_code, duration_ms, request_id, result.data)
                    return await self._apply_response_interceptors(result)

                if self._should_refresh(response, opts, replayed_after_refresh):
                    replayed_after_refresh = True
                    try:
                        await self._refresh_for(token)
                    except AuthError as auth_error:
                        self.api_logger.log_error(method, path, auth_error, duration_ms, request_id)
                        raise await self._apply_error_interceptors(auth_error)
                    continue

                error = create_api_error(response.status_code, self._error_body(response))
                if response.status_code == 401 and self._holds_session(token, opts):
                    self._invalidate_session("unauthorized")

            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            if attempt < max_retries and is_retryable(error):
                delay = self.config.API_RETRY_BACKOFF * (2 ** attempt)
                attempt += 1
                logger.warning(
                    "client.request.retrying",
                    method=method,
                    path=path,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=error.message,
                )
                await self._sleep(delay)
                continue

            self.api_logger.log_error(method, path, error, duration_ms, request_id)
            raise await self._apply_error_interceptors(error)

    def _retries_for(self, method: str, opts: RequestOptions) -> int:
        if opts.retries is not None:
            return max(0, opts.retries)
        # POST/PATCH replay only when the caller asks for it
        if method in IDEMPOTENT_METHODS:
            return self.config.max_retries
        return 0

    def _build_config(
        self,
        method: str,
        path: str,
        json: Any,
        files: Any,
        data: Any,
        params: Optional[dict[str, Any]],
        opts: RequestOptions,
        token: Optional[str],
    ) -> RequestConfig:
        headers = {"Accept": "application/json"}
        if files is None:
            headers["Content-Type"] = "application/json"
        if token:
            headers["Authorization"] = f"Bearer {token}"
        headers.update(opts.headers)

        return RequestConfig(
            method=method,
            url=path,
            headers=headers,
            json=json,
            files=files,
            data=data,
            params=params,
            timeout=opts.timeout or self.config.API_DEFAULT_TIMEOUT,
            skip_auth=opts.skip_auth,
        )

    async def _send(self, config: RequestConfig) -> httpx.Response:
        return await self._http.request(
            config.method,
            config.url,
            headers=config.headers,
            json=config.json,
            files=config.files,
            data=config.data,
            params=config.params,
            timeout=config.timeout / 1000,
        )

    def _to_api_response(self, response: httpx.Response, request_id: Optional[str]) -> ApiResponse:
        if not response.content:
            body = None
        else:
            try:
                body = response.json()
            except ValueError:
                raise ApiError("Invalid JSON response from server", "INVALID_RESPONSE", response.status_code) from None
        return ApiResponse(
            data=body,
            status=response.status_code,
            headers=response.headers,
            ok=True,
            request_id=response.headers.get("X-Request-ID", request_id),
        )

    @staticmethod
    def _error_body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    # =========================================================================
    # Interceptors
    # =========================================================================

    def _tag_request(self, config: RequestConfig) -> RequestConfig:
        config.headers["X-Request-ID"] = generate_prefixed_id("request")
        config.headers["X-Client-Version"] = self.config.APP_VERSION
        return config

    async def _apply_request_interceptors(self, config: RequestConfig) -> RequestConfig:
        for interceptor in self.interceptors.request:
            proposed = await _resolve(interceptor(dataclasses.replace(config, headers=dict(config.headers))))
            if proposed is None:
                continue
            config = dataclasses.replace(proposed, headers={**config.headers, **proposed.headers})
        return config

    async def _apply_response_interceptors(self, response: ApiResponse) -> ApiResponse:
        for interceptor in self.interceptors.response:
            result = await _resolve(interceptor(response))
            if result is not None:
                response = result
        return response

    async def _apply_error_interceptors(self, error: ApiError) -> ApiError:
        for interceptor in self.interceptors.error:
            try:
                result = await _resolve(interceptor(error))
            except Exception as e:
                logger.error("client.error_interceptor.failed", error=str(e))
                continue
            if result is not None:
                error = result
        return error

    # =========================================================================
    # Token refresh
    # =========================================================================

    def _refresh_enabled(self, opts: RequestOptions) -> bool:
        return (
            self.config.API_ENABLE_TOKEN_REFRESH
            and not opts.skip_refresh
            and self.tokens.get_refresh_token() is not None
        )

    async def _current_token(self, opts: RequestOptions) -> Optional[str]:
        token = self.tokens.get_token()
        if token and is_token_expired(token) and self._refresh_enabled(opts):
            try:
                token = await self.refresh_access_token()
            except AuthError:
                # Continue without a token; the server answers 401
                token = None
        return token

    def _should_refresh(self, response: httpx.Response, opts: RequestOptions, already_replayed: bool) -> bool:
        return (
            response.status_code == 401
            and not opts.skip_auth
            and not already_replayed
            and self._refresh_enabled(opts)
        )

    async def _refresh_for(self, failed_token: Optional[str]) -> str:
        """Refresh unless another request already replaced ``failed_token``."""
        current = self.tokens.get_token()
        if current and current != failed_token and not is_token_expired(current):
            return current
        return await self.refresh_access_token()

    async def refresh_access_token(self) -> str:
        """Single-flight refresh; every concurrent caller gets the same outcome."""
        if self._refresh_task is None:
            task = asyncio.ensure_future(self._perform_refresh())
            task.add_done_callback(self._refresh_done)
            self._refresh_task = task
        return await asyncio.shield(self._refresh_task)

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _perform_refresh(self) -> str:
        refresh_token = self.tokens.get_refresh_token()
        if not refresh_token:
            self._invalidate_session("no_refresh_token")
            raise AuthError("No refresh token available")

        try:
            response = await self._http.post(
                REFRESH_PATH,
                json={"refresh_token": refresh_token},
                headers={"X-Request-ID": generate_prefixed_id("request")},
            )
            body = response.json() if response.is_success else None
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("client.token.refresh_failed", error=str(e))
            body = None

        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            self._invalidate_session("refresh_failed")
            raise AuthError("Token refresh failed")

        self.tokens.set_token(access_token)
        if body.get("refresh_token"):
            self.tokens.set_refresh_token(body["refresh_token"])
        logger.info("client.token.refreshed")
        return access_token

    def _holds_session(self, sent_token: Optional[str], opts: RequestOptions) -> bool:
        """True when a rejected token is still the stored one."""
        return not opts.skip_auth and sent_token is not None and self.tokens.get_token() == sent_token

    def _invalidate_session(self, reason: str) -> None:
        self.tokens.clear()
        self.events.publish_session_invalidated(reason)
