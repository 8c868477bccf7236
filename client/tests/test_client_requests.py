"""
Tests for the ApiClient request pipeline: headers, interceptors, retries,
error classification and logging.
"""
import httpx
import pytest

from client_app.client import RequestOptions
from client_app.errors import (
    ApiError,
    AuthError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    RequestTimeoutError,
    ServerError,
    ValidationError,
)


def json_handler(status_code=200, body=None, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status_code, json=body if body is not None else {"ok": True})

    return handler


class TestRequestBuilding:

    async def test_bearer_and_default_headers(self, make_client, tokens, token_factory):
        token = token_factory()
        tokens.set_token(token)
        calls = []
        client = make_client(json_handler(calls=calls))

        response = await client.get("/auth/profile")

        assert response.ok is True
        assert response.data == {"ok": True}
        sent = calls[0]
        assert sent.headers["Authorization"] == f"Bearer {token}"
        assert sent.headers["Content-Type"] == "application/json"
        assert sent.headers["X-Client-Version"] == "9.9.9"
        assert sent.headers["X-Request-ID"].startswith("req_")

    async def test_skip_auth_omits_token(self, make_client, tokens, token_factory):
        tokens.set_token(token_factory())
        calls = []
        client = make_client(json_handler(calls=calls))

        await client.get("/health", options=RequestOptions(skip_auth=True))

        assert "Authorization" not in calls[0].headers

    async def test_upload_is_multipart(self, make_client):
        calls = []
        client = make_client(json_handler(calls=calls))

        await client.upload(
            "/users/avatar",
            b"\x89PNG",
            filename="me.png",
            content_type="image/png",
            field_name="avatar",
            options=RequestOptions(method="PUT"),
        )

        sent = calls[0]
        assert sent.method == "PUT"
        assert sent.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="avatar"; filename="me.png"' in sent.content

    async def test_query_params(self, make_client):
        calls = []
        client = make_client(json_handler(calls=calls))

        await client.get("/users", params={"page": 2, "search": "al"})

        assert calls[0].url.params["page"] == "2"
        assert calls[0].url.params["search"] == "al"

    async def test_empty_body_is_none(self, make_client):
        client = make_client(lambda request: httpx.Response(204))
        response = await client.delete("/c/ws/environment")
        assert response.data is None
        assert response.status == 204

    async def test_invalid_json_on_success(self, make_client):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ApiError) as exc:
            await client.get("/auth/profile")
        assert exc.value.code == "INVALID_RESPONSE"


class TestInterceptors:

    async def test_add_and_remove_request_interceptor(self, make_client):
        calls = []
        client = make_client(json_handler(calls=calls))

        def add_custom(config):
            config.headers["X-Custom"] = "1"
            return config

        handle = client.interceptors.add_request(add_custom)
        await client.get("/a")
        client.interceptors.remove_request(handle)
        await client.get("/b")

        assert calls[0].headers["X-Custom"] == "1"
        assert "X-Custom" not in calls[1].headers
        # the default interceptor is still registered
        assert calls[1].headers["X-Request-ID"].startswith("req_")

    async def test_headers_merge_across_interceptors(self, make_client):
        calls = []
        client = make_client(json_handler(calls=calls))

        def first(config):
            config.headers["X-First"] = "a"
            return config

        async def second(config):
            config.headers = {"X-Second": "b"}
            return config

        client.interceptors.add_request(first)
        client.interceptors.add_request(second)
        await client.get("/a")

        assert calls[0].headers["X-First"] == "a"
        assert calls[0].headers["X-Second"] == "b"
        assert calls[0].headers["X-Client-Version"] == "9.9.9"

    async def test_response_interceptor_can_replace(self, make_client):
        client = make_client(json_handler(body={"value": 1}))

        def double(response):
            response.data = {"value": response.data["value"] * 2}
            return response

        client.interceptors.add_response(double)
        response = await client.get("/a")
        assert response.data == {"value": 2}

    async def test_error_interceptor_sees_failures(self, make_client):
        client = make_client(json_handler(404, {"detail": "gone", "message": "gone"}))
        seen = []

        def record(error):
            seen.append(error)
            return error

        client.interceptors.add_error(record)
        with pytest.raises(NotFoundError):
            await client.get("/missing")
        assert len(seen) == 1

    async def test_broken_error_interceptor_keeps_original_error(self, make_client):
        client = make_client(json_handler(403, {"message": "no"}))

        def broken(error):
            raise RuntimeError("boom")

        client.interceptors.add_error(broken)
        with pytest.raises(PermissionDeniedError):
            await client.get("/forbidden")


class TestErrorMapping:

    @pytest.mark.parametrize(
        "status_code,error_class",
        [
            (400, ValidationError),
            (401, AuthError),
            (403, PermissionDeniedError),
            (404, NotFoundError),
            (422, ValidationError),
            (500, ServerError),
            (503, ServerError),
        ],
    )
    async def test_status_classification(self, make_client, status_code, error_class):
        client = make_client(json_handler(status_code, {"detail": "nope", "message": "nope"}))
        with pytest.raises(error_class) as exc:
            await client.post("/thing", {})
        assert exc.value.status_code == status_code
        assert exc.value.message == "nope"

    async def test_server_code_is_kept(self, make_client):
        body = {"detail": "Workspace already has an Owner", "message": "Workspace already has an Owner", "code": "OWNER_EXISTS"}
        client = make_client(json_handler(409, body))
        with pytest.raises(ApiError) as exc:
            await client.post("/admin/c/ws/users", {})
        assert type(exc.value) is ApiError
        assert exc.value.code == "OWNER_EXISTS"
        assert exc.value.status_code == 409

    async def test_validation_field(self, make_client):
        body = {"detail": [{"loc": ["body", "slug"], "msg": "String should match pattern", "type": "string_pattern_mismatch"}]}
        client = make_client(json_handler(422, body))
        with pytest.raises(ValidationError) as exc:
            await client.post("/admin/workspaces", {"slug": "!"})
        assert exc.value.field == "slug"
        assert exc.value.message == "String should match pattern"

    async def test_network_error(self, make_client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(NetworkError) as exc:
            await client.post("/thing", {})
        assert exc.value.code == "NETWORK_ERROR"

    async def test_timeout(self, make_client):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = make_client(handler)
        with pytest.raises(RequestTimeoutError) as exc:
            await client.post("/thing", {})
        assert exc.value.code == "TIMEOUT"


class TestRetries:

    async def test_explicit_retries_recover(self, make_client, sleeper):
        statuses = iter([500, 500, 200])
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(next(statuses), json={"message": "x"})

        client = make_client(handler)
        response = await client.get("/flaky", options=RequestOptions(retries=2))

        assert response.status == 200
        assert len(calls) == 3
        assert sleeper.delays == [0.5, 1.0]

    async def test_get_uses_configured_retries(self, make_client, sleeper):
        calls = []
        client = make_client(json_handler(503, {"message": "down"}, calls=calls))

        with pytest.raises(ServerError):
            await client.get("/down")

        assert len(calls) == 4
        assert sleeper.delays == [0.5, 1.0, 2.0]

    async def test_post_not_retried_by_default(self, make_client, sleeper):
        calls = []
        client = make_client(json_handler(500, {"message": "err"}, calls=calls))

        with pytest.raises(ServerError):
            await client.post("/activities", {})

        assert len(calls) == 1
        assert sleeper.delays == []

    async def test_post_retried_when_asked(self, make_client):
        calls = []
        client = make_client(json_handler(502, {"message": "err"}, calls=calls))

        with pytest.raises(ServerError):
            await client.post("/x", {}, options=RequestOptions(retries=1))

        assert len(calls) == 2

    async def test_client_errors_not_retried(self, make_client):
        calls = []
        client = make_client(json_handler(400, {"message": "bad"}, calls=calls))

        with pytest.raises(ValidationError):
            await client.get("/x", options=RequestOptions(retries=3))

        assert len(calls) == 1

    async def test_network_errors_retried(self, make_client):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ConnectError("reset", request=request)
            return httpx.Response(200, json={"ok": True})

        client = make_client(handler)
        response = await client.get("/x")
        assert response.data == {"ok": True}
        assert len(attempts) == 2

    async def test_retry_disabled_in_config(self, make_client, config):
        calls = []
        no_retry = config.model_copy(update={"API_ENABLE_RETRY": False})
        client = make_client(json_handler(500, {"message": "err"}, calls=calls), config=no_retry)

        with pytest.raises(ServerError):
            await client.get("/x")
        assert len(calls) == 1


class TestHealthCheck:

    async def test_healthy(self, make_client):
        calls = []
        client = make_client(json_handler(200, {"status": "healthy"}, calls=calls))
        assert await client.health_check() is True
        assert calls[0].url.path == "/health"
        assert "Authorization" not in calls[0].headers

    async def test_unhealthy(self, make_client):
        client = make_client(json_handler(503, {"message": "down"}))
        assert await client.health_check() is False


class TestRequestLog:

    async def test_entries_and_metrics(self, make_client):
        client = make_client(json_handler(200))
        await client.get("/a")

        logs = client.api_logger.get_logs()
        assert [entry.type for entry in logs] == ["request", "response"]
        assert logs[0].request_id == logs[1].request_id

        metrics = client.api_logger.get_metrics()
        assert metrics["total_requests"] == 1
        assert metrics["failed_requests"] == 0
        assert metrics["endpoints"]["GET /a"]["count"] == 1

    async def test_errors_logged(self, make_client):
        client = make_client(json_handler(404, {"message": "missing"}))
        with pytest.raises(NotFoundError):
            await client.get("/missing")

        errors = client.api_logger.get_logs(type="error")
        assert len(errors) == 1
        assert errors[0].status == 404
        assert client.api_logger.get_metrics()["error_rate"] == 1.0
