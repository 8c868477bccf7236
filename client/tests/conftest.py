"""
Client test fixtures.

Every client talks to an ``httpx.MockTransport``; nothing leaves the process.
"""
import time
from typing import Callable

import httpx
import jwt
import pytest

from client_app.client import ApiClient
from client_app.config import ApiConfig
from client_app.events import SessionEvents
from client_app.logger import ApiLogger
from client_app.tokens import TokenStore

BASE_URL = "http://api.test"


def make_token(expires_in: int = 3600, **claims) -> str:
    payload = {"sub": "user-1", "username": "alice", "role": "User", "exp": int(time.time()) + expires_in}
    payload.update(claims)
    return jwt.encode(payload, "client-test-secret", algorithm="HS256")


class SleepRecorder:
    """Stands in for ``asyncio.sleep`` so backoff never waits."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def config() -> ApiConfig:
    return ApiConfig(
        _env_file=None,
        API_BASE_URL=BASE_URL,
        API_MAX_RETRIES=3,
        API_RETRY_BACKOFF=0.5,
        API_LOGGING_ENABLED=True,
        API_LOG_LEVEL="debug",
        APP_VERSION="9.9.9",
    )


@pytest.fixture
def tokens() -> TokenStore:
    return TokenStore()


@pytest.fixture
def events() -> SessionEvents:
    return SessionEvents()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(config, tokens, events, sleeper) -> Callable[..., ApiClient]:
    """Build an ``ApiClient`` whose transport is the given handler."""

    def factory(handler, **overrides) -> ApiClient:
        return ApiClient(
            config=overrides.get("config", config),
            tokens=tokens,
            events=events,
            api_logger=overrides.get("api_logger", ApiLogger.from_config(config)),
            transport=httpx.MockTransport(handler),
            sleep=sleeper,
        )

    return factory


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return make_token
