"""
Authentication session store.

Holds the signed-in user and persists ``{user, is_authenticated}`` under
``auth-storage`` so a restarted client starts from the last known state;
``initialize_auth`` then confirms it against the server. Tokens live in the
``TokenStore``, never here.
"""
import json
from dataclasses import dataclass
from typing import Callable, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from client_app.errors import ApiError, AuthError
from client_app.events import SessionEvents
from client_app.features.auth import AuthApi
from client_app.models import User
from client_app.storage import KeyValueStorage, MemoryStorage
from client_app.tokens import TokenStore

logger = structlog.get_logger(__name__)

AUTH_STORAGE_KEY = "auth-storage"

StateListener = Callable[["AuthState"], None]


@dataclass(frozen=True)
class AuthState:
    user: Optional[User] = None
    is_authenticated: bool = False
    is_loading: bool = True


class AuthSessionStore:
    def __init__(
        self,
        auth_api: AuthApi,
        tokens: TokenStore,
        events: SessionEvents,
        storage: Optional[KeyValueStorage] = None,
    ):
        self.auth_api = auth_api
        self.tokens = tokens
        self.storage = storage or MemoryStorage()
        self._listeners: list[StateListener] = []
        self._state = self._rehydrate()
        self._unsubscribe_events = events.subscribe(self._on_session_invalidated)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._state.user

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: AuthState) -> None:
        self._state = state
        self._persist()
        for listener in list(self._listeners):
            listener(state)

    def _persist(self) -> None:
        payload = {
            "user": self._state.user.model_dump(mode="json") if self._state.user else None,
            "is_authenticated": self._state.is_authenticated,
        }
        self.storage.set_item(AUTH_STORAGE_KEY, json.dumps(payload))

    def _rehydrate(self) -> AuthState:
        raw = self.storage.get_item(AUTH_STORAGE_KEY)
        if not raw:
            return AuthState()
        try:
            payload = json.loads(raw)
            user = User.model_validate(payload["user"]) if payload.get("user") else None
        except (ValueError, KeyError, TypeError, PydanticValidationError):
            logger.warning("client.auth.rehydrate_failed")
            return AuthState()
        return AuthState(user=user, is_authenticated=bool(payload.get("is_authenticated")) and user is not None)

    # =========================================================================
    # Actions
    # =========================================================================

    async def login(self, username: str, password: str) -> User:
        self._set_state(AuthState(user=None, is_authenticated=False, is_loading=True))
        try:
            result = await self.auth_api.login(username, password)
        except ApiError as e:
            self._set_state(AuthState(is_loading=False))
            logger.info("client.auth.login_failed", username=username, status_code=e.status_code)
            raise AuthError(e.message or "Login failed", e.code) from e

        self.tokens.set_token(result.access_token)
        if result.refresh_token:
            self.tokens.set_refresh_token(result.refresh_token)
        self._set_state(AuthState(user=result.user, is_authenticated=True, is_loading=False))
        logger.info("client.auth.logged_in", username=result.user.username)
        return result.user

    def logout(self) -> None:
        self.tokens.clear()
        self._set_state(AuthState(is_loading=False))
        logger.info("client.auth.logged_out")

    async def initialize_auth(self) -> None:
        """Confirm the stored session with the server. Never raises."""
        if not self.tokens.get_token():
            self._set_state(AuthState(is_loading=False))
            return

        self._set_state(AuthState(user=self._state.user, is_authenticated=self._state.is_authenticated, is_loading=True))
        try:
            user = await self.auth_api.get_profile()
        except (ApiError, PydanticValidationError) as e:
            logger.info("client.auth.initialize_failed", error=str(e), status_code=getattr(e, "status_code", None))
            self.tokens.clear()
            self._set_state(AuthState(is_loading=False))
            return
        self._set_state(AuthState(user=user, is_authenticated=True, is_loading=False))

    def update_user(self, user: User) -> None:
        self._set_state(AuthState(user=user, is_authenticated=self._state.is_authenticated, is_loading=False))

    def close(self) -> None:
        self._unsubscribe_events()

    def _on_session_invalidated(self, reason: str) -> None:
        logger.info("client.auth.session_invalidated", reason=reason)
        self._set_state(AuthState(is_loading=False))
