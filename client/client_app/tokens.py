"""
Token store.

Tokens are read for their claims only; the signature is never verified
client-side, expiry is a hint for proactive refresh.
"""
import json
import time
from dataclasses import dataclass
from typing import Optional

from jwt.utils import base64url_decode

from client_app.storage import KeyValueStorage, MemoryStorage

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


@dataclass(frozen=True)
class TokenClaims:
    subject: Optional[str]
    username: Optional[str]
    role: Optional[str]
    expiry: Optional[int]


def parse_token(token: Optional[str]) -> Optional[TokenClaims]:
    """Decode the middle segment of a three-segment JWT, or None if malformed.

    The header and signature segments are not inspected.
    """
    if not token or token.count(".") != 2:
        return None
    try:
        payload = json.loads(base64url_decode(token.split(".")[1]))
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None

    exp = payload.get("exp")
    return TokenClaims(
        subject=str(payload["sub"]) if payload.get("sub") is not None else None,
        username=payload.get("username"),
        role=payload.get("role"),
        expiry=int(exp) if isinstance(exp, (int, float)) else None,
    )


def is_token_expired(token: Optional[str], now: Optional[float] = None) -> bool:
    """True if unparseable, missing ``exp``, or at/after expiry."""
    claims = parse_token(token)
    if claims is None or claims.expiry is None:
        return True
    current = time.time() if now is None else now
    return current >= claims.expiry


class TokenStore:
    def __init__(self, storage: Optional[KeyValueStorage] = None):
        self.storage = storage or MemoryStorage()

    def get_token(self) -> Optional[str]:
        return self.storage.get_item(ACCESS_TOKEN_KEY)

    def set_token(self, token: str) -> None:
        self.storage.set_item(ACCESS_TOKEN_KEY, token)

    def remove_token(self) -> None:
        self.storage.remove_item(ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> Optional[str]:
        return self.storage.get_item(REFRESH_TOKEN_KEY)

    def set_refresh_token(self, token: str) -> None:
        self.storage.set_item(REFRESH_TOKEN_KEY, token)

    def remove_refresh_token(self) -> None:
        self.storage.remove_item(REFRESH_TOKEN_KEY)

    def clear(self) -> None:
        self.remove_token()
        self.remove_refresh_token()

    def parse_token(self, token: Optional[str] = None) -> Optional[TokenClaims]:
        return parse_token(token if token is not None else self.get_token())

    def is_token_expired(self, token: Optional[str] = None) -> bool:
        return is_token_expired(token if token is not None else self.get_token())
