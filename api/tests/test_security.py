"""
Tests for security configurations.

- JWT secret validation in production
- Production safety checks
- Token typing and tamper resistance
"""
import pytest


POSTGRES_URL = "postgresql+psycopg://studio:studio@db:5432/studio"


class TestProductionSafety:
    """Production safety check tests."""

    def test_dangerous_jwt_secret_detected(self):
        """Dangerous JWT secrets should be detected in production."""
        from app.core.config import Settings, DANGEROUS_DEFAULTS

        for dangerous in DANGEROUS_DEFAULTS["JWT_SECRET_KEY"]:
            settings = Settings(
                ENV="prod",
                JWT_SECRET_KEY=dangerous,
            )
            errors = settings.validate_production_safety()
            assert any("JWT_SECRET_KEY" in e for e in errors), \
                f"Should detect dangerous JWT: {dangerous}"

    def test_short_jwt_secret_detected(self):
        """Short JWT secrets should be detected in production."""
        from app.core.config import Settings

        settings = Settings(
            ENV="prod",
            JWT_SECRET_KEY="short-key",  # Less than 32 chars
        )
        errors = settings.validate_production_safety()
        assert any("too short" in e for e in errors)

    def test_debug_in_prod_detected(self):
        """DEBUG=true should be detected in production."""
        from app.core.config import Settings

        settings = Settings(
            ENV="prod",
            JWT_SECRET_KEY="a" * 64,
            DEBUG=True,
        )
        errors = settings.validate_production_safety()
        assert any("DEBUG" in e for e in errors)

    def test_sqlite_in_prod_detected(self):
        from app.core.config import Settings

        settings = Settings(ENV="prod", JWT_SECRET_KEY="a" * 64, DATABASE_URL="sqlite:///studio.db")
        errors = settings.validate_production_safety()
        assert any("SQLite" in e for e in errors)

    def test_valid_prod_config_passes(self):
        """Valid production config should pass."""
        from app.core.config import Settings

        settings = Settings(
            ENV="prod",
            JWT_SECRET_KEY="a" * 64,
            DEBUG=False,
            DATABASE_URL=POSTGRES_URL,
        )
        assert settings.validate_production_safety() == []

    def test_local_env_skips_checks(self):
        """Local environment should skip production checks."""
        from app.core.config import Settings

        settings = Settings(
            ENV="local",
            JWT_SECRET_KEY="insecure",  # Would fail in prod
        )
        errors = settings.validate_production_safety()
        assert len(errors) == 0

    def test_is_production_property(self):
        """is_production property should work correctly."""
        from app.core.config import Settings

        local = Settings(ENV="local")
        assert local.is_production is False
        assert local.is_local is True

        prod = Settings(ENV="prod")
        assert prod.is_production is True
        assert prod.is_local is False


class TestPasswords:

    def test_hash_and_verify(self):
        from app.core.security import hash_password, verify_password

        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong horse", hashed) is False

    def test_garbage_hash_rejected(self):
        from app.core.security import verify_password

        assert verify_password("anything", "not-an-argon2-hash") is False


class TestJWTSecurity:
    """JWT security tests."""

    def test_access_token_claims(self, test_user):
        from app.core.security import create_access_token, decode_access_token

        payload = decode_access_token(create_access_token(test_user.id, test_user.username, test_user.role_name))
        assert payload["sub"] == str(test_user.id)
        assert payload["username"] == "alice"
        assert payload["role"] == "User"
        assert payload["type"] == "access"

    @pytest.mark.parametrize("kind", ["access", "refresh"])
    def test_token_type_is_enforced(self, test_user, kind):
        from app.core.security import (
            REFRESH_TOKEN_TYPE,
            create_access_token,
            create_refresh_token,
            decode_token,
        )

        if kind == "access":
            token = create_access_token(test_user.id, test_user.username, test_user.role_name)
            assert decode_token(token, REFRESH_TOKEN_TYPE) is None
        else:
            token = create_refresh_token(test_user.id)
            assert decode_token(token) is None

    def test_refresh_tokens_are_unique(self, test_user):
        from app.core.security import create_refresh_token

        assert create_refresh_token(test_user.id) != create_refresh_token(test_user.id)

    def test_jwt_cannot_be_tampered(self, client, test_user, auth_headers):
        """Tampered JWT should be rejected."""
        token = auth_headers["Authorization"].split(" ")[1]
        tampered = token[:-5] + "XXXXX"

        response = client.get(
            "/auth/profile",
            headers={"Authorization": f"Bearer {tampered}"},
        )
        assert response.status_code == 401

    def test_expired_jwt_rejected(self, client, test_user):
        """Expired JWT should be rejected."""
        import jwt
        from datetime import datetime, timezone, timedelta
        from app.core.config import settings

        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(test_user.id),
            "username": test_user.username,
            "type": "access",
            "iat": now - timedelta(hours=1),
            "exp": now - timedelta(seconds=1),  # Already expired
        }
        expired_token = jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm="HS256")

        response = client.get(
            "/auth/profile",
            headers={"Authorization": f"Bearer {expired_token}"},
        )
        assert response.status_code == 401

    def test_jwt_with_wrong_algorithm_rejected(self, client, test_user):
        """JWT with wrong algorithm should be rejected."""
        import jwt

        payload = {"sub": str(test_user.id), "type": "access"}
        wrong_algo_token = jwt.encode(payload, "key-of-at-least-thirty-two-bytes!!", algorithm="HS384")

        response = client.get(
            "/auth/profile",
            headers={"Authorization": f"Bearer {wrong_algo_token}"},
        )
        assert response.status_code == 401
