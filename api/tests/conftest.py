"""
Pytest fixtures for API tests.

Runs against in-memory SQLite by default; set TEST_DATABASE_URL to use
PostgreSQL. Tables are recreated for every test.
"""
import os
import pytest
from typing import Callable, Generator
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

# Set test environment
os.environ["ENV"] = "local"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-for-testing-only-32chars"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")

from app.main import app
from app.db.base import Base
from app.db.seed import ensure_default_roles
from app.db.session import engine, get_db
from app.models.user import User
from app.models.workspace import Workspace
from app.core.security import hash_password, create_access_token
from app.services import membership
from shared.enums import PlatformRole, WorkspaceRole


# =============================================================================
# Database Setup
# =============================================================================

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db() -> Generator[Session, None, None]:
    """Override database dependency for tests."""
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db

DEFAULT_PASSWORD = "TestPassword123!"


def auth_headers_for(user: User) -> dict:
    token = create_access_token(user.id, user.username, user.role_name)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def setup_database() -> Generator[None, None, None]:
    """Fresh tables for each test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Get database session."""
    session = TestingSessionLocal()
    ensure_default_roles(session)
    session.commit()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def client() -> TestClient:
    """Get test client."""
    return TestClient(app)


@pytest.fixture
def make_user(db: Session) -> Callable[..., User]:
    """Factory for users with a given platform role."""
    roles = ensure_default_roles(db)

    def _make(
        username: str | None = None,
        role: PlatformRole = PlatformRole.USER,
        password: str = DEFAULT_PASSWORD,
        is_active: bool = True,
    ) -> User:
        user = User(
            username=username or f"user-{uuid4().hex[:10]}",
            name="Test User",
            password_hash=hash_password(password),
            role_id=roles[role].id,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def test_user(make_user) -> User:
    """Create a regular test user."""
    return make_user(username="alice")


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Get auth headers for test user."""
    return auth_headers_for(test_user)


@pytest.fixture
def admin_user(make_user) -> tuple[User, dict]:
    """Create a platform Admin."""
    user = make_user(username="root", role=PlatformRole.ADMIN)
    return user, auth_headers_for(user)


@pytest.fixture
def test_workspace(db: Session, test_user: User) -> Workspace:
    """Create a test workspace owned by test_user."""
    workspace = membership.create_workspace(db, name="Test Workspace", slug="test-ws", creator=test_user)
    db.commit()
    db.refresh(workspace)
    return workspace


@pytest.fixture
def add_member(db: Session, make_user, test_workspace: Workspace) -> Callable[..., tuple[User, dict]]:
    """Factory adding a new user to test_workspace with the given role."""

    def _add(role: WorkspaceRole = WorkspaceRole.MEMBER, username: str | None = None) -> tuple[User, dict]:
        user = make_user(username=username)
        membership.add_member(db, test_workspace, user.id, role)
        db.commit()
        return user, auth_headers_for(user)

    return _add


@pytest.fixture
def author_user(add_member) -> tuple[User, dict]:
    """Create an Author in test_workspace."""
    return add_member(WorkspaceRole.AUTHOR, username="author")


@pytest.fixture
def member_user(add_member) -> tuple[User, dict]:
    """Create a Member in test_workspace."""
    return add_member(WorkspaceRole.MEMBER, username="member")


@pytest.fixture
def outsider_user(make_user) -> tuple[User, dict]:
    """Create a user with no membership in test_workspace."""
    user = make_user(username="outsider")
    return user, auth_headers_for(user)
