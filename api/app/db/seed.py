"""Default platform roles and the optional bootstrap admin."""
import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import hash_password
from app.models.user import Role, User
from shared.enums import PlatformRole

logger = structlog.get_logger(__name__)

DEFAULT_ROLES = {
    PlatformRole.ADMIN: "Platform administrator",
    PlatformRole.USER: "Regular user",
}


def ensure_default_roles(db: Session) -> dict[PlatformRole, Role]:
    roles = {}
    for role, description in DEFAULT_ROLES.items():
        found = db.execute(select(Role).where(Role.name == role.value)).scalar_one_or_none()
        if found is None:
            found = Role(name=role.value, description=description)
            db.add(found)
            logger.info("seed.role.created", role=role.value)
        roles[role] = found
    db.flush()
    return roles


def ensure_bootstrap_admin(db: Session, roles: dict[PlatformRole, Role]) -> User | None:
    """Create the bootstrap admin when BOOTSTRAP_ADMIN_PASSWORD is set and no such user exists."""
    if not settings.BOOTSTRAP_ADMIN_PASSWORD:
        return None

    username = settings.BOOTSTRAP_ADMIN_USERNAME
    user = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if user is not None:
        return user

    user = User(
        username=username,
        name="Admin User",
        password_hash=hash_password(settings.BOOTSTRAP_ADMIN_PASSWORD),
        role_id=roles[PlatformRole.ADMIN].id,
        is_active=True,
    )
    db.add(user)
    db.flush()
    logger.info("seed.admin.created", username=username)
    return user


def seed(db: Session) -> None:
    roles = ensure_default_roles(db)
    ensure_bootstrap_admin(db, roles)
    db.commit()
