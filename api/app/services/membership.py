"""
Workspace membership model.

Every function here mutates through the caller's session and stops at
``flush``; the router commits once, so a multi-row change (ownership
transfer, member_count refresh) lands in a single transaction or not at
all.

Invariants enforced:
    - one membership row per (workspace, user)
    - at most one active Owner; Owner is granted by replace_owner, or by
      the admin path while the workspace has no active Owner
    - the last active Owner cannot be demoted, deactivated or removed
    - workspace.member_count equals the number of active memberships,
      rewritten by recompute_member_count() at the end of each mutation
"""
import uuid
from dataclasses import dataclass
from datetime import timedelta

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from app.core.errors import BadRequestError, ConflictError, NotFoundError
from app.db.base import as_utc, utcnow
from app.models.user import User
from app.models.workspace import Workspace, WorkspaceMember
from shared.enums import ASSIGNABLE_MEMBER_ROLES, WorkspaceRole

logger = structlog.get_logger(__name__)

RECENT_ACTIVITY_WINDOW = timedelta(days=30)


@dataclass
class OwnershipTransfer:
    new_owner: WorkspaceMember
    previous_owner_ids: list[uuid.UUID]


# =============================================================================
# Lookups
# =============================================================================

def get_workspace_by_slug(db: Session, slug: str, include_inactive: bool = False) -> Workspace:
    query = select(Workspace).where(Workspace.slug == slug)
    if not include_inactive:
        query = query.where(Workspace.is_active.is_(True))
    workspace = db.execute(query).scalar_one_or_none()
    if workspace is None:
        raise NotFoundError(f"Workspace '{slug}' not found")
    return workspace


def get_membership(db: Session, workspace_id: uuid.UUID, user_id: uuid.UUID) -> WorkspaceMember | None:
    return db.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
    ).scalar_one_or_none()


def require_membership(db: Session, workspace_id: uuid.UUID, user_id: uuid.UUID) -> WorkspaceMember:
    member = get_membership(db, workspace_id, user_id)
    if member is None:
        raise NotFoundError("Member not found in this workspace")
    return member


def list_members(db: Session, workspace_id: uuid.UUID, include_inactive: bool = True) -> list[WorkspaceMember]:
    query = select(WorkspaceMember).where(WorkspaceMember.workspace_id == workspace_id)
    if not include_inactive:
        query = query.where(WorkspaceMember.is_active.is_(True))
    return list(db.execute(query.order_by(WorkspaceMember.joined_at)).scalars().all())


def list_user_memberships(db: Session, user_id: uuid.UUID) -> list[WorkspaceMember]:
    return list(
        db.execute(
            select(WorkspaceMember)
            .join(Workspace, Workspace.id == WorkspaceMember.workspace_id)
            .where(
                WorkspaceMember.user_id == user_id,
                WorkspaceMember.is_active.is_(True),
                Workspace.is_active.is_(True),
            )
            .order_by(Workspace.name)
        ).scalars().all()
    )


def active_owners(db: Session, workspace_id: uuid.UUID) -> list[WorkspaceMember]:
    return list(
        db.execute(
            select(WorkspaceMember).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.role == WorkspaceRole.OWNER.value,
                WorkspaceMember.is_active.is_(True),
            )
        ).scalars().all()
    )


def is_last_active_owner(db: Session, member: WorkspaceMember) -> bool:
    if member.workspace_role != WorkspaceRole.OWNER or not member.is_active:
        return False
    owners = active_owners(db, member.workspace_id)
    return len(owners) <= 1


def list_workspaces(
    db: Session,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    is_active: bool | None = None,
) -> tuple[list[Workspace], int]:
    query = select(Workspace)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.where(
            or_(func.lower(Workspace.name).like(pattern), func.lower(Workspace.slug).like(pattern))
        )
    if is_active is not None:
        query = query.where(Workspace.is_active.is_(is_active))

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar_one()
    items = db.execute(
        query.order_by(Workspace.created_at.desc(), Workspace.name)
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return list(items), total


# =============================================================================
# member_count
# =============================================================================

def recompute_member_count(db: Session, workspace_id: uuid.UUID) -> int:
    """Re-derive and persist member_count from the active memberships."""
    db.flush()
    count = db.execute(
        select(func.count()).select_from(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.is_active.is_(True),
        )
    ).scalar_one()

    workspace = db.get(Workspace, workspace_id)
    if workspace is not None and workspace.member_count != count:
        logger.debug(
            "workspace.member_count.updated",
            workspace_id=str(workspace_id),
            previous=workspace.member_count,
            current=count,
        )
        workspace.member_count = count
        db.flush()
    return count


# =============================================================================
# Mutations
# =============================================================================

def create_workspace(db: Session, name: str, slug: str, creator: User) -> Workspace:
    """Create a workspace with its creator as the Owner."""
    existing = db.execute(select(Workspace.id).where(Workspace.slug == slug)).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(f"Workspace slug '{slug}' is already taken")

    workspace = Workspace(name=name, slug=slug, created_by=creator.id, updated_by=creator.id)
    db.add(workspace)
    db.flush()

    db.add(WorkspaceMember(
        workspace_id=workspace.id,
        user_id=creator.id,
        role=WorkspaceRole.OWNER.value,
        is_active=True,
    ))
    recompute_member_count(db, workspace.id)
    return workspace


def _check_owner_grant(db: Session, workspace_id: uuid.UUID, allow_owner: bool) -> None:
    if not allow_owner:
        raise BadRequestError(
            "Owner role can only be assigned by transferring ownership",
            code="OWNER_REQUIRES_TRANSFER",
        )
    if active_owners(db, workspace_id):
        raise ConflictError(
            "Workspace already has an owner; use replace-owner to transfer ownership",
            code="OWNER_EXISTS",
        )


def add_member(
    db: Session,
    workspace: Workspace,
    user_id: uuid.UUID,
    role: WorkspaceRole,
    allow_owner: bool = False,
) -> WorkspaceMember:
    """
    Add a user to a workspace, or reactivate their inactive membership.

    Fails with a conflict if the user is already an active member.
    """
    role = WorkspaceRole.parse(role)
    if role not in ASSIGNABLE_MEMBER_ROLES:
        _check_owner_grant(db, workspace.id, allow_owner)

    user = db.get(User, user_id)
    if user is None or not user.is_active:
        raise NotFoundError("User not found")

    member = get_membership(db, workspace.id, user_id)
    if member is not None and member.is_active:
        raise ConflictError("User is already a member of this workspace", code="ALREADY_MEMBER")

    if member is not None:
        member.is_active = True
        member.role = role.value
    else:
        member = WorkspaceMember(
            workspace_id=workspace.id,
            user_id=user_id,
            role=role.value,
            is_active=True,
        )
        db.add(member)

    recompute_member_count(db, workspace.id)
    return member


def update_member_role(
    db: Session,
    workspace: Workspace,
    user_id: uuid.UUID,
    role: WorkspaceRole,
    allow_owner: bool = False,
) -> WorkspaceMember:
    role = WorkspaceRole.parse(role)
    member = require_membership(db, workspace.id, user_id)
    if member.workspace_role == role:
        return member

    if role == WorkspaceRole.OWNER:
        _check_owner_grant(db, workspace.id, allow_owner)

    if is_last_active_owner(db, member):
        raise ConflictError(
            "Cannot change the role of the only owner; transfer ownership first",
            code="LAST_OWNER",
        )

    member.role = role.value
    recompute_member_count(db, workspace.id)
    return member


def set_member_status(
    db: Session,
    workspace: Workspace,
    user_id: uuid.UUID,
    is_active: bool,
) -> WorkspaceMember:
    member = require_membership(db, workspace.id, user_id)
    if member.is_active == is_active:
        return member

    if not is_active and is_last_active_owner(db, member):
        raise ConflictError("Cannot deactivate the only owner of a workspace", code="LAST_OWNER")

    if is_active and member.workspace_role == WorkspaceRole.OWNER and active_owners(db, workspace.id):
        raise ConflictError(
            "Workspace already has an active owner; change this member's role first",
            code="OWNER_EXISTS",
        )

    member.is_active = is_active
    recompute_member_count(db, workspace.id)
    return member


def remove_member(db: Session, workspace: Workspace, user_id: uuid.UUID) -> None:
    member = require_membership(db, workspace.id, user_id)
    if is_last_active_owner(db, member):
        raise ConflictError("Cannot remove the only owner of a workspace", code="LAST_OWNER")

    db.delete(member)
    recompute_member_count(db, workspace.id)


def replace_owner(db: Session, workspace: Workspace, new_owner_id: uuid.UUID) -> OwnershipTransfer:
    """
    Transfer ownership to an existing active member.

    The current Owner is demoted to Author (not Member) and the candidate
    promoted, in the caller's single transaction.
    """
    candidate = get_membership(db, workspace.id, new_owner_id)
    if candidate is None or not candidate.is_active:
        raise ConflictError(
            "New owner must be an active member of this workspace",
            code="NOT_ACTIVE_MEMBER",
        )
    if candidate.workspace_role == WorkspaceRole.OWNER:
        raise ConflictError("User is already the owner of this workspace", code="ALREADY_OWNER")

    current = active_owners(db, workspace.id)
    if not current:
        raise ConflictError("Workspace has no current owner to replace", code="NO_OWNER")

    # Inactive Owner rows are demoted too so reactivation cannot yield two owners
    previous = db.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace.id,
            WorkspaceMember.role == WorkspaceRole.OWNER.value,
        )
    ).scalars().all()
    for member in previous:
        member.role = WorkspaceRole.AUTHOR.value

    candidate.role = WorkspaceRole.OWNER.value
    recompute_member_count(db, workspace.id)

    logger.info(
        "workspace.owner.replaced",
        workspace_id=str(workspace.id),
        new_owner_id=str(new_owner_id),
        previous_owner_ids=[str(m.user_id) for m in previous],
    )
    return OwnershipTransfer(new_owner=candidate, previous_owner_ids=[m.user_id for m in previous])


# =============================================================================
# Stats
# =============================================================================

def workspace_stats(db: Session, workspace: Workspace) -> dict[str, int]:
    members = list_members(db, workspace.id)
    cutoff = utcnow() - RECENT_ACTIVITY_WINDOW

    active = [m for m in members if m.is_active]
    return {
        "total_members": len(members),
        "active_members": len(active),
        "inactive_members": len(members) - len(active),
        "owners": sum(1 for m in active if m.workspace_role == WorkspaceRole.OWNER),
        "authors": sum(1 for m in active if m.workspace_role == WorkspaceRole.AUTHOR),
        "members": sum(1 for m in active if m.workspace_role == WorkspaceRole.MEMBER),
        "recently_active": sum(
            1 for m in active
            if m.user.last_login_at is not None and as_utc(m.user.last_login_at) >= cutoff
        ),
    }
