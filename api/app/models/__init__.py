from app.models.user import Role, User
from app.models.workspace import Workspace, WorkspaceMember
from app.models.activity import Activity
from app.models.environment import Environment
from app.models.procedure import ProcedureTemplate, StoredProcedure, StoredProcedureVersion

__all__ = [
    "Role",
    "User",
    "Workspace",
    "WorkspaceMember",
    "Activity",
    "Environment",
    "StoredProcedure",
    "StoredProcedureVersion",
    "ProcedureTemplate",
]
