"""Project role hierarchy."""

from typing import Optional

from syndata.core.exceptions import ForbiddenException

ROLE_RANK = {
    "viewer": 1,
    "member": 2,
    "admin": 3,
    "owner": 4,
}


def member_role(project: dict, user_id: str) -> Optional[str]:
    return (project.get("team_members") or {}).get(user_id)


def has_role(project: dict, user_id: str, minimum: str) -> bool:
    role = member_role(project, user_id)
    return role is not None and ROLE_RANK.get(role, 0) >= ROLE_RANK[minimum]


def require_role(project: dict, user_id: str, minimum: str) -> str:
    """Return the user's role or raise 403."""
    role = member_role(project, user_id)
    if role is None:
        raise ForbiddenException("You are not a member of this project")
    if ROLE_RANK.get(role, 0) < ROLE_RANK[minimum]:
        raise ForbiddenException(f"This action requires the {minimum} role")
    return role
