"""
Project and task permission checks.

The can_* functions are pure decisions over an already-loaded Project (with
its membership rows) and the acting user id. They never touch the database
and never raise. The require_* helpers wrap them for route and service code
and raise Forbidden with a generic message on denial.

Callers look the entity up first, so a missing entity surfaces as 404 before
any authorization check runs.
"""

import logging
from typing import Optional

from models import Project, Task, MemberRole
from errors import Forbidden

logger = logging.getLogger(__name__)


def member_role(project: Project, user_id: int) -> Optional[MemberRole]:
    """
    Return the user's role in a project, or None for non-members.

    The owner is always reported as "owner", whether or not the membership
    row is present.
    """
    if project.owner_id == user_id:
        return MemberRole.owner
    for membership in project.members:
        if membership.user_id == user_id:
            return MemberRole(membership.role)
    return None


def can_read_project(project: Project, user_id: int) -> bool:
    """True iff the user owns the project or appears in its members."""
    return member_role(project, user_id) is not None


def can_write_project(project: Project, user_id: int) -> bool:
    """
    True iff the user may update project fields.

    Only the owner and members with role "admin" qualify; plain members and
    viewers are denied.
    """
    return member_role(project, user_id) in (MemberRole.owner, MemberRole.admin)


def can_manage_members(project: Project, user_id: int) -> bool:
    """True iff the user may add members (owner or admin)."""
    return member_role(project, user_id) in (MemberRole.owner, MemberRole.admin)


def can_remove_members(project: Project, user_id: int) -> bool:
    """True iff the user may remove members. Owner only."""
    return project.owner_id == user_id


def can_delete_project(project: Project, user_id: int) -> bool:
    return project.owner_id == user_id


def can_create_task_in_project(project: Project, user_id: int) -> bool:
    """True iff the user is the owner or a member with any role, viewer included."""
    return can_read_project(project, user_id)


def can_delete_task(task: Task, project: Optional[Project], user_id: int) -> bool:
    """True iff the user created the task or owns its project."""
    if task.created_by_id == user_id:
        return True
    return project is not None and project.owner_id == user_id


def _deny(user_id: int, action: str, target: str, message: str) -> None:
    logger.info(f"User {user_id} denied '{action}' on {target}")
    raise Forbidden(message)


def require_project_read(project: Project, user_id: int) -> None:
    if not can_read_project(project, user_id):
        _deny(user_id, "read", f"project {project.id}", "Not authorized to access this project")


def require_project_write(project: Project, user_id: int) -> None:
    if not can_write_project(project, user_id):
        _deny(user_id, "update", f"project {project.id}", "Not authorized to update this project")


def require_member_management(project: Project, user_id: int) -> None:
    if not can_manage_members(project, user_id):
        _deny(user_id, "add member", f"project {project.id}", "Not authorized to add members")


def require_member_removal(project: Project, user_id: int) -> None:
    if not can_remove_members(project, user_id):
        _deny(user_id, "remove member", f"project {project.id}", "Only project owner can remove members")


def require_project_delete(project: Project, user_id: int) -> None:
    if not can_delete_project(project, user_id):
        _deny(user_id, "delete", f"project {project.id}", "Only project owner can delete the project")


def require_task_creation(project: Project, user_id: int) -> None:
    if not can_create_task_in_project(project, user_id):
        _deny(user_id, "create task", f"project {project.id}", "Not authorized to create tasks in this project")


def require_task_delete(task: Task, project: Optional[Project], user_id: int) -> None:
    if not can_delete_task(task, project, user_id):
        _deny(user_id, "delete", f"task {task.id}", "Not authorized to delete this task")
