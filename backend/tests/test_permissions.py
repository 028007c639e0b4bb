"""
Tests for the project/task authorization policy (auth/permissions.py).

The policy functions are pure, so these tests build unsaved ORM objects and
never touch the database.
"""

import pytest

from models import Project, ProjectMember, Task, MemberRole
from errors import Forbidden
from auth.permissions import (
    member_role,
    can_read_project,
    can_write_project,
    can_manage_members,
    can_remove_members,
    can_delete_project,
    can_create_task_in_project,
    can_delete_task,
    require_project_write,
    require_task_delete,
)

OWNER, ADMIN, MEMBER, VIEWER, STRANGER = 1, 2, 3, 4, 99


@pytest.fixture
def project() -> Project:
    return Project(
        id=10,
        name="Policy",
        description="Policy fixture",
        owner_id=OWNER,
        members=[
            ProjectMember(user_id=OWNER, role=MemberRole.owner),
            ProjectMember(user_id=ADMIN, role=MemberRole.admin),
            ProjectMember(user_id=MEMBER, role=MemberRole.member),
            ProjectMember(user_id=VIEWER, role=MemberRole.viewer),
        ],
    )


@pytest.mark.parametrize(
    "user_id, read, write, manage, remove, delete, create_task",
    [
        (OWNER, True, True, True, True, True, True),
        (ADMIN, True, True, True, False, False, True),
        (MEMBER, True, False, False, False, False, True),
        (VIEWER, True, False, False, False, False, True),
        (STRANGER, False, False, False, False, False, False),
    ],
)
def test_project_policy_by_role(project, user_id, read, write, manage, remove, delete, create_task):
    assert can_read_project(project, user_id) is read
    assert can_write_project(project, user_id) is write
    assert can_manage_members(project, user_id) is manage
    assert can_remove_members(project, user_id) is remove
    assert can_delete_project(project, user_id) is delete
    assert can_create_task_in_project(project, user_id) is create_task


def test_owner_without_membership_row_keeps_owner_rights():
    """Ownership alone grants every right, even if the owner row is missing."""
    project = Project(id=11, name="Bare", description="No rows", owner_id=OWNER, members=[])

    assert member_role(project, OWNER) is MemberRole.owner
    assert can_read_project(project, OWNER)
    assert can_write_project(project, OWNER)
    assert can_delete_project(project, OWNER)


def test_member_role_for_non_member(project):
    assert member_role(project, STRANGER) is None
    assert member_role(project, VIEWER) is MemberRole.viewer


@pytest.mark.parametrize(
    "user_id, allowed",
    [
        (MEMBER, True),    # creator
        (OWNER, True),     # project owner
        (ADMIN, False),
        (VIEWER, False),
        (STRANGER, False),
    ],
)
def test_task_delete_policy(project, user_id, allowed):
    task = Task(id=5, title="Policy task", project_id=project.id, created_by_id=MEMBER)

    assert can_delete_task(task, project, user_id) is allowed


def test_task_delete_when_project_is_gone():
    """Only the creator may delete a task whose project cannot be found."""
    task = Task(id=6, title="Orphan", project_id=404, created_by_id=MEMBER)

    assert can_delete_task(task, None, MEMBER)
    assert not can_delete_task(task, None, OWNER)


def test_require_helpers_raise_forbidden(project):
    with pytest.raises(Forbidden) as exc_info:
        require_project_write(project, VIEWER)
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "Not authorized to update this project"

    task = Task(id=7, title="Mine", project_id=project.id, created_by_id=MEMBER)
    require_task_delete(task, project, MEMBER)
    with pytest.raises(Forbidden):
        require_task_delete(task, project, VIEWER)
