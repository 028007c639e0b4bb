"""
Project aggregate: creation, partial update, membership and deletion.

Every mutation follows the same order: look the project up (404), check
the caller's permission (403), mutate and commit, then publish the change
to the event fanout. There is no version check; concurrent updates to the
same project are last-write-wins.
"""

import logging
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

import models
import schemas
from database import commit_or_fail
from errors import Conflict, NotFound
from patching import apply_patch
from auth.permissions import (
    require_project_read,
    require_project_write,
    require_member_management,
    require_member_removal,
    require_project_delete,
)
from realtime.fanout import Event, EventKind, EventPublisher, emit

logger = logging.getLogger(__name__)

PROJECT_TRUTHY_FIELDS = ("name", "description", "status", "priority", "due_date", "tags", "color")


def serialize_project(project: models.Project) -> dict:
    return schemas.dump(schemas.Project.model_validate(project))


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def get_project_or_404(db: Session, project_id: int) -> models.Project:
    project = db.query(models.Project).filter(models.Project.id == project_id).first()
    if project is None:
        logger.info(f"Project {project_id} not found")
        raise NotFound("Project not found")
    return project


def list_projects_for_user(
    db: Session,
    user_id: int,
    status: Optional[schemas.ProjectStatus] = None,
    search: Optional[str] = None,
) -> List[models.Project]:
    """
    Projects the user owns or is a member of, most recently updated first.

    Args:
        status: Exact status match, when given
        search: Case-insensitive substring match on the project name
    """
    member_of = select(models.ProjectMember.project_id).where(models.ProjectMember.user_id == user_id)
    query = db.query(models.Project).filter(
        or_(models.Project.owner_id == user_id, models.Project.id.in_(member_of))
    )

    if status:
        query = query.filter(models.Project.status == status)
    if search:
        query = query.filter(models.Project.name.ilike(f"%{_escape_like(search)}%", escape="\\"))

    projects = query.order_by(models.Project.updated_at.desc(), models.Project.id.desc()).all()
    logger.debug(f"User {user_id} has {len(projects)} matching projects")
    return projects


def task_stats(db: Session, project_id: int) -> schemas.TaskStats:
    """Count the project's tasks by status. Recomputed on every call."""
    # Import here to avoid circular dependency
    from tasks.service import find_tasks_by_project

    tasks = find_tasks_by_project(db, project_id)
    return schemas.TaskStats(
        total=len(tasks),
        todo=sum(1 for t in tasks if t.status == models.TaskStatus.todo),
        in_progress=sum(1 for t in tasks if t.status == models.TaskStatus.in_progress),
        review=sum(1 for t in tasks if t.status == models.TaskStatus.review),
        completed=sum(1 for t in tasks if t.status == models.TaskStatus.completed),
    )


def get_project_for_user(db: Session, user: models.User, project_id: int) -> models.Project:
    project = get_project_or_404(db, project_id)
    require_project_read(project, user.id)
    return project


def create_project(
    db: Session,
    user: models.User,
    data: schemas.ProjectCreate,
    fanout: EventPublisher,
) -> models.Project:
    """Create a project owned by the caller, who also becomes its "owner" member."""
    logger.debug(f"User {user.id} creating project: {data.name}")

    project_data = data.model_dump(exclude_none=True)
    project = models.Project(**project_data, owner_id=user.id)
    project.members.append(models.ProjectMember(user_id=user.id, role=models.MemberRole.owner))
    db.add(project)
    commit_or_fail(db, "creating project")
    db.refresh(project)

    logger.info(f"Project created: {project.name} (ID: {project.id}) by user {user.id}")
    emit(fanout, Event(EventKind.project_created, {"project": serialize_project(project)}))
    return project


def update_project(
    db: Session,
    user: models.User,
    project_id: int,
    patch: schemas.ProjectUpdate,
    fanout: EventPublisher,
) -> models.Project:
    """Apply the truthy fields of patch. Owner or project admin only."""
    logger.debug(f"User {user.id} updating project {project_id}")

    project = get_project_or_404(db, project_id)
    require_project_write(project, user.id)

    applied = apply_patch(project, patch.model_dump(exclude_unset=True), truthy_fields=PROJECT_TRUTHY_FIELDS)
    commit_or_fail(db, "updating project")
    db.refresh(project)

    logger.info(f"Project updated: {project.name} (ID: {project_id}), fields: {sorted(applied)}")
    emit(fanout, Event(EventKind.project_updated, {"project": serialize_project(project)}, project_id=project.id))
    return project


def add_member(
    db: Session,
    user: models.User,
    project_id: int,
    data: schemas.MemberAdd,
    fanout: EventPublisher,
) -> models.Project:
    """Add a member with role admin, member or viewer. Owner or project admin only."""
    logger.debug(f"User {user.id} adding member {data.user_id} to project {project_id}")

    project = get_project_or_404(db, project_id)
    require_member_management(project, user.id)

    user_to_add = db.query(models.User).filter(models.User.id == data.user_id).first()
    if user_to_add is None:
        raise NotFound("User not found")

    if data.user_id == project.owner_id or any(m.user_id == data.user_id for m in project.members):
        logger.info(f"User {data.user_id} is already a member of project {project_id}")
        raise Conflict("User is already a member of this project")

    project.members.append(models.ProjectMember(user_id=data.user_id, role=models.MemberRole(data.role)))
    commit_or_fail(db, "adding member")
    db.refresh(project)

    logger.info(f"User {data.user_id} added to project {project_id} with role {data.role}")
    emit(fanout, Event(EventKind.member_added, {"project": serialize_project(project)}, project_id=project.id))
    return project


def remove_member(
    db: Session,
    user: models.User,
    project_id: int,
    member_id: int,
    fanout: EventPublisher,
) -> models.Project:
    """
    Remove a member. Owner only.

    Removing a user who is not a member leaves the list unchanged. The
    owner's own membership is never removed.
    """
    logger.debug(f"User {user.id} removing member {member_id} from project {project_id}")

    project = get_project_or_404(db, project_id)
    require_member_removal(project, user.id)

    if member_id == project.owner_id:
        logger.info(f"Ignoring removal of owner {member_id} from project {project_id}")
    else:
        project.members = [m for m in project.members if m.user_id != member_id]
        logger.info(f"User {member_id} removed from project {project_id}")
    commit_or_fail(db, "removing member")
    db.refresh(project)

    emit(fanout, Event(EventKind.member_removed, {"project": serialize_project(project)}, project_id=project.id))
    return project


def delete_project(
    db: Session,
    user: models.User,
    project_id: int,
    fanout: EventPublisher,
) -> int:
    """
    Delete a project and every task under it. Owner only.

    Tasks and the project are removed in one commit, so a failure leaves
    both in place rather than orphaning tasks.

    Returns:
        Number of tasks deleted with the project
    """
    # Import here to avoid circular dependency
    from tasks.service import find_tasks_by_project

    logger.debug(f"User {user.id} deleting project {project_id}")

    project = get_project_or_404(db, project_id)
    require_project_delete(project, user.id)

    tasks = find_tasks_by_project(db, project_id)
    for task in tasks:
        db.delete(task)
    db.flush()
    db.delete(project)
    commit_or_fail(db, "deleting project")

    logger.info(f"Project deleted: {project_id} with {len(tasks)} tasks")
    emit(fanout, Event(EventKind.project_deleted, {"projectId": project_id}))
    return len(tasks)
