"""
Task aggregate: creation, partial update, comments and deletion.

Access rules differ per operation:
- create requires membership in the target project (any role)
- reading a single task requires read access to its project
- update and comment only require the task to exist
- delete is limited to the task's creator and the project owner
- listing is not scoped to the caller at all
"""

import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

import models
import schemas
from database import commit_or_fail
from errors import NotFound
from patching import apply_patch
from auth.permissions import require_project_read, require_task_creation, require_task_delete
from realtime.fanout import Event, EventKind, EventPublisher, emit

logger = logging.getLogger(__name__)

# Applied only when truthy
TASK_TRUTHY_FIELDS = ("title", "status", "priority", "tags")
# Applied whenever present, null clears
TASK_PRESENT_FIELDS = ("description", "assigned_to_id", "due_date", "estimated_hours", "actual_hours")


def serialize_task(task: models.Task) -> dict:
    return schemas.dump(schemas.Task.model_validate(task))


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def get_task_or_404(db: Session, task_id: int) -> models.Task:
    task = db.query(models.Task).filter(models.Task.id == task_id).first()
    if task is None:
        logger.info(f"Task {task_id} not found")
        raise NotFound("Task not found")
    return task


def _require_user_exists(db: Session, user_id: Optional[int]) -> None:
    if user_id is None:
        return
    if db.query(models.User.id).filter(models.User.id == user_id).first() is None:
        logger.info(f"Assignee {user_id} not found")
        raise NotFound(f"User with ID {user_id} not found")


def find_tasks_by_project(db: Session, project_id: int) -> List[models.Task]:
    """All tasks belonging to a project, oldest first."""
    return (
        db.query(models.Task)
        .filter(models.Task.project_id == project_id)
        .order_by(models.Task.id)
        .all()
    )


def list_tasks(
    db: Session,
    project_id: Optional[int] = None,
    status: Optional[schemas.TaskStatus] = None,
    assigned_to: Optional[int] = None,
    priority: Optional[schemas.Priority] = None,
    search: Optional[str] = None,
) -> List[models.Task]:
    """
    List tasks across all projects, newest first.

    The result is not restricted to projects the caller belongs to; any
    authenticated user may list any project's tasks by filtering on it.

    Args:
        search: Case-insensitive substring match on title or description
    """
    query = db.query(models.Task)

    if project_id is not None:
        query = query.filter(models.Task.project_id == project_id)
    if status:
        query = query.filter(models.Task.status == status)
    if assigned_to is not None:
        query = query.filter(models.Task.assigned_to_id == assigned_to)
    if priority:
        query = query.filter(models.Task.priority == priority)
    if search:
        pattern = f"%{_escape_like(search)}%"
        query = query.filter(
            or_(
                models.Task.title.ilike(pattern, escape="\\"),
                models.Task.description.ilike(pattern, escape="\\"),
            )
        )

    tasks = query.order_by(models.Task.created_at.desc(), models.Task.id.desc()).all()
    logger.debug(f"Retrieved {len(tasks)} tasks")
    return tasks


def get_task_for_user(db: Session, user: models.User, task_id: int) -> models.Task:
    task = get_task_or_404(db, task_id)
    project = db.query(models.Project).filter(models.Project.id == task.project_id).first()
    if project is None:
        raise NotFound("Project not found")
    require_project_read(project, user.id)
    return task


def create_task(
    db: Session,
    user: models.User,
    data: schemas.TaskCreate,
    fanout: EventPublisher,
) -> models.Task:
    """Create a task in a project the caller belongs to. The caller is recorded as creator."""
    logger.info(f"User {user.id} creating task: {data.title} in project {data.project_id}")

    project = db.query(models.Project).filter(models.Project.id == data.project_id).first()
    if project is None:
        logger.info(f"Project {data.project_id} not found")
        raise NotFound("Project not found")

    require_task_creation(project, user.id)
    _require_user_exists(db, data.assigned_to)

    task = models.Task(
        title=data.title,
        description=data.description,
        project_id=project.id,
        assigned_to_id=data.assigned_to,
        created_by_id=user.id,
        status=data.status,
        priority=data.priority,
        due_date=data.due_date,
        tags=data.tags,
        estimated_hours=data.estimated_hours,
    )
    db.add(task)
    commit_or_fail(db, "creating task")
    db.refresh(task)

    logger.info(f"Task created successfully: id={task.id}")
    emit(fanout, Event(EventKind.task_created, {"task": serialize_task(task)}, project_id=task.project_id))
    return task


def update_task(
    db: Session,
    user: models.User,
    task_id: int,
    patch: schemas.TaskUpdate,
    fanout: EventPublisher,
) -> models.Task:
    """
    Merge a partial update into a task.

    No membership check is made beyond the task existing.
    """
    logger.info(f"User {user.id} updating task {task_id}")

    task = get_task_or_404(db, task_id)

    changes = patch.model_dump(exclude_unset=True)
    if "assigned_to" in changes:
        changes["assigned_to_id"] = changes.pop("assigned_to")
        _require_user_exists(db, changes["assigned_to_id"])

    applied = apply_patch(
        task,
        changes,
        truthy_fields=TASK_TRUTHY_FIELDS,
        present_fields=TASK_PRESENT_FIELDS,
    )
    commit_or_fail(db, "updating task")
    db.refresh(task)

    logger.info(f"Task {task_id} updated successfully, fields: {sorted(applied)}")
    emit(fanout, Event(EventKind.task_updated, {"task": serialize_task(task)}, project_id=task.project_id))
    return task


def add_comment(
    db: Session,
    user: models.User,
    task_id: int,
    data: schemas.CommentCreate,
    fanout: EventPublisher,
) -> models.Task:
    """
    Append a comment with a server-assigned timestamp.

    Any authenticated caller may comment on any existing task.
    """
    logger.debug(f"User {user.id} commenting on task {task_id}")

    task = get_task_or_404(db, task_id)
    task.comments.append(models.Comment(text=data.text, user_id=user.id))
    commit_or_fail(db, "adding comment")
    db.refresh(task)

    logger.info(f"Comment added to task {task_id} by user {user.id}")
    emit(fanout, Event(EventKind.comment_added, {"task": serialize_task(task)}, project_id=task.project_id))
    return task


def delete_task(
    db: Session,
    user: models.User,
    task_id: int,
    fanout: EventPublisher,
) -> None:
    """Delete a task. Only its creator or the owning project's owner may do so."""
    logger.debug(f"User {user.id} deleting task {task_id}")

    task = get_task_or_404(db, task_id)
    project = db.query(models.Project).filter(models.Project.id == task.project_id).first()
    require_task_delete(task, project, user.id)

    project_id = task.project_id
    db.delete(task)
    commit_or_fail(db, "deleting task")

    logger.info(f"Task {task_id} deleted by user {user.id}")
    emit(fanout, Event(EventKind.task_deleted, {"taskId": task_id}, project_id=project_id))
