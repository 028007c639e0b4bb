"""Task and comment API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db
from errors import envelope
from auth.dependencies import get_current_user
from realtime.fanout import EventPublisher, get_fanout
from tasks import service
from tasks.service import serialize_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("")
def list_tasks(
    project: Optional[int] = Query(None),
    status: Optional[schemas.TaskStatus] = Query(None),
    assigned_to: Optional[int] = Query(None, alias="assignedTo"),
    priority: Optional[schemas.Priority] = Query(None),
    search: Optional[str] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List tasks matching the filters, across all projects."""
    logger.debug(
        f"User {current_user.id} listing tasks: project={project}, status={status}, "
        f"assignedTo={assigned_to}, priority={priority}, search={search}"
    )

    tasks = service.list_tasks(
        db,
        project_id=project,
        status=status,
        assigned_to=assigned_to,
        priority=priority,
        search=search,
    )
    return envelope(True, data={"tasks": [serialize_task(t) for t in tasks], "count": len(tasks)})


@router.get("/{task_id}")
def get_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a task (requires access to its project)."""
    logger.debug(f"User {current_user.id} requesting task {task_id}")

    task = service.get_task_for_user(db, current_user, task_id)
    return envelope(True, data={"task": serialize_task(task)})


@router.post("")
def create_task(
    task: schemas.TaskCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Create a task in a project the current user belongs to."""
    db_task = service.create_task(db, current_user, task, fanout)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=envelope(True, message="Task created successfully", data={"task": serialize_task(db_task)}),
    )


@router.put("/{task_id}")
def update_task(
    task_id: int,
    task_update: schemas.TaskUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Partially update a task."""
    task = service.update_task(db, current_user, task_id, task_update, fanout)
    return envelope(True, message="Task updated successfully", data={"task": serialize_task(task)})


@router.post("/{task_id}/comments")
def add_comment(
    task_id: int,
    comment: schemas.CommentCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Append a comment to a task."""
    task = service.add_comment(db, current_user, task_id, comment, fanout)
    return envelope(True, message="Comment added successfully", data={"task": serialize_task(task)})


@router.delete("/{task_id}")
def delete_task(
    task_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Delete a task (its creator or the project owner)."""
    service.delete_task(db, current_user, task_id, fanout)
    return envelope(True, message="Task deleted successfully")
