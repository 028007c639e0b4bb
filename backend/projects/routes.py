"""Project API endpoints."""

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
from projects import service
from projects.service import serialize_project

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.get("")
def list_projects(
    status: Optional[schemas.ProjectStatus] = Query(None),
    search: Optional[str] = Query(None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List projects the current user owns or is a member of."""
    logger.debug(f"User {current_user.id} listing projects: status={status}, search={search}")

    projects = service.list_projects_for_user(db, current_user.id, status=status, search=search)
    return envelope(
        True,
        data={"projects": [serialize_project(p) for p in projects], "count": len(projects)},
    )


@router.get("/{project_id}")
def get_project(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a project with its task statistics (owner or member)."""
    logger.debug(f"User {current_user.id} requesting project {project_id}")

    project = service.get_project_for_user(db, current_user, project_id)
    stats = service.task_stats(db, project_id)
    return envelope(
        True,
        data={"project": serialize_project(project), "taskStats": schemas.dump(stats)},
    )


@router.post("")
def create_project(
    project: schemas.ProjectCreate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Create a new project with the current user as owner."""
    db_project = service.create_project(db, current_user, project, fanout)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=envelope(
            True,
            message="Project created successfully",
            data={"project": serialize_project(db_project)},
        ),
    )


@router.put("/{project_id}")
def update_project(
    project_id: int,
    project_update: schemas.ProjectUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Update project fields (owner or project admin)."""
    project = service.update_project(db, current_user, project_id, project_update, fanout)
    return envelope(True, message="Project updated successfully", data={"project": serialize_project(project)})


@router.post("/{project_id}/members")
def add_project_member(
    project_id: int,
    member_data: schemas.MemberAdd,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Add a member to a project (owner or project admin)."""
    project = service.add_member(db, current_user, project_id, member_data, fanout)
    return envelope(True, message="Member added successfully", data={"project": serialize_project(project)})


@router.delete("/{project_id}/members/{user_id}")
def remove_project_member(
    project_id: int,
    user_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Remove a member from a project (owner only)."""
    project = service.remove_member(db, current_user, project_id, user_id, fanout)
    return envelope(True, message="Member removed successfully", data={"project": serialize_project(project)})


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
    fanout: EventPublisher = Depends(get_fanout),
):
    """Delete a project and all of its tasks (owner only)."""
    service.delete_project(db, current_user, project_id, fanout)
    return envelope(True, message="Project and associated tasks deleted successfully")
