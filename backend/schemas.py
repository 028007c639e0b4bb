from pydantic import BaseModel, ConfigDict, EmailStr, Field, AliasChoices, StringConstraints
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List, Literal, Any, Annotated

from models import UserRole, MemberRole, ProjectStatus, Priority, TaskStatus


# Roles that can be granted through the add-member path ("owner" is fixed at creation)
AssignableRole = Literal["admin", "member", "viewer"]


class WireModel(BaseModel):
    """Response model: reads ORM rows, writes camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class RequestModel(BaseModel):
    """Request model: accepts camelCase (or snake_case) keys, trims strings."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class CredentialsModel(BaseModel):
    """Request model carrying passwords: camelCase keys, strings kept exactly as sent."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def dump(model: BaseModel) -> dict:
    """Serialize a wire model the way it appears in response and event payloads."""
    return model.model_dump(mode="json", by_alias=True)


# User schemas
class UserSummary(WireModel):
    id: int
    name: str
    email: str
    avatar: Optional[str] = None


class User(UserSummary):
    role: UserRole
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterRequest(CredentialsModel):
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=255)]
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)


class LoginRequest(CredentialsModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=2, max_length=255)
    bio: Optional[str] = Field(None, max_length=1000)
    avatar: Optional[str] = Field(None, max_length=512)


class PasswordChange(CredentialsModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=100)


# Project schemas
class Member(WireModel):
    user_id: int
    user: Optional[UserSummary] = None
    role: MemberRole
    joined_at: Optional[datetime] = None


class ProjectCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    status: ProjectStatus = ProjectStatus.planning
    priority: Priority = Priority.medium
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    color: Optional[str] = Field(None, max_length=32)


class ProjectUpdate(RequestModel):
    """
    Partial project update.

    Only fields carrying a truthy value are applied, so a field cannot be
    cleared through this path (an empty string or null leaves it untouched).
    """
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[ProjectStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    color: Optional[str] = Field(None, max_length=32)


class MemberAdd(RequestModel):
    user_id: int
    role: AssignableRole = "member"


class Project(WireModel):
    id: int
    name: str
    description: str
    owner_id: int
    owner: Optional[UserSummary] = None
    members: List[Member] = Field(default_factory=list)
    status: ProjectStatus
    priority: Priority
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProjectRef(WireModel):
    id: int
    name: str
    color: Optional[str] = None


class TaskStats(WireModel):
    total: int = 0
    todo: int = 0
    in_progress: int = 0
    review: int = 0
    completed: int = 0


# Comment schemas
class CommentCreate(RequestModel):
    text: str = Field(..., min_length=1, max_length=5000)


class Comment(WireModel):
    id: int
    user_id: int
    user: Optional[UserSummary] = None
    text: str
    created_at: datetime


# Task schemas
class TaskCreate(RequestModel):
    title: str = Field(..., min_length=1, max_length=255)
    project_id: int = Field(..., validation_alias=AliasChoices("project", "projectId", "project_id"))
    description: Optional[str] = None
    assigned_to: Optional[int] = None
    status: TaskStatus = TaskStatus.todo
    priority: Priority = Priority.medium
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    estimated_hours: Optional[float] = Field(None, ge=0, description="Estimated hours (must be >= 0)")


class TaskUpdate(RequestModel):
    """
    Partial task update.

    title, status, priority and tags are applied only when truthy.
    description, assignedTo, dueDate, estimatedHours and actualHours are
    applied whenever the key is present, so an explicit null clears them.
    """
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    assigned_to: Optional[int] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    estimated_hours: Optional[float] = Field(None, ge=0, description="Estimated hours (must be >= 0)")
    actual_hours: Optional[float] = Field(None, ge=0, description="Actual hours spent (must be >= 0)")


class Task(WireModel):
    id: int
    title: str
    description: Optional[str] = None
    project_id: int
    project: Optional[ProjectRef] = None
    assigned_to_id: Optional[int] = None
    assigned_to: Optional[UserSummary] = None
    created_by_id: int
    created_by: Optional[UserSummary] = None
    status: TaskStatus
    priority: Priority
    due_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    comments: List[Comment] = Field(default_factory=list)
    subtasks: List[Any] = Field(default_factory=list)
    attachments: List[Any] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
