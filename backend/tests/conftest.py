"""
Test configuration and fixtures for CollabTrack tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- A recording event publisher standing in for the WebSocket fanout
- Authentication helpers (JWT token generation)
- Common fixtures for users in every project role, a project and tasks
"""

import os
import sys
import logging
from datetime import timedelta
from typing import Generator, Dict

# Startup hooks run against this engine instead of a file on disk
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db, get_session_factory
from main import app
import models
from auth.security import hash_password, create_access_token
from realtime.fanout import get_fanout
from tests.fakes import RecordingPublisher

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_session_factory() -> Generator[sessionmaker, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution. Every session made by
    the factory shares the single in-memory connection.
    """
    logger.debug("Creating test database")

    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        logger.debug("Test database cleaned up")


@pytest.fixture(scope="function")
def test_db(test_session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = test_session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def events() -> RecordingPublisher:
    """Record events published by mutations instead of delivering them."""
    publisher = RecordingPublisher()
    app.dependency_overrides[get_fanout] = lambda: publisher
    return publisher


@pytest.fixture(scope="function")
def client(test_db: Session, test_session_factory: sessionmaker) -> TestClient:
    """
    Create FastAPI test client with database dependency overrides.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def make_user(db: Session, name: str, email: str, password: str = "secret123",
              role: models.UserRole = models.UserRole.user) -> models.User:
    user = models.User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {email} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def owner_user(test_db: Session) -> models.User:
    return make_user(test_db, "Olivia Owner", "owner@test.com")


@pytest.fixture(scope="function")
def admin_member(test_db: Session) -> models.User:
    return make_user(test_db, "Adam Admin", "admin-member@test.com")


@pytest.fixture(scope="function")
def plain_member(test_db: Session) -> models.User:
    return make_user(test_db, "Mia Member", "member@test.com")


@pytest.fixture(scope="function")
def viewer_member(test_db: Session) -> models.User:
    return make_user(test_db, "Vic Viewer", "viewer@test.com")


@pytest.fixture(scope="function")
def outsider(test_db: Session) -> models.User:
    return make_user(test_db, "Otto Outsider", "outsider@test.com")


def create_auth_token(user: models.User, expires_delta: timedelta = None) -> str:
    """
    Helper to create JWT access token for a user.

    Args:
        user: User to create token for
        expires_delta: Optional expiration time override

    Returns:
        JWT access token string
    """
    logger.debug(f"Creating auth token for user {user.id}")
    token_data = {
        "sub": str(user.id),
        "role": user.role.value,
    }
    return create_access_token(token_data, expires_delta)


def auth_headers_for(user: models.User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_auth_token(user)}"}


@pytest.fixture(scope="function")
def owner_headers(owner_user: models.User) -> Dict[str, str]:
    return auth_headers_for(owner_user)


@pytest.fixture(scope="function")
def project(
    test_db: Session,
    owner_user: models.User,
    admin_member: models.User,
    plain_member: models.User,
    viewer_member: models.User,
) -> models.Project:
    """
    Create a project owned by owner_user with one member in each other role.
    """
    logger.debug("Creating test project")
    project = models.Project(
        name="Launch Plan",
        description="Everything needed for launch",
        owner_id=owner_user.id,
    )
    project.members = [
        models.ProjectMember(user_id=owner_user.id, role=models.MemberRole.owner),
        models.ProjectMember(user_id=admin_member.id, role=models.MemberRole.admin),
        models.ProjectMember(user_id=plain_member.id, role=models.MemberRole.member),
        models.ProjectMember(user_id=viewer_member.id, role=models.MemberRole.viewer),
    ]
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)

    logger.info(f"Created test project with ID: {project.id}")
    return project


def make_task(db: Session, project: models.Project, creator: models.User, title: str = "Write docs",
              **fields) -> models.Task:
    task = models.Task(
        title=title,
        project_id=project.id,
        created_by_id=creator.id,
        **fields,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


@pytest.fixture(scope="function")
def task(test_db: Session, project: models.Project, plain_member: models.User) -> models.Task:
    """A task in the test project created by the plain member."""
    return make_task(test_db, project, plain_member, description="First draft")
