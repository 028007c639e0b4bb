"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration and login (both return the user and an access token)
- Reading the current user
- Profile and password updates
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
import schemas
from database import get_db, commit_or_fail
from errors import DuplicateEmail, InvalidCredentials, envelope
from patching import apply_patch
from auth.security import hash_password, verify_password, create_access_token
from auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _issue_token(user: models.User) -> str:
    return create_access_token({"sub": str(user.id), "role": user.role.value})


def _user_data(user: models.User) -> dict:
    return schemas.dump(schemas.User.model_validate(user))


def find_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email).first()


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(request: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user account.

    Raises:
        DuplicateEmail: 400 if the email is already registered
    """
    logger.info(f"Registration attempt for email: {request.email}")

    if find_user_by_email(db, request.email):
        logger.info(f"Registration failed: email already exists: {request.email}")
        raise DuplicateEmail()

    new_user = models.User(
        name=request.name,
        email=request.email,
        password_hash=hash_password(request.password),
        role=models.UserRole.user,
    )
    db.add(new_user)
    try:
        # A concurrent registration can pass the check above; the unique index decides
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info(f"Registration failed: email registered concurrently: {request.email}")
        raise DuplicateEmail()
    commit_or_fail(db, "registering user")
    db.refresh(new_user)

    logger.info(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=envelope(
            True,
            message="User registered successfully",
            data={"user": _user_data(new_user), "token": _issue_token(new_user)},
        ),
    )


@router.post("/login")
def login(request: schemas.LoginRequest, db: Session = Depends(get_db)):
    """
    Login with email and password.

    Raises:
        InvalidCredentials: 401 if the email is unknown or the password is wrong
    """
    logger.info(f"Login attempt for email: {request.email}")

    user = db.query(models.User).filter(models.User.email == request.email).first()
    if not user:
        logger.info(f"Login failed: user not found: {request.email}")
        raise InvalidCredentials()

    if not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed: invalid password: {request.email}")
        raise InvalidCredentials()

    logger.info(f"User logged in successfully: {user.email} (ID: {user.id})")
    return envelope(
        True,
        message="Login successful",
        data={"user": _user_data(user), "token": _issue_token(user)},
    )


@router.get("/me")
def get_current_user_info(current_user: models.User = Depends(get_current_user)):
    """Get current authenticated user information."""
    logger.debug(f"Fetching user info for: {current_user.id}")
    return envelope(True, data={"user": _user_data(current_user)})


@router.put("/profile")
def update_profile(
    request: schemas.ProfileUpdate,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update name (when non-empty), bio and avatar of the current user."""
    logger.debug(f"User {current_user.id} updating profile")

    apply_patch(
        current_user,
        request.model_dump(exclude_unset=True),
        truthy_fields=("name",),
        present_fields=("bio", "avatar"),
    )
    commit_or_fail(db, "updating profile")
    db.refresh(current_user)

    logger.info(f"Profile updated for user {current_user.id}")
    return envelope(True, message="Profile updated successfully", data={"user": _user_data(current_user)})


@router.put("/password")
def change_password(
    request: schemas.PasswordChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Change the current user's password.

    Raises:
        InvalidCredentials: 401 if the current password does not match
    """
    logger.debug(f"User {current_user.id} changing password")

    if not verify_password(request.current_password, current_user.password_hash):
        logger.info(f"Password change failed: wrong current password for user {current_user.id}")
        raise InvalidCredentials("Current password is incorrect")

    current_user.password_hash = hash_password(request.new_password)
    commit_or_fail(db, "changing password")

    logger.info(f"Password changed for user {current_user.id}")
    return envelope(True, message="Password updated successfully")
