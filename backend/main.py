from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
import logging
import os
import sys

from database import engine, Base, SessionLocal
import models
from errors import install_exception_handlers
from auth.routes import router as auth_router
from projects.routes import router as projects_router
from tasks.routes import router as tasks_router
from realtime.routes import router as realtime_router
from realtime.fanout import ConnectionManager

# Configure logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_ADMIN_PASSWORD = "admin123"
MIN_ADMIN_PASSWORD_LENGTH = 8

app = FastAPI(
    title="CollabTrack API",
    description="Collaborative projects and tasks with real-time updates",
    version="1.0.0"
)

# CORS middleware for frontend
cors_origins = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app)

# In-process publisher shared by the REST routes and the WebSocket endpoint
app.state.fanout = ConnectionManager()

app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(tasks_router)
app.include_router(realtime_router)


@app.get("/health")
def health_check():
    return {"status": "healthy"}


# ============== Startup: Ensure Admin User Exists ==============

def ensure_admin_user(db: Session) -> models.User:
    """
    Create the admin account if it does not exist yet.

    Uses ADMIN_EMAIL / ADMIN_PASSWORD env vars, defaulting to
    admin@example.com / admin123 for local dev. In production-like
    environments the default or a short password is refused.

    Raises:
        RuntimeError: if the configured password is not acceptable in production
    """
    # Import here to avoid circular dependency
    from auth.security import hash_password, is_production_like

    admin_email = os.getenv("ADMIN_EMAIL", DEFAULT_ADMIN_EMAIL).strip()
    admin = db.query(models.User).filter(models.User.email == admin_email).first()
    if admin:
        logger.info(f"Admin user already exists (email: {admin_email})")
        return admin

    admin_password = os.getenv("ADMIN_PASSWORD", DEFAULT_ADMIN_PASSWORD)
    is_default_password = admin_password.strip() == DEFAULT_ADMIN_PASSWORD

    if is_production_like():
        if not admin_password.strip() or is_default_password:
            raise RuntimeError("A non-default ADMIN_PASSWORD is required in production/staging")
        if len(admin_password.strip()) < MIN_ADMIN_PASSWORD_LENGTH:
            raise RuntimeError(
                f"ADMIN_PASSWORD must be at least {MIN_ADMIN_PASSWORD_LENGTH} characters long"
            )

    admin = models.User(
        name="Admin",
        email=admin_email,
        role=models.UserRole.admin,
        password_hash=hash_password(admin_password),
    )
    db.add(admin)
    db.commit()
    db.refresh(admin)

    if is_default_password:
        logger.warning(
            "=" * 80 + "\n"
            f"Admin user created with DEFAULT password '{DEFAULT_ADMIN_PASSWORD}'\n"
            "This is OK for local development but DANGEROUS for production!\n"
            "Set ADMIN_PASSWORD environment variable to use a custom password.\n" +
            "=" * 80
        )
    else:
        logger.info(f"Admin user created with password from ADMIN_PASSWORD (email: {admin_email})")
    return admin


@app.on_event("startup")
async def startup():
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        ensure_admin_user(db)
    except RuntimeError as e:
        logger.error(f"STARTUP FAILED: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Failed to ensure admin user exists: {e}")
        db.rollback()
    finally:
        db.close()


@app.on_event("shutdown")
async def shutdown():
    await app.state.fanout.close()
