"""
ACS Attendance Backend - Main Application Entry Point
Developed & Designed by JPSystech
"""
import logging
from datetime import date
from urllib.parse import urlparse, urlunparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi import HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from app.api.router import api_router
from app.core.config import settings
from app.core.constants import SERVICE_NAME
from app.core.errors import (
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from app.core.logging import setup_logging
from app.core.security import hash_password
from app.db.session import SessionLocal
from app.models.employee import Employee, Role
from app.models.organization import Organization

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

DEFAULT_ORGANIZATION_NAME = "Default Organization"


def _mask_database_url(url: str) -> str:
    """Mask password in DATABASE_URL for safe logging; show full path for sqlite."""
    try:
        parsed = urlparse(url)
        if parsed.scheme == "sqlite":
            return url
        if parsed.password:
            netloc = f"{parsed.username}:****@{parsed.hostname or ''}"
            if parsed.port:
                netloc += f":{parsed.port}"
            return urlunparse(parsed._replace(netloc=netloc))
    except ValueError:
        return "***"
    return url


app = FastAPI(
    title="ACS Attendance Backend",
    description=f"{SERVICE_NAME}: attendance regularization, daily roll-ups and biometric ingestion - Developed & Designed by JPSystech",
    version=settings.VERSION or "1.0.0"
)

# Configure CORS - must be before other middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# Register exception handlers
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# Include all API routes under /api/v1
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def startup_log_config() -> None:
    """Log DATABASE_URL at startup so it can be verified against Alembic."""
    settings.validate_production()
    masked = _mask_database_url(settings.DATABASE_URL)
    logger.info("DATABASE_URL (app): %s", masked)
    logger.info("Attendance timezone: %s", settings.ATTENDANCE_TZ)


@app.on_event("startup")
def bootstrap_initial_admin() -> None:
    """
    Create the default organization and the initial admin if no admin exists.
    This ensures the system always has at least one admin user.
    """
    db = SessionLocal()
    try:
        admin_exists = db.query(Employee).filter(
            (Employee.emp_code == "ADM-001") |
            (Employee.role.in_([Role.ADMIN.value, Role.OWNER.value]))
        ).first()
        if admin_exists:
            logger.info("Admin user already exists, skipping initial bootstrap")
            return

        logger.info("No admin user found, creating initial admin setup...")

        organization = db.query(Organization).order_by(Organization.id).first()
        if not organization:
            organization = Organization(name=DEFAULT_ORGANIZATION_NAME, active=True)
            db.add(organization)
            db.flush()
            logger.info("Created organization: %s", DEFAULT_ORGANIZATION_NAME)

        initial_admin = Employee(
            emp_code="ADM-001",
            name="System Administrator",
            email=settings.INITIAL_ADMIN_EMAIL,
            role=Role.ADMIN.value,
            organization_id=organization.id,
            password_hash=hash_password(settings.INITIAL_ADMIN_PASSWORD),
            join_date=date.today(),
            active=True,
        )
        db.add(initial_admin)
        db.commit()

        logger.info("Initial admin user created successfully")
        logger.info("Employee Code: ADM-001")
        logger.info("Password: [set via INITIAL_ADMIN_PASSWORD environment variable]")

    except OperationalError as e:
        db.rollback()
        # Database not migrated yet
        if "no such table" in str(e).lower() or "does not exist" in str(e).lower():
            logger.warning("Database tables not ready yet, skipping initial bootstrap")
        else:
            logger.error("Database error during admin bootstrap: %s", e)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error during initial admin bootstrap: %s", e)
    finally:
        db.close()


def _is_no_such_table(err: BaseException) -> bool:
    msg = str(err).lower()
    return "no such table" in msg or "undefinedtable" in msg


async def _handle_operational_error(request, exc: Exception):
    if _is_no_such_table(exc):
        return JSONResponse(
            status_code=500,
            content={"detail": "Run alembic upgrade head"},
        )
    return await generic_exception_handler(request, exc)


app.add_exception_handler(OperationalError, _handle_operational_error)
