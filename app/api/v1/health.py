"""
Liveness and database readiness
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.constants import SERVICE_NAME, SYSTEM_CREDIT
from app.core.deps import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Report whether the service can reach its database

    Devices back off their push schedule on a 503, so an unreachable
    database is reported with that status instead of 200.
    """
    body = {"status": "ok", "service": SERVICE_NAME, "database": "ok", "credit": SYSTEM_CREDIT}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check: database unreachable: %s", e)
        body.update(status="degraded", database="unavailable")
        return JSONResponse(status_code=503, content=body)
    return body
