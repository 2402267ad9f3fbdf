"""
Authentication endpoints
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_db
from app.core.security import create_access_token, verify_password
from app.models.employee import Employee
from app.schemas.auth import LoginRequest, TokenResponse
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_CREDENTIALS = "Invalid employee code or password"


def _record_login(db: Session, action: str, employee: Optional[Employee], emp_code: str) -> None:
    """Audit a login attempt in its own commit; failures are logged, never raised."""
    try:
        log_audit(
            db=db,
            actor_id=employee.id if employee else None,
            action=action,
            entity_type="auth",
            meta={"emp_code": emp_code, "role": employee.role if employee else None},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Could not write %s audit for %s: %s", action, emp_code, e)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Exchange employee code and password for a bearer token

    Inactive accounts get 403; unknown codes and wrong passwords get the same
    401 so codes cannot be probed.
    """
    employee = db.query(Employee).filter(Employee.emp_code == login_data.emp_code).first()

    if employee is not None and not employee.active:
        _record_login(db, "AUTH_LOGIN_BLOCKED", employee, login_data.emp_code)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")

    if (
        employee is None
        or employee.password_hash is None
        or not verify_password(login_data.password, employee.password_hash)
    ):
        logger.info("Login failed: emp_code=%s", login_data.emp_code)
        _record_login(db, "AUTH_LOGIN_FAILED", employee, login_data.emp_code)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=INVALID_CREDENTIALS)

    access_token = create_access_token(data={
        "sub": str(employee.id),  # JWT 'sub' must be a string
        "emp_code": employee.emp_code,
        "role": employee.role,
        "organization_id": employee.organization_id,
    })
    _record_login(db, "AUTH_LOGIN_SUCCESS", employee, login_data.emp_code)

    return TokenResponse(
        access_token=access_token,
        expires_in=settings.JWT_EXPIRE_MINUTES * 60,
        employee_id=employee.id,
        role=employee.role,
        organization_id=employee.organization_id,
    )
