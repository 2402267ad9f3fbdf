"""
Dependencies and guards for FastAPI endpoints
"""
from typing import Generator, Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from app.db.session import SessionLocal
from app.core.security import decode_token
from app.models.attendance_machine import AttendanceMachine
from app.models.employee import Employee, Role
from app.services.notification_service import LoggingNotificationSink, NotificationSink


security = HTTPBearer()

_default_notifier = LoggingNotificationSink()


def get_db() -> Generator:
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notifier() -> NotificationSink:
    """Dependency for the notification sink (overridden in tests)"""
    return _default_notifier


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> Employee:
    """
    Get current authenticated user from JWT token
    """
    token = credentials.credentials

    try:
        payload = decode_token(token)
        sub_value = payload.get("sub")
        if sub_value is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        # Convert string sub back to integer
        employee_id: int = int(sub_value)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not employee.active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Inactive user"
        )

    return employee


def require_roles(*allowed_roles: Role):
    """
    Dependency factory for role-based access control

    ADMIN, OWNER and super-admins pass every role check.

    Usage:
        @router.get("/hr-only")
        async def hr_endpoint(user: Employee = Depends(require_roles(Role.HR))):
            ...
    """
    allowed = {r.value for r in allowed_roles}

    def role_checker(current_user: Employee = Depends(get_current_user)) -> Employee:
        if current_user.has_admin_override:
            return current_user
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {sorted(allowed)}"
            )
        return current_user
    return role_checker


def get_authenticated_machine(
    x_machine_api_key: Optional[str] = Header(None, alias="x-machine-api-key"),
    db: Session = Depends(get_db),
) -> AttendanceMachine:
    """Resolve the pushing device from its x-machine-api-key header (401 otherwise)"""
    from app.services.machine_service import authenticate_machine
    return authenticate_machine(db, x_machine_api_key)
