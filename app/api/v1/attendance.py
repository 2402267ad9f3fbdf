"""
Attendance endpoints: device push, self-service punches, Daily records,
orphan reconciliation and day close
"""
from datetime import date
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import (
    get_authenticated_machine,
    get_current_user,
    get_db,
    get_notifier,
    require_roles,
)
from app.core.errors import AuthorizationError, NotFoundError, ValidationFailed
from app.models.attendance_machine import AttendanceMachine
from app.models.employee import Employee, Role
from app.schemas.attendance import (
    DailyOut,
    DayCloseRequest,
    DayCloseResponse,
    LogOut,
    PunchRequest,
    PunchResponse,
    ReconcileRequest,
)
from app.schemas.machine import PushResponse
from app.services.attendance_log_service import (
    list_orphan_logs,
    reconcile_orphan_log,
    record_punch,
)
from app.services.daily_aggregate_service import list_daily
from app.services.day_close_service import close_day
from app.services.machine_service import process_machine_data
from app.services.notification_service import NotificationSink

router = APIRouter()


@router.post("/machine/push", response_model=PushResponse)
async def push_machine_data(
    payload: Any = Body(..., description="One punch object or an array of punch objects"),
    db: Session = Depends(get_db),
    machine: AttendanceMachine = Depends(get_authenticated_machine),
    notifier: NotificationSink = Depends(get_notifier),
):
    """
    Ingest punches pushed by a biometric terminal

    Authenticated by the x-machine-api-key header. The whole batch commits or
    none of it does; re-sent punches are reported as duplicates.
    """
    machine_info = {"id": machine.id, "name": machine.name, "serial_number": machine.serial_number}
    result = process_machine_data(db, machine, payload, notifier=notifier)
    return PushResponse(status="success", machine=machine_info, **result.as_dict())


@router.post("/punch", response_model=PunchResponse, status_code=201)
async def punch(
    punch_data: PunchRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Record a web/mobile punch for the current user (server time)"""
    log, daily = record_punch(
        db,
        current_user,
        log_type=punch_data.type,
        source=punch_data.source,
        metadata=punch_data.metadata,
        notifier=notifier,
    )
    return PunchResponse(log=LogOut.model_validate(log), daily=DailyOut.model_validate(daily))


@router.get("/daily", response_model=List[DailyOut])
async def get_daily_records(
    from_date: Optional[date] = Query(None, description="First work date (inclusive)"),
    to_date: Optional[date] = Query(None, description="Last work date (inclusive)"),
    employee_id: Optional[int] = Query(None, description="Another employee (HR/Admin only)"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """
    Daily attendance records, newest first

    Employees see their own days; HR and administrators may pass employee_id.
    """
    if from_date and to_date and from_date > to_date:
        raise ValidationFailed(detail="from_date must be on or before to_date")

    user_id = current_user.id
    if employee_id is not None and employee_id != current_user.id:
        if not (current_user.has_admin_override or current_user.role == Role.HR.value):
            raise AuthorizationError(detail="Not allowed to view another employee's attendance")
        other = db.query(Employee).filter(
            Employee.id == employee_id,
            Employee.organization_id == current_user.organization_id,
        ).first()
        if not other:
            raise NotFoundError(detail="Employee not found")
        user_id = other.id
    return list_daily(db, user_id=user_id, from_date=from_date, to_date=to_date)


@router.get("/logs/orphans", response_model=List[LogOut])
async def get_orphan_logs(
    machine_id: Optional[int] = Query(None, description="Filter by machine"),
    raw_user_id: Optional[str] = Query(None, description="Filter by device user id"),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR)),
):
    """Device punches not yet attributed to an employee (HR/Admin)"""
    return list_orphan_logs(
        db,
        current_user.organization_id,
        machine_id=machine_id,
        raw_user_id=raw_user_id,
        limit=limit,
    )


@router.post("/logs/{log_id}/reconcile", response_model=PunchResponse)
async def reconcile_log(
    log_id: int,
    body: ReconcileRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR)),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Attribute an orphan punch to an employee (HR/Admin)"""
    log, daily = reconcile_orphan_log(db, log_id, body.user_id, current_user, notifier=notifier)
    return PunchResponse(log=LogOut.model_validate(log), daily=DailyOut.model_validate(daily))


@router.post("/daily/close", response_model=DayCloseResponse)
async def close_attendance_day(
    body: DayCloseRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR)),
):
    """Settle every employee's Daily for a finished date (HR/Admin)"""
    counts = close_day(db, current_user.organization_id, body.date, actor_id=current_user.id)
    return DayCloseResponse(date=body.date, organization_id=current_user.organization_id, counts=counts)
