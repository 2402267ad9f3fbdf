"""
Day close: settle every employee's Daily for a finished work date.

Run once per organization and date (nightly job or admin endpoint). Days with
no punches become absent, holiday or week_off; worked days get their
missed_punch / holiday_work / week_off_work classification. Re-running for the
same date is safe: settled rows are left as they are.
"""
import logging
from collections import Counter
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session, joinedload

from app.core.errors import ValidationFailed
from app.db.transaction import run_in_transaction
from app.models.attendance_daily import DailyStatus
from app.models.employee import Employee
from app.services.audit_service import log_audit
from app.services.daily_aggregate_service import find_daily, load_or_create_daily, set_daily_status
from app.services.holiday_service import holiday_branches_on, is_holiday_for
from app.utils.datetime_utils import today_local

logger = logging.getLogger(__name__)

DEFAULT_WEEKLY_OFFS = (6,)  # Sunday

# Statuses produced by punches that day close may still reclassify
_PUNCHED_STATUSES = frozenset({DailyStatus.PRESENT, DailyStatus.LATE, DailyStatus.HALF_DAY})


def _is_week_off(employee: Employee, work_date: date) -> bool:
    weekly_offs = employee.shift.weekly_offs if employee.shift is not None else DEFAULT_WEEKLY_OFFS
    return work_date.weekday() in set(weekly_offs or ())


def close_day(
    db: Session,
    organization_id: int,
    work_date: date,
    *,
    actor_id: Optional[int] = None,
) -> Dict[str, int]:
    """
    Settle all active employees of an organization for ``work_date``.

    Args:
        db: Database session
        organization_id: Organization to settle
        work_date: Finished work date (today or earlier)
        actor_id: Employee who triggered the run (None for the scheduler)

    Returns:
        Count of Daily rows created or reclassified, by resulting status

    Raises:
        ValidationFailed: work_date is in the future
    """
    if work_date > today_local():
        raise ValidationFailed(detail="Cannot close a future date")

    employees = (
        db.query(Employee)
        .options(joinedload(Employee.shift))
        .filter(
            Employee.organization_id == organization_id,
            Employee.active.is_(True),
            Employee.join_date <= work_date,
        )
        .order_by(Employee.id)
        .all()
    )
    holiday_branches = holiday_branches_on(db, organization_id, work_date)

    def work(session: Session) -> Dict[str, int]:
        counts: Counter = Counter()
        for employee in employees:
            is_holiday = is_holiday_for(holiday_branches, employee.branch_id)
            is_week_off = _is_week_off(employee, work_date)
            daily = find_daily(session, employee.id, work_date)

            if daily is None:
                if is_holiday:
                    new_status = DailyStatus.HOLIDAY
                elif is_week_off:
                    new_status = DailyStatus.WEEK_OFF
                else:
                    new_status = DailyStatus.ABSENT
                daily = load_or_create_daily(
                    session,
                    user_id=employee.id,
                    organization_id=organization_id,
                    branch_id=employee.branch_id,
                    work_date=work_date,
                    shift_id=employee.shift_id,
                )
                set_daily_status(daily, new_status)
                counts[new_status.value] += 1
                continue

            if daily.status not in _PUNCHED_STATUSES:
                continue
            if daily.first_in is not None and daily.last_out is None:
                new_status = DailyStatus.MISSED_PUNCH
            elif is_holiday:
                new_status = DailyStatus.HOLIDAY_WORK
            elif is_week_off:
                new_status = DailyStatus.WEEK_OFF_WORK
            else:
                continue
            set_daily_status(daily, new_status)
            counts[new_status.value] += 1

        session.flush()
        log_audit(
            db=session,
            actor_id=actor_id,
            action="ATTENDANCE_DAY_CLOSE",
            entity_type="attendance_daily",
            entity_id=None,
            meta={"organization_id": organization_id, "date": work_date, "counts": dict(counts)},
        )
        return dict(counts)

    counts = run_in_transaction(db, work, ctx=f"day_close:{organization_id}:{work_date}")
    logger.info(
        "Day closed: organization_id=%s date=%s employees=%s counts=%s",
        organization_id, work_date, len(employees), counts,
    )
    return counts
