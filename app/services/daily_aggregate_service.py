"""
Daily aggregate engine: keeps one AttendanceDaily per (employee, work date)
in sync with the attendance log.

Hours are always recomputed from first_in/last_out, never patched
incrementally. total_work_hours is the flat span between the first in and the
last out; break punches are recorded in ``logs`` but not deducted.
"""
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.attendance import AttendanceLog, ProcessingStatus, IN_TYPES, OUT_TYPES
from app.models.attendance_daily import AttendanceDaily, DailyStatus
from app.models.shift import Shift
from app.utils.datetime_utils import attendance_zone, ensure_utc, to_local

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
NIGHT_SHIFT_CUTOFF_HOURS = 4

PAYOUT_MULTIPLIERS = {
    DailyStatus.ABSENT: Decimal("0.0"),
    DailyStatus.HOLIDAY_WORK: Decimal("2.0"),
    DailyStatus.WEEK_OFF_WORK: Decimal("2.0"),
}
DEFAULT_PAYOUT_MULTIPLIER = Decimal("1.0")

# Statuses that shift rules (late/half-day) may reclassify
CLASSIFIABLE_STATUSES = frozenset({DailyStatus.PRESENT, DailyStatus.LATE, DailyStatus.HALF_DAY})

# A punch on a day recorded as one of these turns it into a worked day
_WORKED_STATUS_FOR = {
    DailyStatus.ABSENT: DailyStatus.PRESENT,
    DailyStatus.MISSED_PUNCH: DailyStatus.PRESENT,
    DailyStatus.HOLIDAY: DailyStatus.HOLIDAY_WORK,
    DailyStatus.WEEK_OFF: DailyStatus.WEEK_OFF_WORK,
}


def payout_multiplier_for(status: DailyStatus) -> Decimal:
    """Payroll weight of a day: 0 for unpaid absence, 2 for work on an off day, 1 otherwise."""
    return PAYOUT_MULTIPLIERS.get(status, DEFAULT_PAYOUT_MULTIPLIER)


def set_daily_status(daily: AttendanceDaily, status: DailyStatus) -> None:
    daily.status = status
    daily.is_half_day = status == DailyStatus.HALF_DAY
    daily.payout_multiplier = payout_multiplier_for(status)


def hours_between(last_out: datetime, first_in: datetime) -> Decimal:
    """Hours from first_in to last_out, rounded to 2 places; never negative."""
    seconds = (ensure_utc(last_out) - ensure_utc(first_in)).total_seconds()
    if seconds <= 0:
        return Decimal("0.00")
    return (Decimal(str(seconds)) / Decimal(3600)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calendar_date(ts: datetime) -> date:
    """Calendar day of a UTC instant in ATTENDANCE_TZ."""
    return to_local(ts).date()


def work_date_for(ts: datetime, shift: Optional[Shift] = None) -> date:
    """
    Work date a punch belongs to.

    Night shifts that end after midnight attribute early-morning punches (up to
    four hours past the shift end hour) to the previous calendar day.
    """
    local = to_local(ts)
    if shift is not None and shift.is_night_shift:
        if local.hour <= shift.end_time.hour + NIGHT_SHIFT_CUTOFF_HOURS:
            return local.date() - timedelta(days=1)
    return local.date()


def find_daily(db: Session, user_id: int, work_date: date) -> Optional[AttendanceDaily]:
    return (
        db.query(AttendanceDaily)
        .filter(AttendanceDaily.user_id == user_id, AttendanceDaily.date == work_date)
        .first()
    )


def load_or_create_daily(
    db: Session,
    *,
    user_id: int,
    organization_id: int,
    work_date: date,
    branch_id: Optional[int] = None,
    shift_id: Optional[int] = None,
) -> AttendanceDaily:
    """
    Return the Daily for (user_id, work_date), inserting an empty one if missing.

    The insert runs in a SAVEPOINT. If a concurrent writer created the row
    first, the unique index rejects ours, only the savepoint is rolled back and
    the existing row is returned for the caller to update.
    """
    daily = find_daily(db, user_id, work_date)
    if daily is not None:
        return daily

    daily = AttendanceDaily(
        user_id=user_id,
        organization_id=organization_id,
        branch_id=branch_id,
        shift_id=shift_id,
        date=work_date,
        status=DailyStatus.PRESENT,
        payout_multiplier=DEFAULT_PAYOUT_MULTIPLIER,
        total_work_hours=Decimal("0.00"),
        overtime_hours=Decimal("0.00"),
        late_minutes=0,
        logs=[],
    )
    try:
        with db.begin_nested():
            db.add(daily)
            db.flush()
    except IntegrityError:
        existing = find_daily(db, user_id, work_date)
        if existing is None:
            raise
        logger.info(
            "Daily upsert race resolved: user_id=%s date=%s daily_id=%s",
            user_id, work_date, existing.id,
        )
        return existing
    return daily


def recompute_work_hours(daily: AttendanceDaily) -> None:
    """Recompute total_work_hours from scratch from first_in/last_out."""
    if daily.first_in is None or daily.last_out is None:
        daily.total_work_hours = Decimal("0.00")
        return
    if ensure_utc(daily.last_out) < ensure_utc(daily.first_in):
        logger.warning(
            "Daily %s has last_out before first_in (user_id=%s date=%s); hours set to 0",
            daily.id, daily.user_id, daily.date,
        )
    daily.total_work_hours = hours_between(daily.last_out, daily.first_in)


def evaluate_shift_rules(daily: AttendanceDaily, shift: Optional[Shift]) -> None:
    """
    Apply lateness, early departure, overtime and half-day rules of the shift.

    Only days whose status is present/late/half_day are reclassified; off-day
    work, leave, WFH and on-duty statuses keep their status and only get flags.
    """
    if shift is None:
        return

    zone = attendance_zone()
    scheduled_in = datetime.combine(daily.date, shift.start_time, tzinfo=zone)
    scheduled_out = datetime.combine(daily.date, shift.end_time, tzinfo=zone)
    if scheduled_out <= scheduled_in:
        scheduled_out += timedelta(days=1)

    if daily.first_in is not None:
        grace_end = scheduled_in + timedelta(minutes=shift.grace_period_mins or 0)
        first_in = to_local(daily.first_in, zone)
        daily.is_late = first_in > grace_end
        daily.late_minutes = int((first_in - scheduled_in).total_seconds() // 60) if daily.is_late else 0

    if daily.last_out is not None:
        daily.is_early_departure = to_local(daily.last_out, zone) < scheduled_out

    if daily.first_in is None or daily.last_out is None:
        return

    hours = Decimal(daily.total_work_hours or 0)
    full_day = Decimal(str(shift.full_day_hours))
    if hours > full_day:
        daily.is_overtime = True
        daily.overtime_hours = (hours - full_day).quantize(TWO_PLACES)
    else:
        daily.is_overtime = False
        daily.overtime_hours = Decimal("0.00")

    if daily.status in CLASSIFIABLE_STATUSES:
        if hours < Decimal(str(shift.half_day_threshold_hours)):
            set_daily_status(daily, DailyStatus.HALF_DAY)
        else:
            set_daily_status(daily, DailyStatus.PRESENT)


def mark_worked(daily: AttendanceDaily) -> None:
    """Move an absent, missed-punch, holiday or week-off day to its worked status."""
    worked_status = _WORKED_STATUS_FOR.get(daily.status)
    if worked_status is not None:
        set_daily_status(daily, worked_status)


def merge_punch(daily: AttendanceDaily, log: AttendanceLog) -> bool:
    """
    Fold one log into the Daily using the min/max policy.

    Returns:
        False when the log id was already part of the Daily (re-apply is a no-op)
    """
    if log.id in daily.logs:
        return False

    ts = ensure_utc(log.timestamp)
    if log.type in IN_TYPES:
        if daily.first_in is None or ts < ensure_utc(daily.first_in):
            daily.first_in = ts
    elif log.type in OUT_TYPES:
        if daily.last_out is None or ts > ensure_utc(daily.last_out):
            daily.last_out = ts

    if log.type in IN_TYPES or log.type in OUT_TYPES:
        mark_worked(daily)

    daily.logs.append(log.id)
    return True


def refresh_daily(daily: AttendanceDaily, shift: Optional[Shift] = None) -> None:
    """Recompute hours and, when both ends are known, shift-derived flags."""
    recompute_work_hours(daily)
    if daily.first_in is not None and daily.last_out is not None:
        evaluate_shift_rules(daily, shift)
    daily.payout_multiplier = payout_multiplier_for(daily.status)


def apply_log(db: Session, log: AttendanceLog, *, shift: Optional[Shift] = None) -> AttendanceDaily:
    """
    Fold a persisted, resolved log into its Daily.

    Fetches or creates the Daily for (log.user_id, work date), moves first_in
    to the earliest in-punch and last_out to the latest out-punch, appends the
    log id once and recomputes hours when both ends are set. Re-applying the
    same log changes nothing.

    Args:
        db: Database session, inside the caller's transaction
        log: Flushed AttendanceLog with a user
        shift: The employee's shift, fetched by the caller (optional)

    Returns:
        The updated AttendanceDaily (flushed, not committed)

    Raises:
        ValueError: The log is not persisted or is an orphan
    """
    if log.id is None:
        raise ValueError("apply_log requires a persisted log")
    if log.user_id is None or log.processing_status == ProcessingStatus.ORPHAN:
        raise ValueError(f"Log {log.id} has no resolved user")

    work_date = work_date_for(log.timestamp, shift)
    daily = load_or_create_daily(
        db,
        user_id=log.user_id,
        organization_id=log.organization_id,
        branch_id=log.branch_id,
        work_date=work_date,
        shift_id=shift.id if shift is not None else None,
    )

    if not merge_punch(daily, log):
        logger.debug("Log %s already applied to daily %s", log.id, daily.id)
        return daily

    refresh_daily(daily, shift)
    db.flush()
    logger.debug(
        "Daily updated: id=%s user_id=%s date=%s first_in=%s last_out=%s hours=%s",
        daily.id, daily.user_id, daily.date, daily.first_in, daily.last_out, daily.total_work_hours,
    )
    return daily


def list_daily(
    db: Session,
    *,
    user_id: int,
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
) -> List[AttendanceDaily]:
    query = db.query(AttendanceDaily).filter(AttendanceDaily.user_id == user_id)
    if from_date:
        query = query.filter(AttendanceDaily.date >= from_date)
    if to_date:
        query = query.filter(AttendanceDaily.date <= to_date)
    return query.order_by(AttendanceDaily.date.desc()).all()
