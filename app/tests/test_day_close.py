"""
Tests for settling a finished work date
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi import status

from app.core.errors import ValidationFailed
from app.models.attendance import LogType
from app.models.attendance_daily import AttendanceDaily, DailyStatus
from app.models.audit_log import AuditLog
from app.services.attendance_log_service import record_punch
from app.services.day_close_service import close_day
from app.services.holiday_service import create_holiday
from app.tests.factories import (
    auth_headers,
    last_weekday_before_today,
    last_working_day,
    local_dt,
    make_employee,
)
from app.utils.datetime_utils import today_local


def _daily(db, user, day):
    return (
        db.query(AttendanceDaily)
        .filter(AttendanceDaily.user_id == user.id, AttendanceDaily.date == day)
        .one()
    )


def _work(db, user, day, start=9, end=18):
    record_punch(db, user, log_type=LogType.IN, now=local_dt(day, start))
    record_punch(db, user, log_type=LogType.OUT, now=local_dt(day, end))


def test_day_without_punches_becomes_absent(db, organization, employee, manager):
    day = last_working_day()

    counts = close_day(db, organization.id, day)

    assert counts == {"absent": 2}
    daily = _daily(db, employee, day)
    assert daily.status == DailyStatus.ABSENT
    assert daily.payout_multiplier == Decimal("0.0")
    assert daily.logs == []


def test_worked_day_is_left_alone(db, organization, employee, manager):
    day = last_working_day()
    _work(db, employee, day)

    counts = close_day(db, organization.id, day)

    assert counts == {"absent": 1}
    assert _daily(db, employee, day).status == DailyStatus.PRESENT


def test_punch_in_without_punch_out_is_missed_punch(db, organization, employee, manager):
    day = last_working_day()
    record_punch(db, employee, log_type=LogType.IN, now=local_dt(day, 9))

    counts = close_day(db, organization.id, day)

    assert counts == {"missed_punch": 1, "absent": 1}
    daily = _daily(db, employee, day)
    assert daily.status == DailyStatus.MISSED_PUNCH
    assert daily.payout_multiplier == Decimal("1.0")


def test_organization_holiday(db, organization, employee, manager, hr_user):
    day = last_working_day()
    create_holiday(db, hr_user, day, "Founders Day")
    _work(db, employee, day)

    counts = close_day(db, organization.id, day)

    assert counts == {"holiday_work": 1, "holiday": 2}
    worked = _daily(db, employee, day)
    assert worked.status == DailyStatus.HOLIDAY_WORK
    assert worked.payout_multiplier == Decimal("2.0")
    rested = _daily(db, manager, day)
    assert rested.status == DailyStatus.HOLIDAY
    assert rested.payout_multiplier == Decimal("1.0")


def test_branch_holiday_applies_to_that_branch_only(db, organization, branch, employee, manager, hr_user):
    day = last_working_day()
    employee.branch_id = branch.id
    db.commit()
    create_holiday(db, hr_user, day, "Local Festival", branch_id=branch.id)

    counts = close_day(db, organization.id, day)

    assert counts == {"holiday": 1, "absent": 2}
    assert _daily(db, employee, day).status == DailyStatus.HOLIDAY
    assert _daily(db, manager, day).status == DailyStatus.ABSENT


def test_inactive_holiday_is_ignored(db, organization, employee, manager, hr_user):
    day = last_working_day()
    create_holiday(db, hr_user, day, "Cancelled Holiday", active=False)

    counts = close_day(db, organization.id, day)

    assert counts == {"absent": 3}


def test_weekly_off(db, organization, employee, manager):
    sunday = last_weekday_before_today(6)
    _work(db, employee, sunday, 10, 14)

    counts = close_day(db, organization.id, sunday)

    assert counts == {"week_off_work": 1, "week_off": 1}
    assert _daily(db, employee, sunday).payout_multiplier == Decimal("2.0")
    assert _daily(db, manager, sunday).status == DailyStatus.WEEK_OFF


def test_shift_weekly_offs_are_used(db, organization, employee, manager, day_shift):
    saturday = last_weekday_before_today(5)
    day_shift.weekly_offs = [5, 6]
    employee.shift_id = day_shift.id
    db.commit()

    counts = close_day(db, organization.id, saturday)

    assert counts == {"week_off": 1, "absent": 1}
    assert _daily(db, employee, saturday).status == DailyStatus.WEEK_OFF


def test_rerun_is_idempotent(db, organization, employee, manager):
    day = last_working_day()
    record_punch(db, employee, log_type=LogType.IN, now=local_dt(day, 9))
    close_day(db, organization.id, day)

    assert close_day(db, organization.id, day) == {}
    assert db.query(AttendanceDaily).filter(AttendanceDaily.date == day).count() == 2
    assert db.query(AuditLog).filter(AuditLog.action == "ATTENDANCE_DAY_CLOSE").count() == 2


def test_new_joiners_and_inactive_employees_are_skipped(db, organization, employee, manager):
    day = last_working_day()
    make_employee(db, organization, "NEW001", join_date=today_local())
    make_employee(db, organization, "GONE01", active=False)

    counts = close_day(db, organization.id, day)

    assert counts == {"absent": 2}


def test_other_organizations_are_untouched(db, organization, other_organization, employee, manager):
    outsider = make_employee(db, other_organization, "OUT001")

    close_day(db, organization.id, last_working_day())

    assert db.query(AttendanceDaily).filter(AttendanceDaily.user_id == outsider.id).count() == 0


def test_future_date_rejected(db, organization):
    with pytest.raises(ValidationFailed):
        close_day(db, organization.id, today_local() + timedelta(days=1))


def test_close_endpoint(client, organization, employee, manager, hr_user):
    day = last_working_day()

    response = client.post(
        "/api/v1/attendance/daily/close",
        json={"date": day.isoformat()},
        headers=auth_headers(hr_user),
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["date"] == day.isoformat()
    assert data["organization_id"] == organization.id
    assert data["counts"] == {"absent": 3}


def test_close_endpoint_requires_hr(client, employee):
    response = client.post(
        "/api/v1/attendance/daily/close",
        json={"date": last_working_day().isoformat()},
        headers=auth_headers(employee),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
