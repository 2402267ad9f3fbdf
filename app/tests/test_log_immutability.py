"""
Attendance logs are insert-only apart from the correction back-link
"""
import pytest

from app.models.attendance import AttendanceLog, ImmutableLogError, LogType
from app.services.attendance_log_service import record_punch
from app.tests.factories import days_ago, local_dt


@pytest.fixture
def log(db, employee):
    log, _ = record_punch(db, employee, log_type=LogType.IN, now=local_dt(days_ago(1), 9))
    return log


@pytest.mark.parametrize(
    "field, value",
    [
        ("type", LogType.OUT),
        ("timestamp", local_dt(days_ago(1), 8)),
        ("raw_user_id", "9999"),
    ],
)
def test_rewriting_a_log_is_refused(db, log, field, value):
    setattr(log, field, value)

    with pytest.raises(ImmutableLogError, match=field):
        db.flush()
    db.rollback()

    db.refresh(log)
    assert log.type == LogType.IN
    assert log.raw_user_id is None


def test_back_link_may_be_set(db, employee, log):
    replacement, _ = record_punch(db, employee, log_type=LogType.IN, now=local_dt(days_ago(1), 8, 50))

    log.corrected_by_log_id = replacement.id
    db.commit()

    stored = db.query(AttendanceLog).filter(AttendanceLog.id == log.id).one()
    assert stored.corrected_by_log_id == replacement.id
