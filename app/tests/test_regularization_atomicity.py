"""
A failure anywhere inside a decision leaves no trace of it
"""
import pytest

from app.models.attendance import AttendanceLog, LogSource, LogType
from app.models.attendance_daily import AttendanceDaily
from app.models.attendance_request import AttendanceRequest, ApproverStatus, RequestStatus, RequestType
from app.models.audit_log import AuditLog
from app.services import regularization_service
from app.services.attendance_log_service import record_punch
from app.services.regularization_service import decide_regularization, submit_regularization
from app.tests.factories import days_ago, local_dt


class ExplodingSink:
    def notify(self, target, event, payload):
        raise ConnectionError("socket gateway down")


@pytest.fixture
def day():
    return days_ago(4)


@pytest.fixture
def pending_request(db, employee, day):
    record_punch(db, employee, log_type=LogType.IN, now=local_dt(day, 9))
    return submit_regularization(
        db,
        employee,
        target_date=day,
        request_type=RequestType.MISSED_PUNCH,
        reason="Reader did not register my exit",
        new_last_out=local_dt(day, 18),
    )


def test_failure_while_updating_daily_rolls_back_approver_decision(
    db, employee, manager, day, pending_request, monkeypatch
):
    def broken_daily(*args, **kwargs):
        raise RuntimeError("daily store unavailable")

    monkeypatch.setattr(regularization_service, "load_or_create_daily", broken_daily)

    with pytest.raises(RuntimeError, match="daily store unavailable"):
        decide_regularization(db, pending_request.id, manager, decision="approved")

    db.expire_all()
    request = db.query(AttendanceRequest).filter(AttendanceRequest.id == pending_request.id).one()
    assert request.status == RequestStatus.PENDING
    assert request.approved_by_id is None
    assert [a.status for a in request.approvers] == [ApproverStatus.PENDING]
    assert [h.action.value for h in request.history] == ["created"]
    assert request.linked_log_ids == []
    assert db.query(AttendanceLog).filter(AttendanceLog.source == LogSource.ADMIN_MANUAL).count() == 0
    assert db.query(AuditLog).filter(AuditLog.action == "REGULARIZATION_DECIDE").count() == 0

    daily = (
        db.query(AttendanceDaily)
        .filter(AttendanceDaily.user_id == employee.id, AttendanceDaily.date == day)
        .one()
    )
    assert daily.last_out is None
    assert daily.attendance_request_id is None


def test_request_can_be_decided_after_a_failed_attempt(
    db, employee, manager, day, pending_request, monkeypatch
):
    real = regularization_service.load_or_create_daily
    state = {"fail": True}

    def flaky_daily(*args, **kwargs):
        if state["fail"]:
            state["fail"] = False
            raise RuntimeError("first attempt fails")
        return real(*args, **kwargs)

    monkeypatch.setattr(regularization_service, "load_or_create_daily", flaky_daily)

    with pytest.raises(RuntimeError):
        decide_regularization(db, pending_request.id, manager, decision="approved")

    request = decide_regularization(db, pending_request.id, manager, decision="approved")

    assert request.status == RequestStatus.APPROVED
    assert len(request.linked_log_ids) == 1


def test_notification_failure_does_not_undo_commit(db, manager, pending_request):
    request = decide_regularization(
        db, pending_request.id, manager, decision="approved", notifier=ExplodingSink(),
    )

    assert request.status == RequestStatus.APPROVED
    db.expire_all()
    stored = db.query(AttendanceRequest).filter(AttendanceRequest.id == pending_request.id).one()
    assert stored.status == RequestStatus.APPROVED
