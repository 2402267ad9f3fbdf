"""
Tests for the scoped transaction helper
"""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.errors import TransientError
from app.db.transaction import is_transient_error, run_in_transaction
from app.models.organization import Organization


def _locked():
    return OperationalError("UPDATE attendance_daily", {}, Exception("database is locked"))


def _duplicate():
    return IntegrityError("INSERT INTO attendance_logs", {}, Exception("UNIQUE constraint failed"))


class _SerializationFailure(Exception):
    pgcode = "40001"


def test_commits_result_of_work(db):
    def work(session):
        org = Organization(name="Committed Org", active=True)
        session.add(org)
        session.flush()
        return org.id

    org_id = run_in_transaction(db, work, ctx="test_commit")

    db.expire_all()
    assert db.query(Organization).filter(Organization.id == org_id).count() == 1


def test_retries_transient_error_then_succeeds(db):
    calls = []

    def work(session):
        calls.append(1)
        session.add(Organization(name=f"Attempt {len(calls)}", active=True))
        if len(calls) == 1:
            raise _locked()
        return "done"

    assert run_in_transaction(db, work, max_retries=3) == "done"
    assert len(calls) == 2
    # The failed attempt was rolled back before the retry
    assert [o.name for o in db.query(Organization).all()] == ["Attempt 2"]


def test_gives_up_with_transient_error(db):
    calls = []

    def work(session):
        calls.append(1)
        raise _locked()

    with pytest.raises(TransientError) as exc_info:
        run_in_transaction(db, work, max_retries=2, ctx="always_locked")

    assert len(calls) == 2
    assert exc_info.value.status_code == 503
    assert exc_info.value.kind == "transient"
    assert "always_locked" in exc_info.value.detail


def test_non_transient_error_propagates_after_rollback(db):
    calls = []

    def work(session):
        calls.append(1)
        session.add(Organization(name="Never Stored", active=True))
        session.flush()
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        run_in_transaction(db, work, max_retries=3)

    assert len(calls) == 1
    assert db.query(Organization).count() == 0


def test_integrity_error_not_retried_by_default(db):
    calls = []

    def work(session):
        calls.append(1)
        raise _duplicate()

    with pytest.raises(IntegrityError):
        run_in_transaction(db, work, max_retries=3)
    assert len(calls) == 1


def test_integrity_error_retried_when_opted_in(db):
    calls = []

    def work(session):
        calls.append(1)
        if len(calls) < 3:
            raise _duplicate()
        return len(calls)

    result = run_in_transaction(
        db, work, max_retries=3, retry_on=(OperationalError, IntegrityError),
    )
    assert result == 3


def test_is_transient_error_classification():
    retry_on = (OperationalError,)

    assert is_transient_error(_locked(), retry_on) is True
    assert is_transient_error(OperationalError("SELECT 1", {}, _SerializationFailure("retry")), retry_on) is True
    assert is_transient_error(OperationalError("SELECT 1", {}, Exception("no such table: x")), retry_on) is False
    assert is_transient_error(_duplicate(), retry_on) is False
    assert is_transient_error(_duplicate(), (OperationalError, IntegrityError)) is True
    assert is_transient_error(ValueError("nope"), retry_on) is False
