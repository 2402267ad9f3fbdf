"""
Tests for listing and reconciling orphan device punches
"""
from fastapi import status

from app.models.attendance import AttendanceLog, ProcessingStatus
from app.models.attendance_daily import AttendanceDaily
from app.tests.factories import MACHINE_KEY, auth_headers, days_ago, make_employee


def _push_orphan(client, day, clock="09:00:00", user_id="7777"):
    response = client.post(
        "/api/v1/attendance/machine/push",
        json={"userId": user_id, "timestamp": f"{day.isoformat()}T{clock}", "status": 0},
        headers={"x-machine-api-key": MACHINE_KEY},
    )
    assert response.json()["orphaned"] == 1
    return response


def _orphans(client, user, **params):
    return client.get("/api/v1/attendance/logs/orphans", params=params, headers=auth_headers(user))


def test_hr_lists_orphans_oldest_first(client, machine, hr_user):
    _push_orphan(client, days_ago(1), user_id="7777")
    _push_orphan(client, days_ago(2), user_id="8888")

    response = _orphans(client, hr_user)

    assert response.status_code == status.HTTP_200_OK
    assert [log["raw_user_id"] for log in response.json()] == ["8888", "7777"]
    assert all(log["processing_status"] == "orphan" for log in response.json())
    assert all(log["user_id"] is None for log in response.json())


def test_orphan_list_filters(client, machine, hr_user):
    _push_orphan(client, days_ago(1), user_id="7777")
    _push_orphan(client, days_ago(1), clock="10:00:00", user_id="8888")

    by_device_user = _orphans(client, hr_user, raw_user_id="8888").json()
    by_machine = _orphans(client, hr_user, machine_id=machine.id + 1).json()

    assert [log["raw_user_id"] for log in by_device_user] == ["8888"]
    assert by_machine == []


def test_employees_cannot_list_orphans(client, employee):
    assert _orphans(client, employee).status_code == status.HTTP_403_FORBIDDEN


def test_reconcile_attributes_punch_and_updates_daily(client, db, machine, hr_user, employee, notifier):
    day = days_ago(1)
    _push_orphan(client, day)
    orphan = db.query(AttendanceLog).one()

    response = client.post(
        f"/api/v1/attendance/logs/{orphan.id}/reconcile",
        json={"user_id": employee.id},
        headers=auth_headers(hr_user),
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    resolved_id = data["log"]["id"]
    assert resolved_id != orphan.id
    assert data["log"]["user_id"] == employee.id
    assert data["log"]["processing_status"] == "processed"
    assert data["log"]["raw_user_id"] == "7777"
    assert data["log"]["timestamp"] == f"{day.isoformat()}T09:00:00+05:30"
    assert data["daily"]["logs"] == [resolved_id]
    assert data["daily"]["date"] == day.isoformat()

    db.refresh(orphan)
    assert orphan.processing_status == ProcessingStatus.ORPHAN
    assert orphan.user_id is None
    assert orphan.corrected_by_log_id == resolved_id
    assert db.query(AttendanceDaily).filter(AttendanceDaily.user_id == employee.id).count() == 1

    assert _orphans(client, hr_user).json() == []
    assert any(t == f"user:{employee.id}" for t, _, _ in notifier.events)


def test_reconciling_twice_conflicts(client, db, machine, hr_user, employee):
    _push_orphan(client, days_ago(1))
    orphan = db.query(AttendanceLog).one()
    url = f"/api/v1/attendance/logs/{orphan.id}/reconcile"
    assert client.post(url, json={"user_id": employee.id}, headers=auth_headers(hr_user)).status_code == 200

    response = client.post(url, json={"user_id": employee.id}, headers=auth_headers(hr_user))

    assert response.status_code == status.HTTP_409_CONFLICT


def test_reconcile_to_employee_of_other_organization_not_found(client, db, machine, hr_user, other_organization):
    outsider = make_employee(db, other_organization, "OUT002")
    _push_orphan(client, days_ago(1))
    orphan = db.query(AttendanceLog).one()

    response = client.post(
        f"/api/v1/attendance/logs/{orphan.id}/reconcile",
        json={"user_id": outsider.id},
        headers=auth_headers(hr_user),
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_reconcile_processed_log_conflicts(client, db, machine, hr_user, employee):
    client.post(
        "/api/v1/attendance/machine/push",
        json={"userId": "1001", "timestamp": f"{days_ago(1).isoformat()}T09:00:00", "status": 0},
        headers={"x-machine-api-key": MACHINE_KEY},
    )
    log = db.query(AttendanceLog).one()

    response = client.post(
        f"/api/v1/attendance/logs/{log.id}/reconcile",
        json={"user_id": employee.id},
        headers=auth_headers(hr_user),
    )

    assert response.status_code == status.HTTP_409_CONFLICT
