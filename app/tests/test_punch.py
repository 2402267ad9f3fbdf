"""
Tests for self-service punches and Daily listing
"""
from fastapi import status

from app.core.constants import EVENT_PUNCH
from app.models.attendance import LogType
from app.services.attendance_log_service import record_punch
from app.tests.factories import auth_headers, days_ago, local_dt, make_employee
from app.utils.datetime_utils import today_local


def test_punch_in_creates_log_and_daily(client, employee, notifier):
    response = client.post(
        "/api/v1/attendance/punch",
        json={"type": "in", "metadata": {"device": "browser"}},
        headers=auth_headers(employee),
    )

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["log"]["type"] == "in"
    assert data["log"]["source"] == "web"
    assert data["log"]["user_id"] == employee.id
    assert data["log"]["processing_status"] == "processed"
    assert data["log"]["timestamp"].endswith("+05:30")
    assert data["daily"]["date"] == today_local().isoformat()
    assert data["daily"]["first_in"] == data["log"]["timestamp"]
    assert data["daily"]["last_out"] is None
    assert data["daily"]["status"] == "present"
    assert data["daily"]["logs"] == [data["log"]["id"]]
    assert [t for t, _, _ in notifier.for_event(EVENT_PUNCH)] == [f"user:{employee.id}"]


def test_punch_out_extends_same_daily(client, employee):
    first = client.post("/api/v1/attendance/punch", json={"type": "in"}, headers=auth_headers(employee)).json()

    second = client.post(
        "/api/v1/attendance/punch",
        json={"type": "out", "source": "mobile"},
        headers=auth_headers(employee),
    ).json()

    assert second["daily"]["id"] == first["daily"]["id"]
    assert second["daily"]["logs"] == [first["log"]["id"], second["log"]["id"]]
    assert second["daily"]["last_out"] == second["log"]["timestamp"]
    assert second["log"]["source"] == "mobile"


def test_punch_rejects_device_only_sources(client, employee):
    for source in ("machine", "admin_manual"):
        response = client.post(
            "/api/v1/attendance/punch",
            json={"type": "in", "source": source},
            headers=auth_headers(employee),
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_punch_rejects_unknown_type(client, employee):
    response = client.post("/api/v1/attendance/punch", json={"type": "unknown"}, headers=auth_headers(employee))
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_list_own_daily_records(client, db, employee):
    for n in (1, 2, 3):
        record_punch(db, employee, log_type=LogType.IN, now=local_dt(days_ago(n), 9))

    everything = client.get("/api/v1/attendance/daily", headers=auth_headers(employee))
    window = client.get(
        "/api/v1/attendance/daily",
        params={"from_date": days_ago(2).isoformat(), "to_date": days_ago(1).isoformat()},
        headers=auth_headers(employee),
    )

    assert [d["date"] for d in everything.json()] == [days_ago(n).isoformat() for n in (1, 2, 3)]
    assert [d["date"] for d in window.json()] == [days_ago(1).isoformat(), days_ago(2).isoformat()]


def test_inverted_date_range_rejected(client, employee):
    response = client.get(
        "/api/v1/attendance/daily",
        params={"from_date": days_ago(1).isoformat(), "to_date": days_ago(2).isoformat()},
        headers=auth_headers(employee),
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_other_employee_daily_records_need_hr(client, db, employee, manager, hr_user, other_organization):
    record_punch(db, employee, log_type=LogType.IN, now=local_dt(days_ago(1), 9))
    outsider = make_employee(db, other_organization, "OUT003")

    as_manager = client.get(
        "/api/v1/attendance/daily", params={"employee_id": employee.id}, headers=auth_headers(manager),
    )
    as_hr = client.get(
        "/api/v1/attendance/daily", params={"employee_id": employee.id}, headers=auth_headers(hr_user),
    )
    across_orgs = client.get(
        "/api/v1/attendance/daily", params={"employee_id": outsider.id}, headers=auth_headers(hr_user),
    )

    assert as_manager.status_code == status.HTTP_403_FORBIDDEN
    assert as_hr.status_code == status.HTTP_200_OK
    assert [d["user_id"] for d in as_hr.json()] == [employee.id]
    assert across_orgs.status_code == status.HTTP_404_NOT_FOUND
