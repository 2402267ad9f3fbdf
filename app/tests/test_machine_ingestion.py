"""
Tests for biometric device pushes
"""
from decimal import Decimal

import pytest
from fastapi import status

from app.core.config import settings
from app.core.constants import EVENT_MACHINE_SYNCED, EVENT_PUNCH
from app.models.attendance import AttendanceLog, LogType, ProcessingStatus
from app.models.attendance_daily import AttendanceDaily
from app.models.attendance_machine import AttendanceMachine, MachineStatus, ProviderType
from app.services.machine_service import device_event_key, map_log_type, normalize_payload
from app.tests.factories import MACHINE_KEY, days_ago, local_dt, make_employee
from app.utils.datetime_utils import ensure_utc

PUSH_URL = "/api/v1/attendance/machine/push"
KEY_HEADER = {"x-machine-api-key": MACHINE_KEY}


def _entry(day, clock, status_code, user_id="1001", **extra):
    return {"userId": user_id, "timestamp": f"{day.isoformat()}T{clock}", "status": status_code, **extra}


def _push(client, payload, headers=KEY_HEADER):
    return client.post(PUSH_URL, json=payload, headers=headers)


def test_out_of_order_batch_builds_min_max_daily(client, db, employee, machine):
    day = days_ago(2)
    batch = [
        _entry(day, "18:05:00", 1),
        _entry(day, "09:02:00", 0),
        _entry(day, "13:00:00", 0),
    ]

    response = _push(client, batch)

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "success"
    assert data["synced"] == 3
    assert data["processed"] == 3
    assert data["orphaned"] == 0
    assert data["duplicates"] == 0
    assert data["machine"] == {"id": machine.id, "name": "Main Gate", "serial_number": "SN-0001"}

    daily = (
        db.query(AttendanceDaily)
        .filter(AttendanceDaily.user_id == employee.id, AttendanceDaily.date == day)
        .one()
    )
    assert ensure_utc(daily.first_in) == local_dt(day, 9, 2)
    assert ensure_utc(daily.last_out) == local_dt(day, 18, 5)
    assert daily.total_work_hours == Decimal("9.05")
    assert len(daily.logs) == 3


def test_redelivered_batch_is_counted_as_duplicates(client, db, employee, machine):
    day = days_ago(2)
    batch = [_entry(day, "09:00:00", 0), _entry(day, "18:00:00", 1), _entry(day, "12:00:00", 2)]
    assert _push(client, batch).json()["synced"] == 3

    again = _push(client, batch).json()

    assert again["synced"] == 0
    assert again["duplicates"] == 3
    assert db.query(AttendanceLog).count() == 3
    daily = db.query(AttendanceDaily).filter(AttendanceDaily.user_id == employee.id).one()
    assert len(daily.logs) == 3


def test_repeated_entry_within_one_batch_stored_once(client, db, employee, machine):
    entry = _entry(days_ago(1), "09:00:00", 0)

    data = _push(client, [entry, dict(entry)]).json()

    assert data["synced"] == 1
    assert data["duplicates"] == 1


def test_device_sequence_distinguishes_same_second_punches(client, db, employee, machine):
    day = days_ago(1)
    batch = [_entry(day, "09:00:00", 0, seq=101), _entry(day, "09:00:00", 0, seq=102)]

    data = _push(client, batch).json()

    assert data["synced"] == 2
    keys = sorted(k for (k,) in db.query(AttendanceLog.device_event_key).all())
    assert keys == [f"{machine.id}:1001:101", f"{machine.id}:1001:102"]


def test_unknown_device_user_becomes_orphan(client, db, employee, machine):
    data = _push(client, _entry(days_ago(1), "09:00:00", 0, user_id="9999")).json()

    assert data["synced"] == 1
    assert data["orphaned"] == 1
    assert data["processed"] == 0
    log = db.query(AttendanceLog).one()
    assert log.user_id is None
    assert log.raw_user_id == "9999"
    assert log.processing_status == ProcessingStatus.ORPHAN
    assert db.query(AttendanceDaily).count() == 0


def test_employee_of_other_organization_is_not_matched(client, db, other_organization, machine):
    make_employee(db, other_organization, "X001", machine_user_id="2002")

    data = _push(client, _entry(days_ago(1), "09:00:00", 0, user_id="2002")).json()

    assert data["orphaned"] == 1


def test_single_object_body_accepted(client, employee, machine):
    data = _push(client, _entry(days_ago(1), "09:00:00", 0)).json()
    assert data["synced"] == 1
    assert data["processed"] == 1


def test_invalid_entries_are_skipped(client, db, employee, machine):
    day = days_ago(1)
    batch = [
        {"userId": "1001"},
        {"timestamp": f"{day.isoformat()}T09:00:00", "status": 0},
        {"userId": "1001", "timestamp": "yesterday-ish", "status": 0},
        "not-an-object",
        _entry(day, "09:00:00", 0),
    ]

    data = _push(client, batch).json()

    assert data["skipped"] == 4
    assert data["synced"] == 1


def test_non_collection_body_rejected(client, machine):
    response = _push(client, "hello")
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_utc_timestamps_are_kept_as_sent(client, db, employee, machine):
    day = days_ago(1)
    data = _push(client, {"userId": "1001", "timestamp": f"{day.isoformat()}T03:30:00Z", "status": 0}).json()

    assert data["synced"] == 1
    log = db.query(AttendanceLog).one()
    assert ensure_utc(log.timestamp) == local_dt(day, 9, 0)


def test_missing_api_key_rejected(client, machine):
    response = _push(client, _entry(days_ago(1), "09:00:00", 0), headers={})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["kind"] == "unauthorized"


def test_wrong_api_key_rejected(client, db, machine):
    response = _push(client, _entry(days_ago(1), "09:00:00", 0), headers={"x-machine-api-key": "mch_wrong"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert db.query(AttendanceLog).count() == 0


@pytest.mark.parametrize("machine_status", [MachineStatus.INACTIVE, MachineStatus.MAINTENANCE])
def test_inactive_machine_rejected(client, db, machine, machine_status):
    machine.status = machine_status
    db.commit()

    response = _push(client, _entry(days_ago(1), "09:00:00", 0))

    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_push_updates_machine_counters(client, db, employee, machine):
    day = days_ago(1)
    _push(client, [_entry(day, "09:00:00", 0), _entry(day, "18:00:00", 1)])
    _push(client, [_entry(day, "09:00:00", 0), _entry(day, "12:00:00", 2)])

    db.expire_all()
    stored = db.query(AttendanceMachine).filter(AttendanceMachine.id == machine.id).one()
    assert stored.sync_count == 2
    assert stored.total_logs == 3
    assert stored.last_sync_at is not None
    assert stored.last_seen_at is not None
    assert stored.last_error is None


def test_push_notifies_employee_and_organization(client, employee, machine, organization, notifier):
    day = days_ago(1)
    batch = [_entry(day, "09:00:00", 0), _entry(day, "09:01:00", 0, user_id="9999")]

    _push(client, batch)

    assert [t for t, _, _ in notifier.for_event(EVENT_PUNCH)] == [f"user:{employee.id}"]
    synced = notifier.for_event(EVENT_MACHINE_SYNCED)
    assert len(synced) == 1
    target, _, payload = synced[0]
    assert target == f"org:{organization.id}"
    assert payload["machine_id"] == machine.id
    assert payload["synced"] == 2
    assert payload["orphaned"] == 1


def test_zkteco_overtime_codes(client, db, employee, machine):
    machine.provider_type = ProviderType.ZKTECO
    db.commit()
    day = days_ago(1)

    _push(client, [_entry(day, "19:00:00", 4), _entry(day, "22:00:00", 5)])

    types = [log.type for log in db.query(AttendanceLog).order_by(AttendanceLog.timestamp).all()]
    assert types == [LogType.IN, LogType.OUT]


def test_map_log_type_tables():
    assert map_log_type(0) == LogType.IN
    assert map_log_type("1") == LogType.OUT
    assert map_log_type(" CheckOut ") == LogType.OUT
    assert map_log_type("4", ProviderType.ZKTECO) == LogType.IN
    assert map_log_type("5", ProviderType.ZKTECO) == LogType.OUT
    assert map_log_type("4", ProviderType.GENERIC) == LogType.UNKNOWN
    assert map_log_type("exit", ProviderType.HIKVISION) == LogType.OUT
    assert map_log_type("99") == LogType.UNKNOWN
    assert map_log_type(None) == LogType.UNKNOWN


def test_map_log_type_call_overrides_win():
    assert map_log_type("15", ProviderType.ZKTECO, {"15": "in"}) == LogType.IN
    assert map_log_type("0", ProviderType.ZKTECO, {"0": "out"}) == LogType.OUT
    # Invalid override targets fall back to the built-in table
    assert map_log_type("1", ProviderType.GENERIC, {"1": "sideways"}) == LogType.OUT


def test_map_log_type_configured_overrides(monkeypatch):
    monkeypatch.setattr(settings, "MACHINE_STATUS_OVERRIDES", '{"ESSL": {"8": "break_start"}}')

    assert map_log_type("8", ProviderType.ESSL) == LogType.BREAK_START
    assert map_log_type("8", ProviderType.GENERIC) == LogType.UNKNOWN
    assert map_log_type("8", ProviderType.ESSL, {"8": "in"}) == LogType.IN


def test_normalize_payload_shapes():
    assert normalize_payload(None) == []
    assert normalize_payload({"userId": "1"}) == [{"userId": "1"}]
    assert normalize_payload([{"a": 1}, {"b": 2}]) == [{"a": 1}, {"b": 2}]


def test_device_event_key_prefers_sequence():
    ts = local_dt(days_ago(1), 9)
    assert device_event_key(7, "1001", 55, ts) == "7:1001:55"
    assert device_event_key(7, "1001", None, ts) == f"7:1001:{ts.isoformat()}"
