"""
Tests for machine registration and key management
"""
from fastapi import status

from app.models.audit_log import AuditLog
from app.models.employee import Role
from app.models.organization import Branch
from app.tests.factories import auth_headers, days_ago, make_employee

BASE = "/api/v1/attendance/machines"


def _create(client, admin, **overrides):
    body = {"name": "Lobby", "serial_number": "ZK-100", "provider_type": "zkteco"}
    body.update(overrides)
    return client.post(BASE, json=body, headers=auth_headers(admin))


def _punch(client, api_key):
    return client.post(
        "/api/v1/attendance/machine/push",
        json={"userId": "1001", "timestamp": f"{days_ago(1).isoformat()}T09:00:00", "status": 0},
        headers={"x-machine-api-key": api_key},
    )


def test_create_machine_returns_key_once(client, db, admin, organization):
    response = _create(client, admin)

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["api_key"].startswith("mch_")
    assert len(data["api_key"]) == 68
    assert data["organization_id"] == organization.id
    assert data["status"] == "active"
    assert data["provider_type"] == "zkteco"
    assert data["timezone"] == "Asia/Kolkata"
    assert data["sync_count"] == 0

    listing = client.get(BASE, headers=auth_headers(admin))
    assert listing.status_code == status.HTTP_200_OK
    assert [m["serial_number"] for m in listing.json()] == ["ZK-100"]
    assert "api_key" not in listing.json()[0]

    assert db.query(AuditLog).filter(AuditLog.action == "MACHINE_CREATE").count() == 1


def test_new_key_authenticates_pushes(client, admin, employee):
    api_key = _create(client, admin).json()["api_key"]

    response = _punch(client, api_key)

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["processed"] == 1


def test_duplicate_serial_conflicts(client, admin):
    assert _create(client, admin).status_code == status.HTTP_201_CREATED

    response = _create(client, admin, name="Second Lobby")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["kind"] == "conflict"


def test_unknown_timezone_rejected(client, admin):
    response = _create(client, admin, timezone="Atlantis/Central")
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_branch_of_other_organization_rejected(client, db, admin, other_organization):
    foreign = Branch(organization_id=other_organization.id, name="Elsewhere", active=True)
    db.add(foreign)
    db.commit()

    response = _create(client, admin, branch_id=foreign.id)

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_rotate_key_invalidates_old_key(client, admin, employee):
    created = _create(client, admin).json()
    old_key = created["api_key"]

    rotated = client.post(f"{BASE}/{created['id']}/rotate-key", headers=auth_headers(admin))

    assert rotated.status_code == status.HTTP_200_OK
    new_key = rotated.json()["api_key"]
    assert new_key != old_key
    assert _punch(client, old_key).status_code == status.HTTP_401_UNAUTHORIZED
    assert _punch(client, new_key).status_code == status.HTTP_200_OK


def test_deactivated_machine_cannot_push(client, admin, employee):
    created = _create(client, admin).json()

    response = client.patch(
        f"{BASE}/{created['id']}",
        json={"status": "inactive", "name": "Lobby (retired)"},
        headers=auth_headers(admin),
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "inactive"
    assert response.json()["name"] == "Lobby (retired)"
    assert "api_key" not in response.json()
    assert _punch(client, created["api_key"]).status_code == status.HTTP_401_UNAUTHORIZED


def test_machines_of_other_organization_are_hidden(client, db, admin, other_organization):
    other_admin = make_employee(db, other_organization, "OADM02", role=Role.ADMIN)
    created = _create(client, admin).json()

    assert client.get(BASE, headers=auth_headers(other_admin)).json() == []
    response = client.patch(
        f"{BASE}/{created['id']}", json={"status": "inactive"}, headers=auth_headers(other_admin),
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_hr_cannot_manage_machines(client, hr_user):
    response = client.post(
        BASE,
        json={"name": "Lobby", "serial_number": "ZK-200"},
        headers=auth_headers(hr_user),
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
