"""
Attendance machine management endpoints (Admin-only)
"""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_db, require_roles
from app.models.employee import Employee, Role
from app.schemas.machine import MachineCreate, MachineOut, MachineUpdate, MachineWithKeyOut
from app.services.machine_service import create_machine, list_machines, rotate_api_key, update_machine

router = APIRouter()


def _with_key(machine, api_key: str) -> MachineWithKeyOut:
    data = MachineOut.model_validate(machine).model_dump()
    return MachineWithKeyOut(**data, api_key=api_key)


@router.post("", response_model=MachineWithKeyOut, status_code=201)
async def create_machine_endpoint(
    body: MachineCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.ADMIN)),
):
    """Register a machine. The API key is shown in this response only."""
    machine, api_key = create_machine(
        db,
        current_user,
        name=body.name,
        serial_number=body.serial_number,
        provider_type=body.provider_type,
        branch_id=body.branch_id,
        timezone=body.timezone,
        ip_address=body.ip_address,
    )
    return _with_key(machine, api_key)


@router.get("", response_model=List[MachineOut])
async def list_machines_endpoint(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.ADMIN)),
):
    return list_machines(db, current_user.organization_id)


@router.patch("/{machine_id}", response_model=MachineOut)
async def update_machine_endpoint(
    machine_id: int,
    body: MachineUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.ADMIN)),
):
    """Rename, move or change the status of a machine"""
    return update_machine(
        db,
        machine_id,
        current_user,
        name=body.name,
        status=body.status,
        provider_type=body.provider_type,
        branch_id=body.branch_id,
        timezone=body.timezone,
        ip_address=body.ip_address,
    )


@router.post("/{machine_id}/rotate-key", response_model=MachineWithKeyOut)
async def rotate_machine_key(
    machine_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.ADMIN)),
):
    """Issue a new API key; the old one stops working immediately"""
    machine, api_key = rotate_api_key(db, machine_id, current_user)
    return _with_key(machine, api_key)
