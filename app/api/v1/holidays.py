"""
Holiday management endpoints (HR/Admin)
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user, require_roles
from app.models.employee import Role, Employee
from app.schemas.holiday import HolidayCreate, HolidayUpdate, HolidayOut
from app.services.holiday_service import (
    create_holiday,
    list_holidays,
    update_holiday
)

router = APIRouter()


@router.post("", response_model=HolidayOut, status_code=201)
async def create_holiday_endpoint(
    holiday_data: HolidayCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """Create a holiday for the current organization"""
    return create_holiday(
        db=db,
        actor=current_user,
        holiday_date=holiday_data.date,
        name=holiday_data.name,
        branch_id=holiday_data.branch_id,
        active=holiday_data.active,
    )


@router.get("", response_model=List[HolidayOut])
async def list_holidays_endpoint(
    year: Optional[int] = Query(None, description="Filter by year"),
    active_only: bool = Query(False, description="Return only active holidays"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user)
):
    """List holidays of the current organization"""
    return list_holidays(db, current_user.organization_id, year=year, active_only=active_only)


@router.patch("/{holiday_id}", response_model=HolidayOut)
async def update_holiday_endpoint(
    holiday_id: int,
    holiday_data: HolidayUpdate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(require_roles(Role.HR))
):
    """Rename or deactivate a holiday"""
    return update_holiday(
        db=db,
        holiday_id=holiday_id,
        actor=current_user,
        name=holiday_data.name,
        active=holiday_data.active,
    )
