"""
Holiday calendar service - business logic for holiday management
"""
from datetime import date
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from app.core.errors import ConflictError, NotFoundError
from app.models.employee import Employee
from app.models.holiday import Holiday
from app.services.audit_service import log_audit
from app.utils.datetime_utils import now_utc


def create_holiday(
    db: Session,
    actor: Employee,
    holiday_date: date,
    name: str,
    branch_id: Optional[int] = None,
    active: bool = True,
) -> Holiday:
    """
    Create a new holiday for the actor's organization

    Args:
        db: Database session
        actor: Employee creating the holiday
        holiday_date: Holiday date
        name: Holiday name
        branch_id: Restrict to one branch (None = organization-wide)
        active: Whether holiday is active

    Returns:
        Created Holiday instance

    Raises:
        ConflictError: A holiday already exists for that date and scope
    """
    existing = db.query(Holiday).filter(
        Holiday.organization_id == actor.organization_id,
        Holiday.date == holiday_date,
        Holiday.branch_id.is_(None) if branch_id is None else Holiday.branch_id == branch_id,
    ).first()
    if existing:
        raise ConflictError(detail=f"Holiday already exists for date {holiday_date}")

    # Explicitly set created_at/updated_at to avoid SQLite issues with server_default
    now = now_utc()
    holiday = Holiday(
        organization_id=actor.organization_id,
        branch_id=branch_id,
        date=holiday_date,
        name=name,
        active=active,
        created_at=now,
        updated_at=now,
    )
    db.add(holiday)
    db.flush()
    log_audit(
        db=db,
        actor_id=actor.id,
        action="HOLIDAY_CREATE",
        entity_type="holidays",
        entity_id=holiday.id,
        meta={"date": holiday_date, "name": name, "branch_id": branch_id},
    )
    db.commit()
    db.refresh(holiday)
    return holiday


def list_holidays(
    db: Session,
    organization_id: int,
    year: Optional[int] = None,
    active_only: bool = False,
) -> List[Holiday]:
    query = db.query(Holiday).filter(Holiday.organization_id == organization_id)
    if year:
        query = query.filter(Holiday.date >= date(year, 1, 1), Holiday.date <= date(year, 12, 31))
    if active_only:
        query = query.filter(Holiday.active.is_(True))
    return query.order_by(Holiday.date).all()


def update_holiday(
    db: Session,
    holiday_id: int,
    actor: Employee,
    name: Optional[str] = None,
    active: Optional[bool] = None,
) -> Holiday:
    holiday = db.query(Holiday).filter(
        Holiday.id == holiday_id,
        Holiday.organization_id == actor.organization_id,
    ).first()
    if not holiday:
        raise NotFoundError(detail=f"Holiday with id {holiday_id} not found")

    if name is not None:
        holiday.name = name
    if active is not None:
        holiday.active = active
    # Explicitly update updated_at for SQLite compatibility
    holiday.updated_at = now_utc()

    log_audit(
        db=db,
        actor_id=actor.id,
        action="HOLIDAY_UPDATE",
        entity_type="holidays",
        entity_id=holiday.id,
        meta={"name": name, "active": active},
    )
    db.commit()
    db.refresh(holiday)
    return holiday


def holiday_branches_on(db: Session, organization_id: int, on_date: date) -> Set[Optional[int]]:
    """
    Branch ids with an active holiday on ``on_date``; None in the set means
    the holiday applies to the whole organization.
    """
    rows = db.query(Holiday.branch_id).filter(
        Holiday.organization_id == organization_id,
        Holiday.date == on_date,
        Holiday.active.is_(True),
    ).all()
    return {branch_id for (branch_id,) in rows}


def is_holiday_for(holiday_branches: Set[Optional[int]], branch_id: Optional[int]) -> bool:
    return None in holiday_branches or (branch_id is not None and branch_id in holiday_branches)
