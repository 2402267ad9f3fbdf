"""
Holiday calendar schemas
"""
from datetime import date as date_type, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_serializer, ConfigDict

from app.utils.datetime_utils import iso_local


class HolidayCreate(BaseModel):
    """Schema for creating a holiday"""
    date: date_type = Field(..., description="Holiday date")
    name: str = Field(..., description="Holiday name")
    branch_id: Optional[int] = Field(None, description="Branch the holiday applies to (omit for organization-wide)")
    active: bool = Field(True, description="Whether the holiday is active")


class HolidayUpdate(BaseModel):
    """Schema for updating a holiday"""
    name: Optional[str] = Field(None, description="Holiday name")
    active: Optional[bool] = Field(None, description="Whether the holiday is active")


class HolidayOut(BaseModel):
    """Schema for holiday output. Datetimes in ATTENDANCE_TZ."""
    id: int
    organization_id: int
    branch_id: Optional[int]
    date: date_type
    name: str
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", "updated_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt):
        return iso_local(dt)
