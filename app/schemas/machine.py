"""
Attendance machine schemas. The API key is only ever part of MachineWithKeyOut.
"""
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.models.attendance_machine import MachineStatus, ProviderType
from app.utils.datetime_utils import iso_local


class MachineCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Display name")
    serial_number: str = Field(..., min_length=1, description="Device serial number (unique)")
    provider_type: ProviderType = Field(default=ProviderType.GENERIC, description="Vendor status code table")
    branch_id: Optional[int] = Field(None, description="Branch the device is installed at")
    timezone: Optional[str] = Field(None, description="Zone of naive device timestamps (default ATTENDANCE_TZ)")
    ip_address: Optional[str] = None


class MachineUpdate(BaseModel):
    name: Optional[str] = None
    status: Optional[MachineStatus] = None
    provider_type: Optional[ProviderType] = None
    branch_id: Optional[int] = None
    timezone: Optional[str] = None
    ip_address: Optional[str] = None


class MachineOut(BaseModel):
    id: int
    name: str
    serial_number: str
    provider_type: ProviderType
    organization_id: int
    branch_id: Optional[int]
    status: MachineStatus
    timezone: str
    ip_address: Optional[str] = None
    last_seen_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None
    sync_count: int
    total_logs: int
    last_error: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("last_seen_at", "last_sync_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)


class MachineWithKeyOut(MachineOut):
    """Returned by create and rotate-key only"""
    api_key: str


class PushResponse(BaseModel):
    status: str = "success"
    synced: int
    processed: int
    orphaned: int
    duplicates: int
    skipped: int
    machine: Dict[str, object]
