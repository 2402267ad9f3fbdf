"""
Attendance machine model: a biometric terminal and its push credential
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Enum as SQLEnum
from sqlalchemy.orm import deferred, relationship
from sqlalchemy.sql import func

from app.db.base import Base, enum_values


class MachineStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class ProviderType(str, enum.Enum):
    GENERIC = "generic"
    ZKTECO = "zkteco"
    HIKVISION = "hikvision"
    ESSL = "essl"


class AttendanceMachine(Base):
    __tablename__ = "attendance_machines"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    serial_number = Column(String, unique=True, nullable=False, index=True)
    provider_type = Column(
        SQLEnum(ProviderType, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=ProviderType.GENERIC,
    )
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    # Secret: deferred so ordinary queries never load it, compare via undefer()
    api_key = deferred(Column(String(80), unique=True, nullable=False))
    status = Column(
        SQLEnum(MachineStatus, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=MachineStatus.ACTIVE,
    )
    timezone = Column(String, nullable=False, default="Asia/Kolkata")  # Zone of naive device timestamps
    ip_address = Column(String, nullable=True)
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)
    sync_count = Column(Integer, nullable=False, default=0)
    total_logs = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    organization = relationship("Organization")
    branch = relationship("Branch")
