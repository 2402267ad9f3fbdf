"""
Employee model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from app.db.base import Base


class Role(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR = "HR"
    ADMIN = "ADMIN"
    OWNER = "OWNER"


# Roles allowed to close any regularization and manage devices
OVERRIDE_ROLES = frozenset({Role.ADMIN.value, Role.OWNER.value})


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    emp_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.EMPLOYEE.value)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True, index=True)
    reporting_manager_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=True)
    machine_user_id = Column(String, nullable=True)  # Enrolment id on biometric terminals
    is_super_admin = Column(Boolean, default=False, nullable=False)
    password_hash = Column(String, nullable=True)
    join_date = Column(Date, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    __table_args__ = (
        UniqueConstraint("organization_id", "machine_user_id", name="uq_employee_org_machine_user"),
    )

    # Relationships
    organization = relationship("Organization")
    branch = relationship("Branch")
    shift = relationship("Shift")
    reporting_manager = relationship("Employee", remote_side=[id], backref="direct_reports")

    @property
    def has_admin_override(self) -> bool:
        """ADMIN, OWNER or super-admin: may act on any request in the organization."""
        role = self.role.value if hasattr(self.role, "value") else self.role
        return bool(self.is_super_admin) or role in OVERRIDE_ROLES
