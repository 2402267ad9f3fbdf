"""
Holiday calendar model
"""
from sqlalchemy import Column, Integer, Date, DateTime, String, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.db.base import Base


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)  # NULL = organization-wide
    date = Column(Date, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    __table_args__ = (
        UniqueConstraint('organization_id', 'branch_id', 'date', name='uq_holiday_org_branch_date'),
    )
