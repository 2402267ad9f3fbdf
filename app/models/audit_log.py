"""
Audit log model: one row per state-changing action, written in the same
transaction as the change
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Index
from app.db.base import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    action = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=True)
    meta_json = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)  # Set by log_audit, UTC

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )
