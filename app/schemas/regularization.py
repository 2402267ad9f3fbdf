"""
Attendance regularization schemas
"""
from datetime import date as date_type, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.models.attendance_request import ApproverStatus, HistoryAction, RequestStatus, RequestType
from app.utils.datetime_utils import iso_local


class RegularizationCreate(BaseModel):
    """
    Schema for raising a regularization request.

    Times without an offset are wall-clock times in ATTENDANCE_TZ.
    """
    target_date: date_type = Field(..., description="Work date to correct")
    type: RequestType = Field(default=RequestType.MISSED_PUNCH, description="Request type")
    reason: str = Field(..., description="Justification (10-500 characters)")
    new_first_in: Optional[datetime] = Field(None, description="Proposed first punch-in")
    new_last_out: Optional[datetime] = Field(None, description="Proposed last punch-out")
    as_draft: bool = Field(False, description="Save as draft without starting approval")


class DecideRequest(BaseModel):
    """Approver decision; status is validated by the service so bad values get a 400"""
    status: str = Field(..., description="approved, rejected or forwarded")
    comments: Optional[str] = Field(None, description="Approver comments")
    rejection_reason: Optional[str] = Field(None, alias="rejectionReason", description="Shown to the requester")
    forward_to: Optional[int] = Field(None, alias="forwardTo", description="Next approver when forwarding")

    model_config = ConfigDict(populate_by_name=True)


class CancelRequest(BaseModel):
    remarks: Optional[str] = Field(None, description="Why the request is withdrawn")


class ApproverOut(BaseModel):
    id: int
    user_id: int
    role: Optional[str]
    order: int
    status: ApproverStatus
    comments: Optional[str] = None
    acted_at: Optional[datetime] = None
    is_admin_override: bool

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("acted_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)


class HistoryOut(BaseModel):
    id: int
    action: HistoryAction
    actor_id: Optional[int]
    remarks: Optional[str] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)


class RequestOut(BaseModel):
    """Regularization request output. Datetimes in ATTENDANCE_TZ with offset."""
    id: int
    user_id: int
    organization_id: int
    branch_id: Optional[int]
    target_date: date_type
    type: RequestType
    status: RequestStatus
    reason: str
    new_first_in: Optional[datetime] = None
    new_last_out: Optional[datetime] = None
    old_first_in: Optional[datetime] = None
    old_last_out: Optional[datetime] = None
    approval_required: int
    current_approver_level: int
    approved_by_id: Optional[int] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_by_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None
    linked_log_ids: List[int] = []
    approvers: List[ApproverOut] = []
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer(
        "new_first_in",
        "new_last_out",
        "old_first_in",
        "old_last_out",
        "approved_at",
        "cancelled_at",
        "created_at",
        when_used="always",
    )
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)


class RequestDetailOut(RequestOut):
    history: List[HistoryOut] = []
