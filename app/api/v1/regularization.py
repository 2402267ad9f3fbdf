"""
Attendance regularization endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, get_db, get_notifier
from app.models.attendance_request import RequestStatus
from app.models.employee import Employee
from app.schemas.regularization import (
    CancelRequest,
    DecideRequest,
    RegularizationCreate,
    RequestDetailOut,
    RequestOut,
)
from app.services.notification_service import NotificationSink
from app.services.regularization_service import (
    cancel_regularization,
    decide_regularization,
    get_request,
    list_my_requests,
    list_pending_for_approver,
    submit_draft,
    submit_regularization,
)

router = APIRouter()


@router.post("/regularize", response_model=RequestOut, status_code=201)
async def regularize(
    body: RegularizationCreate,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    """
    Raise a regularization request for one of your past days

    Rejected with 400 for future dates or dates older than
    REGULARIZATION_MAX_DAYS_BACK, and with 409 when an open request already
    exists for that date.
    """
    return submit_regularization(
        db,
        current_user,
        target_date=body.target_date,
        request_type=body.type,
        reason=body.reason,
        new_first_in=body.new_first_in,
        new_last_out=body.new_last_out,
        as_draft=body.as_draft,
        notifier=notifier,
    )


@router.get("/requests/my", response_model=List[RequestOut])
async def my_requests(
    status: Optional[RequestStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    return list_my_requests(db, current_user, status=status)


@router.get("/requests/pending", response_model=List[RequestOut])
async def pending_requests(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Requests waiting for the current user's decision"""
    return list_pending_for_approver(db, current_user)


@router.get("/requests/{request_id}", response_model=RequestDetailOut)
async def get_request_detail(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    return get_request(db, request_id, current_user)


@router.patch("/requests/{request_id}/decide", response_model=RequestOut)
async def decide_request(
    request_id: int,
    body: DecideRequest,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    """
    Approve, reject or forward a request

    The approver decision, the history entry and (on final approval) the
    correction logs and the Daily update commit together.
    """
    return decide_regularization(
        db,
        request_id,
        current_user,
        decision=body.status,
        comments=body.comments,
        rejection_reason=body.rejection_reason,
        forward_to=body.forward_to,
        notifier=notifier,
    )


@router.post("/requests/{request_id}/submit", response_model=RequestOut)
async def submit_draft_request(
    request_id: int,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Send a draft into approval"""
    return submit_draft(db, request_id, current_user, notifier=notifier)


@router.post("/requests/{request_id}/cancel", response_model=RequestOut)
async def cancel_request(
    request_id: int,
    body: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    notifier: NotificationSink = Depends(get_notifier),
):
    """Withdraw a draft or pending request"""
    return cancel_regularization(
        db,
        request_id,
        current_user,
        remarks=body.remarks if body else None,
        notifier=notifier,
    )
