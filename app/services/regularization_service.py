"""
Attendance regularization workflow.

    draft -> pending -> under_review -> approved | rejected
    draft | pending -> cancelled

A forward appends another pending approver to the chain and keeps the request
under review until that approver decides.

Every state change runs inside run_in_transaction. An approval that closes the
request also writes the correction logs and updates the Daily in the same
transaction, so the approver change and the attendance change commit or roll
back together. Notifications go out only after commit.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.core.constants import (
    EVENT_REQUEST_CANCELLED,
    EVENT_REQUEST_CREATED,
    EVENT_REQUEST_PENDING,
    EVENT_REQUEST_UPDATED,
)
from app.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RequestAlreadyProcessed,
    ValidationFailed,
)
from app.db.transaction import run_in_transaction
from app.models.attendance import AttendanceLog, LogSource, LogType, ProcessingStatus, IN_TYPES, OUT_TYPES
from app.models.attendance_daily import AttendanceDaily, DailyStatus
from app.models.attendance_request import (
    AttendanceRequest,
    AttendanceRequestApprover,
    ApproverStatus,
    HistoryAction,
    RequestStatus,
    RequestType,
    DECIDABLE_REQUEST_STATUSES,
    OPEN_REQUEST_STATUSES,
)
from app.models.employee import Employee, Role
from app.models.shift import Shift
from app.services.audit_service import log_audit
from app.services.daily_aggregate_service import (
    load_or_create_daily,
    mark_worked,
    refresh_daily,
    set_daily_status,
)
from app.services.notification_service import NotificationSink, dispatch_many, user_target
from app.utils.datetime_utils import ensure_utc, localize, now_utc, today_local, to_local

logger = logging.getLogger(__name__)

DEFAULT_REJECTION_REASON = "Rejected by approver"
CORRECTION_NOTE = "Corrected via regularization request"
INVALID_DECISION_DETAIL = "Invalid status. Use 'approved', 'rejected' or 'forwarded'"

# Roles that may read any request in their organization
_VIEW_ALL_ROLES = frozenset({Role.HR.value, Role.ADMIN.value, Role.OWNER.value})


def _request_payload(request: AttendanceRequest) -> Dict[str, Any]:
    return {
        "request_id": request.id,
        "user_id": request.user_id,
        "target_date": request.target_date,
        "type": request.type,
        "status": request.status,
        "current_approver_level": request.current_approver_level,
    }


def validate_target_date(target_date: date, today: Optional[date] = None) -> None:
    """
    Raises:
        ValidationFailed: target_date is in the future or older than REGULARIZATION_MAX_DAYS_BACK
    """
    today = today or today_local()
    if target_date > today:
        raise ValidationFailed(detail="Cannot regularize a future date")
    max_days = settings.REGULARIZATION_MAX_DAYS_BACK
    if (today - target_date).days > max_days:
        raise ValidationFailed(
            detail=f"Regularization is only allowed for the last {max_days} days"
        )


def _normalize_correction_time(value: Optional[datetime], target_date: date, label: str) -> Optional[datetime]:
    """Client times without offset are wall-clock times in ATTENDANCE_TZ. Stored as UTC."""
    if value is None:
        return None
    ts = localize(value)
    local_day = to_local(ts).date()
    # Allow the following morning so night-shift punch-outs can be corrected
    if local_day < target_date or local_day > target_date + timedelta(days=1):
        raise ValidationFailed(detail=f"{label} must fall on the target date {target_date.isoformat()}")
    if ts > now_utc():
        raise ValidationFailed(detail=f"{label} cannot be in the future")
    return ts


def validate_correction(
    request_type: RequestType,
    target_date: date,
    reason: Optional[str],
    new_first_in: Optional[datetime],
    new_last_out: Optional[datetime],
) -> Tuple[str, Optional[datetime], Optional[datetime]]:
    """
    Validate the correction payload before anything is written.

    Returns:
        (reason, new_first_in, new_last_out) normalised (trimmed reason, UTC times)
    """
    reason = (reason or "").strip()
    min_len = settings.REGULARIZATION_REASON_MIN_LENGTH
    max_len = settings.REGULARIZATION_REASON_MAX_LENGTH
    if len(reason) < min_len:
        raise ValidationFailed(detail=f"Reason must be at least {min_len} characters")
    if len(reason) > max_len:
        raise ValidationFailed(detail=f"Reason cannot exceed {max_len} characters")

    first_in = _normalize_correction_time(new_first_in, target_date, "new_first_in")
    last_out = _normalize_correction_time(new_last_out, target_date, "new_last_out")

    if request_type == RequestType.MISSED_PUNCH and first_in is None and last_out is None:
        raise ValidationFailed(detail="A missed punch correction needs new_first_in or new_last_out")
    if first_in is not None and last_out is not None and first_in > last_out:
        raise ValidationFailed(detail="new_first_in must not be after new_last_out")
    return reason, first_in, last_out


def find_open_request(db: Session, user_id: int, target_date: date) -> Optional[AttendanceRequest]:
    return (
        db.query(AttendanceRequest)
        .filter(
            AttendanceRequest.user_id == user_id,
            AttendanceRequest.target_date == target_date,
            AttendanceRequest.status.in_(list(OPEN_REQUEST_STATUSES)),
        )
        .first()
    )


def _resolve_approvers(db: Session, user: Employee) -> List[Employee]:
    """Approval chain: the direct manager when one is set and active."""
    if not user.reporting_manager_id:
        return []
    manager = (
        db.query(Employee)
        .filter(Employee.id == user.reporting_manager_id, Employee.active.is_(True))
        .first()
    )
    return [manager] if manager else []


def submit_regularization(
    db: Session,
    user: Employee,
    *,
    target_date: date,
    request_type: RequestType,
    reason: str,
    new_first_in: Optional[datetime] = None,
    new_last_out: Optional[datetime] = None,
    as_draft: bool = False,
    notifier: Optional[NotificationSink] = None,
) -> AttendanceRequest:
    """
    Raise a regularization request for one of the user's past days.

    Args:
        db: Database session
        user: Requesting employee
        target_date: Work date to correct
        request_type: missed_punch, on_duty, work_from_home or leave_reversal
        reason: Justification (length-validated)
        new_first_in: Proposed first punch-in (optional)
        new_last_out: Proposed last punch-out (optional)
        as_draft: Store as draft without starting approval
        notifier: Sink for post-commit notifications

    Returns:
        Created AttendanceRequest (pending, or draft)

    Raises:
        ValidationFailed: Date outside the allowed window or invalid correction
        ConflictError: An open request already exists for this user and date
    """
    request_type = RequestType(request_type)
    validate_target_date(target_date)
    reason, first_in, last_out = validate_correction(
        request_type, target_date, reason, new_first_in, new_last_out
    )

    if find_open_request(db, user.id, target_date):
        raise ConflictError(detail="An open regularization request already exists for this date")

    approvers = _resolve_approvers(db, user)
    initial_status = RequestStatus.DRAFT if as_draft else RequestStatus.PENDING

    def work(session: Session) -> AttendanceRequest:
        request = AttendanceRequest(
            user_id=user.id,
            organization_id=user.organization_id,
            branch_id=user.branch_id,
            target_date=target_date,
            type=request_type,
            status=initial_status,
            new_first_in=first_in,
            new_last_out=last_out,
            reason=reason,
            approval_required=len(approvers),
            current_approver_level=1 if approvers else 0,
            linked_log_ids=[],
        )
        for order, approver in enumerate(approvers, start=1):
            request.approvers.append(
                AttendanceRequestApprover(
                    user_id=approver.id,
                    role=approver.role,
                    order=order,
                    status=ApproverStatus.PENDING,
                )
            )
        request.add_history(
            HistoryAction.CREATED,
            user.id,
            new_status=initial_status.value,
            remarks=reason,
        )
        session.add(request)
        session.flush()
        log_audit(
            db=session,
            actor_id=user.id,
            action="REGULARIZATION_SUBMIT",
            entity_type="attendance_requests",
            entity_id=request.id,
            meta={
                "target_date": target_date,
                "type": request_type,
                "status": initial_status,
                "approvers": [a.id for a in approvers],
            },
        )
        return request

    try:
        request = run_in_transaction(db, work, ctx=f"regularization_submit:user={user.id}")
    except IntegrityError:
        # Lost the race against a concurrent submission for the same day
        raise ConflictError(detail="An open regularization request already exists for this date")

    db.refresh(request)
    logger.info(
        "Regularization created: id=%s user_id=%s target_date=%s status=%s approvers=%s",
        request.id, user.id, target_date, request.status.value, len(approvers),
    )
    if request.status == RequestStatus.PENDING:
        _notify_submitted(notifier, request)
    return request


def _notify_submitted(notifier: Optional[NotificationSink], request: AttendanceRequest) -> None:
    payload = _request_payload(request)
    messages = [(user_target(request.user_id), EVENT_REQUEST_CREATED, payload)]
    for approver in request.approvers:
        if approver.status == ApproverStatus.PENDING:
            messages.append((user_target(approver.user_id), EVENT_REQUEST_PENDING, payload))
    dispatch_many(notifier, messages)


def _load_request(db: Session, request_id: int) -> AttendanceRequest:
    request = db.query(AttendanceRequest).filter(AttendanceRequest.id == request_id).first()
    if not request:
        raise NotFoundError(detail="Attendance request not found")
    return request


def _lock_request(session: Session, request_id: int) -> AttendanceRequest:
    """Re-read the request row under FOR UPDATE (no-op on SQLite)."""
    request = (
        session.query(AttendanceRequest)
        .filter(AttendanceRequest.id == request_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if not request:
        raise NotFoundError(detail="Attendance request not found")
    return request


def submit_draft(
    db: Session,
    request_id: int,
    user: Employee,
    *,
    notifier: Optional[NotificationSink] = None,
) -> AttendanceRequest:
    """Move the user's own draft to pending, re-checking the date window."""
    existing = _load_request(db, request_id)
    if existing.user_id != user.id:
        raise AuthorizationError(detail="Only the requester can submit this request")
    validate_target_date(existing.target_date)

    def work(session: Session) -> AttendanceRequest:
        request = _lock_request(session, request_id)
        if request.status != RequestStatus.DRAFT:
            raise RequestAlreadyProcessed(detail="Only draft requests can be submitted")
        request.status = RequestStatus.PENDING
        request.add_history(
            HistoryAction.SUBMITTED,
            user.id,
            old_status=RequestStatus.DRAFT.value,
            new_status=RequestStatus.PENDING.value,
        )
        session.flush()
        log_audit(
            db=session,
            actor_id=user.id,
            action="REGULARIZATION_SUBMIT_DRAFT",
            entity_type="attendance_requests",
            entity_id=request.id,
        )
        return request

    request = run_in_transaction(db, work, ctx=f"regularization_submit_draft:{request_id}")
    db.refresh(request)
    logger.info(
        "Regularization transition: id=%s before=%s after=%s",
        request.id, RequestStatus.DRAFT.value, request.status.value,
    )
    _notify_submitted(notifier, request)
    return request


def resolve_request_status(approvers: List[AttendanceRequestApprover]) -> RequestStatus:
    """Any rejection rejects the request; otherwise approved once nobody is pending."""
    if any(a.status == ApproverStatus.REJECTED for a in approvers):
        return RequestStatus.REJECTED
    if not any(a.status == ApproverStatus.PENDING for a in approvers):
        return RequestStatus.APPROVED
    return RequestStatus.UNDER_REVIEW


def _authorize_decision(request: AttendanceRequest, actor: Employee) -> AttendanceRequestApprover:
    """
    Return the approver row the actor decides through.

    A pending approver acts on their own row. ADMIN, OWNER and super-admins
    of the request's organization may always act; without a pending row an
    override row is added to the chain.
    """
    for approver in request.approvers:
        if approver.user_id == actor.id and approver.status == ApproverStatus.PENDING:
            return approver

    same_org = actor.organization_id == request.organization_id
    if actor.has_admin_override and (same_org or actor.is_super_admin):
        for approver in request.approvers:
            if approver.user_id == actor.id:
                approver.is_admin_override = True
                return approver
        override = AttendanceRequestApprover(
            user_id=actor.id,
            role=actor.role,
            order=len(request.approvers) + 1,
            status=ApproverStatus.PENDING,
            is_admin_override=True,
        )
        request.approvers.append(override)
        return override

    raise AuthorizationError(detail="You are not authorized to decide this request")


def _append_forward_approver(
    request: AttendanceRequest,
    target: Optional[Employee],
    actor: Employee,
    comments: Optional[str],
) -> AttendanceRequestApprover:
    if target is None or not target.active or target.organization_id != request.organization_id:
        raise ValidationFailed(detail="Forward target must be an active employee of the same organization")
    if target.id == request.user_id:
        raise ValidationFailed(detail="A request cannot be forwarded to its requester")
    if any(a.user_id == target.id for a in request.approvers):
        raise ValidationFailed(detail="Forward target is already in the approval chain")

    note = f"Forwarded by {actor.name}"
    approver = AttendanceRequestApprover(
        user_id=target.id,
        role=target.role,
        order=len(request.approvers) + 1,
        status=ApproverStatus.PENDING,
        comments=f"{note}: {comments}" if comments else note,
    )
    request.approvers.append(approver)
    request.approval_required += 1
    return approver


def _boundary_log(session: Session, daily: AttendanceDaily, log_type: LogType) -> Optional[AttendanceLog]:
    """The live log that currently defines first_in (IN) or last_out (OUT) of the Daily."""
    current = daily.first_in if log_type == LogType.IN else daily.last_out
    if current is None or not daily.logs:
        return None
    kinds = IN_TYPES if log_type == LogType.IN else OUT_TYPES
    candidates = (
        session.query(AttendanceLog)
        .filter(
            AttendanceLog.id.in_(list(daily.logs)),
            AttendanceLog.type.in_(list(kinds)),
            AttendanceLog.corrected_by_log_id.is_(None),
        )
        .all()
    )
    current = ensure_utc(current)
    for log in candidates:
        if ensure_utc(log.timestamp) == current:
            return log
    return None


def _apply_type_effect(daily: AttendanceDaily, request: AttendanceRequest) -> None:
    if request.type == RequestType.WORK_FROM_HOME:
        set_daily_status(daily, DailyStatus.WORK_FROM_HOME)
    elif request.type == RequestType.ON_DUTY:
        set_daily_status(daily, DailyStatus.ON_DUTY)
    elif request.type == RequestType.LEAVE_REVERSAL:
        if daily.status == DailyStatus.ON_LEAVE:
            set_daily_status(daily, DailyStatus.PRESENT)


def apply_approved_correction(
    session: Session,
    request: AttendanceRequest,
    actor: Employee,
    shift: Optional[Shift],
    now: datetime,
) -> AttendanceDaily:
    """
    Write correction logs for an approved request and update its Daily.

    Each proposed time becomes a new admin_manual log; the log it replaces is
    back-linked through corrected_by_log_id. Must run inside the decide
    transaction.

    Raises:
        ValidationFailed: The corrected day would end before it starts
    """
    daily = load_or_create_daily(
        session,
        user_id=request.user_id,
        organization_id=request.organization_id,
        branch_id=request.branch_id,
        work_date=request.target_date,
        shift_id=shift.id if shift is not None else None,
    )
    request.old_first_in = daily.first_in
    request.old_last_out = daily.last_out

    corrections = []
    if request.new_first_in is not None:
        corrections.append((LogType.IN, ensure_utc(request.new_first_in)))
    if request.new_last_out is not None:
        corrections.append((LogType.OUT, ensure_utc(request.new_last_out)))

    for log_type, ts in corrections:
        superseded = _boundary_log(session, daily, log_type)
        log = AttendanceLog(
            source=LogSource.ADMIN_MANUAL,
            user_id=request.user_id,
            organization_id=request.organization_id,
            branch_id=request.branch_id,
            timestamp=ts,
            server_timestamp=now,
            type=log_type,
            processing_status=ProcessingStatus.CORRECTED,
            processing_notes=CORRECTION_NOTE,
            is_verified=True,
            verification_method="manager",
            verified_by_id=actor.id,
            attendance_request_id=request.id,
        )
        session.add(log)
        session.flush()
        if superseded is not None:
            superseded.corrected_by_log_id = log.id
        if log_type == LogType.IN:
            daily.first_in = ts
        else:
            daily.last_out = ts
        if log.id not in daily.logs:
            daily.logs.append(log.id)
        request.linked_log_ids.append(log.id)

    # A corrected punch turns an absent or off day into a worked day
    if corrections:
        mark_worked(daily)
    _apply_type_effect(daily, request)

    if daily.first_in is not None and daily.last_out is not None:
        if ensure_utc(daily.last_out) < ensure_utc(daily.first_in):
            raise ValidationFailed(detail="Corrected punch-out would be earlier than punch-in")

    refresh_daily(daily, shift)
    daily.attendance_request_id = request.id
    daily.verified_by_id = actor.id
    daily.verified_at = now
    session.flush()
    return daily


def decide_regularization(
    db: Session,
    request_id: int,
    actor: Employee,
    *,
    decision: Union[str, ApproverStatus],
    comments: Optional[str] = None,
    rejection_reason: Optional[str] = None,
    forward_to: Optional[int] = None,
    notifier: Optional[NotificationSink] = None,
) -> AttendanceRequest:
    """
    Approve, reject or forward a regularization request.

    Loads and locks the request, authorizes the actor, records the decision,
    resolves the request status, appends history and, on final approval,
    applies the correction to the Daily. All of it commits as one transaction.

    Forwarding closes the actor's step and appends ``forward_to`` as a new
    pending approver at the end of the chain, so the request moves to
    under_review and waits for that employee.

    Args:
        db: Database session
        request_id: Request to decide
        actor: Deciding employee
        decision: "approved", "rejected" or "forwarded"
        comments: Approver comments
        rejection_reason: Reason shown to the requester on rejection
        forward_to: Employee to add to the chain (forwarded only)
        notifier: Sink for post-commit notifications

    Returns:
        Updated AttendanceRequest

    Raises:
        ValidationFailed: Unknown decision, bad forward target, or inconsistent correction
        NotFoundError: Request does not exist
        RequestAlreadyProcessed: Request is already approved, rejected or cancelled
        ConflictError: Request is still a draft
        AuthorizationError: Actor is neither a pending approver nor an administrator
    """
    try:
        decision = ApproverStatus(decision)
    except ValueError:
        raise ValidationFailed(detail=INVALID_DECISION_DETAIL)
    if decision == ApproverStatus.PENDING:
        raise ValidationFailed(detail=INVALID_DECISION_DETAIL)
    if decision == ApproverStatus.FORWARDED and forward_to is None:
        raise ValidationFailed(detail="forward_to is required when forwarding a request")

    # Everything the decision needs is fetched before the transaction starts
    existing = _load_request(db, request_id)
    requester = db.query(Employee).filter(Employee.id == existing.user_id).first()
    shift = requester.shift if requester and requester.shift_id else None
    forward_target = None
    if decision == ApproverStatus.FORWARDED:
        forward_target = db.query(Employee).filter(Employee.id == forward_to).first()

    def work(session: Session) -> Tuple[AttendanceRequest, RequestStatus]:
        request = _lock_request(session, request_id)
        if request.status == RequestStatus.DRAFT:
            raise ConflictError(detail="Request has not been submitted yet")
        if request.status not in DECIDABLE_REQUEST_STATUSES:
            raise RequestAlreadyProcessed(detail="Request already processed")

        entry = _authorize_decision(request, actor)
        now = now_utc()
        entry.status = decision
        entry.comments = comments
        entry.acted_at = now
        if decision == ApproverStatus.FORWARDED:
            _append_forward_approver(request, forward_target, actor, comments)

        old_status = request.status
        new_status = resolve_request_status(request.approvers)
        request.status = new_status
        if new_status == RequestStatus.REJECTED:
            request.rejection_reason = rejection_reason or comments or DEFAULT_REJECTION_REASON
        elif new_status == RequestStatus.UNDER_REVIEW:
            request.current_approver_level += 1

        request.add_history(
            HistoryAction(decision.value),
            actor.id,
            old_status=old_status.value,
            new_status=new_status.value,
            remarks=comments,
            meta={
                "is_admin_override": entry.is_admin_override,
                "forwarded_to": forward_target.id if forward_target is not None else None,
            },
        )

        if new_status == RequestStatus.APPROVED:
            request.approved_by_id = actor.id
            request.approved_at = now
            apply_approved_correction(session, request, actor, shift, now)

        session.flush()
        log_audit(
            db=session,
            actor_id=actor.id,
            action="REGULARIZATION_DECIDE",
            entity_type="attendance_requests",
            entity_id=request.id,
            meta={
                "decision": decision,
                "before": old_status,
                "after": new_status,
                "is_admin_override": entry.is_admin_override,
                "linked_log_ids": list(request.linked_log_ids),
            },
        )
        return request, old_status

    request, old_status = run_in_transaction(db, work, ctx=f"regularization_decide:{request_id}")
    db.refresh(request)
    logger.info(
        "Regularization transition: id=%s before=%s after=%s actor_id=%s",
        request.id, old_status.value, request.status.value, actor.id,
    )

    payload = _request_payload(request)
    messages = [(user_target(request.user_id), EVENT_REQUEST_UPDATED, payload)]
    if request.status == RequestStatus.UNDER_REVIEW:
        for approver in request.approvers:
            if approver.status == ApproverStatus.PENDING:
                messages.append((user_target(approver.user_id), EVENT_REQUEST_PENDING, payload))
    dispatch_many(notifier, messages)
    return request


def cancel_regularization(
    db: Session,
    request_id: int,
    user: Employee,
    *,
    remarks: Optional[str] = None,
    notifier: Optional[NotificationSink] = None,
) -> AttendanceRequest:
    """Requester withdraws a draft or pending request."""
    existing = _load_request(db, request_id)
    if existing.user_id != user.id:
        raise AuthorizationError(detail="Only the requester can cancel this request")

    def work(session: Session) -> Tuple[AttendanceRequest, RequestStatus]:
        request = _lock_request(session, request_id)
        if request.status == RequestStatus.UNDER_REVIEW:
            raise ConflictError(detail="Request is already under review and cannot be cancelled")
        if request.status not in (RequestStatus.DRAFT, RequestStatus.PENDING):
            raise RequestAlreadyProcessed(detail="Request already processed")
        old_status = request.status
        request.status = RequestStatus.CANCELLED
        request.cancelled_by_id = user.id
        request.cancelled_at = now_utc()
        request.add_history(
            HistoryAction.CANCELLED,
            user.id,
            old_status=old_status.value,
            new_status=RequestStatus.CANCELLED.value,
            remarks=remarks,
        )
        session.flush()
        log_audit(
            db=session,
            actor_id=user.id,
            action="REGULARIZATION_CANCEL",
            entity_type="attendance_requests",
            entity_id=request.id,
            meta={"before": old_status, "remarks": remarks},
        )
        return request, old_status

    request, old_status = run_in_transaction(db, work, ctx=f"regularization_cancel:{request_id}")
    db.refresh(request)
    logger.info(
        "Regularization transition: id=%s before=%s after=%s",
        request.id, old_status.value, request.status.value,
    )
    if old_status == RequestStatus.PENDING:
        payload = _request_payload(request)
        dispatch_many(
            notifier,
            [
                (user_target(a.user_id), EVENT_REQUEST_CANCELLED, payload)
                for a in request.approvers
                if a.status == ApproverStatus.PENDING
            ],
        )
    return request


def get_request(db: Session, request_id: int, user: Employee) -> AttendanceRequest:
    """Requester, anyone in the approver chain, or HR/admin of the organization may view."""
    request = (
        db.query(AttendanceRequest)
        .options(selectinload(AttendanceRequest.approvers), selectinload(AttendanceRequest.history))
        .filter(AttendanceRequest.id == request_id)
        .first()
    )
    if not request:
        raise NotFoundError(detail="Attendance request not found")
    if request.user_id == user.id or user.is_super_admin:
        return request
    if any(a.user_id == user.id for a in request.approvers):
        return request
    if user.organization_id == request.organization_id and (
        user.role in _VIEW_ALL_ROLES or user.has_admin_override
    ):
        return request
    raise AuthorizationError(detail="You are not allowed to view this request")


def list_my_requests(
    db: Session,
    user: Employee,
    *,
    status: Optional[RequestStatus] = None,
) -> List[AttendanceRequest]:
    query = (
        db.query(AttendanceRequest)
        .options(selectinload(AttendanceRequest.approvers))
        .filter(AttendanceRequest.user_id == user.id)
    )
    if status:
        query = query.filter(AttendanceRequest.status == status)
    return query.order_by(AttendanceRequest.target_date.desc(), AttendanceRequest.id.desc()).all()


def list_pending_for_approver(db: Session, user: Employee) -> List[AttendanceRequest]:
    """
    Requests awaiting the user's decision. Administrators also see every open
    request of their organization, including ones with no approver chain.
    """
    awaiting_user = AttendanceRequest.approvers.any(
        (AttendanceRequestApprover.user_id == user.id)
        & (AttendanceRequestApprover.status == ApproverStatus.PENDING)
    )
    query = (
        db.query(AttendanceRequest)
        .options(selectinload(AttendanceRequest.approvers))
        .filter(AttendanceRequest.status.in_(list(DECIDABLE_REQUEST_STATUSES)))
    )
    if user.has_admin_override:
        query = query.filter(
            or_(awaiting_user, AttendanceRequest.organization_id == user.organization_id)
        )
    else:
        query = query.filter(awaiting_user)
    return query.order_by(AttendanceRequest.target_date.asc(), AttendanceRequest.id.asc()).all()
