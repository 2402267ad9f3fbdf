"""
Biometric device gateway: machine credentials, status code mapping and
batch ingestion of pushed punches.

A push is all-or-nothing: every entry of the batch is written inside one
transaction and any failure rolls back the whole batch so the device can
resend it. Re-sent entries are recognised by their natural key and skipped.
"""
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, joinedload, undefer

from app.core.config import settings
from app.core.constants import EVENT_MACHINE_SYNCED, EVENT_PUNCH
from app.core.errors import ConflictError, MachineUnauthorized, NotFoundError, ValidationFailed
from app.db.transaction import run_in_transaction
from app.models.attendance import AttendanceLog, LogSource, LogType, ProcessingStatus
from app.models.attendance_machine import AttendanceMachine, MachineStatus, ProviderType
from app.models.employee import Employee
from app.models.organization import Branch
from app.services.audit_service import log_audit
from app.services.daily_aggregate_service import apply_log
from app.services.notification_service import (
    NotificationSink,
    dispatch_many,
    org_target,
    user_target,
)
from app.utils.datetime_utils import localize, now_utc, parse_device_timestamp
from app.utils.json_serializer import sanitize_for_json

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "mch_"

USER_ID_FIELDS = ("userId", "user_id", "uid")
TIMESTAMP_FIELDS = ("timestamp", "time")
STATUS_FIELDS = ("status", "type", "punch", "state")
SEQUENCE_FIELDS = ("seq", "sequence", "log_id", "logId")

# Vendor status code tables. Keys are lower-case strings.
STATUS_CODE_TABLES: Dict[ProviderType, Dict[str, LogType]] = {
    ProviderType.GENERIC: {
        "0": LogType.IN,
        "1": LogType.OUT,
        "2": LogType.BREAK_START,
        "3": LogType.BREAK_END,
        "in": LogType.IN,
        "out": LogType.OUT,
        "checkin": LogType.IN,
        "checkout": LogType.OUT,
        "check_in": LogType.IN,
        "check_out": LogType.OUT,
        "break_start": LogType.BREAK_START,
        "break_end": LogType.BREAK_END,
    },
    ProviderType.ZKTECO: {
        "0": LogType.IN,
        "1": LogType.OUT,
        "2": LogType.BREAK_START,
        "3": LogType.BREAK_END,
        "4": LogType.IN,  # overtime in
        "5": LogType.OUT,  # overtime out
        "checkin": LogType.IN,
        "checkout": LogType.OUT,
    },
    ProviderType.HIKVISION: {
        "in": LogType.IN,
        "out": LogType.OUT,
        "enter": LogType.IN,
        "exit": LogType.OUT,
        "checkin": LogType.IN,
        "checkout": LogType.OUT,
    },
    ProviderType.ESSL: {
        "0": LogType.IN,
        "1": LogType.OUT,
        "2": LogType.BREAK_START,
        "3": LogType.BREAK_END,
    },
}


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_hex(32)


def map_log_type(
    code: Any,
    provider_type: ProviderType = ProviderType.GENERIC,
    overrides: Optional[Mapping[str, str]] = None,
) -> LogType:
    """
    Translate a vendor status code into a LogType.

    Lookup order: ``overrides`` for this call, MACHINE_STATUS_OVERRIDES for the
    provider, then the built-in provider table. Anything unmatched is UNKNOWN;
    this never raises.
    """
    if code is None:
        return LogType.UNKNOWN
    key = str(code).strip().lower()
    provider_type = ProviderType(provider_type) if provider_type else ProviderType.GENERIC

    configured = settings.get_machine_status_overrides().get(provider_type.value, {})
    for table in (overrides or {}, configured):
        if key in table:
            try:
                return LogType(table[key])
            except ValueError:
                logger.warning(
                    "Ignoring invalid status override: provider=%s code=%s type=%s",
                    provider_type.value, key, table[key],
                )
    return STATUS_CODE_TABLES.get(provider_type, {}).get(key, LogType.UNKNOWN)


def normalize_payload(payload: Any) -> List[Dict[str, Any]]:
    """A push body is a single object or an array of objects."""
    if payload is None:
        return []
    if isinstance(payload, dict):
        return [payload]
    if isinstance(payload, list):
        return list(payload)
    raise ValidationFailed(detail="Payload must be a JSON object or an array of objects")


def _first_present(entry: Mapping[str, Any], fields: Tuple[str, ...]) -> Any:
    for name in fields:
        value = entry.get(name)
        if value is not None and value != "":
            return value
    return None


@dataclass
class DevicePunch:
    """One validated entry of a device push."""
    raw_user_id: str
    timestamp: datetime
    status_code: Any
    event_key: str
    raw: Dict[str, Any]


@dataclass
class SyncResult:
    synced: int = 0
    processed: int = 0
    orphaned: int = 0
    duplicates: int = 0
    skipped: int = 0
    user_ids: Set[int] = field(default_factory=set)

    def as_dict(self) -> Dict[str, int]:
        return {
            "synced": self.synced,
            "processed": self.processed,
            "orphaned": self.orphaned,
            "duplicates": self.duplicates,
            "skipped": self.skipped,
        }


def device_event_key(machine_id: int, raw_user_id: str, sequence: Any, timestamp: datetime) -> str:
    """Natural key of a device event: machine, device user, and device sequence or punch time."""
    marker = str(sequence) if sequence is not None else timestamp.isoformat()
    return f"{machine_id}:{raw_user_id}:{marker}"


def parse_device_entry(entry: Any, machine: AttendanceMachine) -> Optional[DevicePunch]:
    """Validate one entry; returns None when it lacks a device user id or a usable timestamp."""
    if not isinstance(entry, dict):
        return None
    raw_user_id = _first_present(entry, USER_ID_FIELDS)
    parsed = parse_device_timestamp(_first_present(entry, TIMESTAMP_FIELDS))
    if raw_user_id is None or parsed is None:
        return None
    raw_user_id = str(raw_user_id).strip()
    timestamp = localize(parsed, machine.timezone or settings.ATTENDANCE_TZ)
    return DevicePunch(
        raw_user_id=raw_user_id,
        timestamp=timestamp,
        status_code=_first_present(entry, STATUS_FIELDS),
        event_key=device_event_key(machine.id, raw_user_id, _first_present(entry, SEQUENCE_FIELDS), timestamp),
        raw=sanitize_for_json(entry),
    )


def authenticate_machine(db: Session, api_key: Optional[str]) -> AttendanceMachine:
    """
    Resolve the machine behind an x-machine-api-key header.

    The secret column is deferred; it is loaded explicitly here for the
    comparison and never returned by any read endpoint.

    Raises:
        MachineUnauthorized: Key missing, unknown, or machine not active
    """
    if not api_key:
        raise MachineUnauthorized(detail="Missing machine API key")
    machine = (
        db.query(AttendanceMachine)
        .options(undefer(AttendanceMachine.api_key))
        .filter(AttendanceMachine.api_key == api_key)
        .first()
    )
    if machine is None or not secrets.compare_digest(machine.api_key, api_key):
        logger.warning("Machine push rejected: unknown API key")
        raise MachineUnauthorized(detail="Unauthorized machine or inactive")
    if machine.status != MachineStatus.ACTIVE:
        logger.warning("Machine push rejected: machine_id=%s status=%s", machine.id, machine.status.value)
        raise MachineUnauthorized(detail="Unauthorized machine or inactive")
    return machine


def _record_sync_failure(db: Session, machine_id: int, exc: Exception) -> None:
    """Remember the last failure on the machine row, in its own short transaction."""
    machine = db.query(AttendanceMachine).filter(AttendanceMachine.id == machine_id).first()
    if machine is None:
        return
    machine.last_error = f"{type(exc).__name__}: {exc}"[:1000]
    machine.last_seen_at = now_utc()
    db.commit()


def process_machine_data(
    db: Session,
    machine: AttendanceMachine,
    payload: Any,
    *,
    overrides: Optional[Mapping[str, str]] = None,
    notifier: Optional[NotificationSink] = None,
) -> SyncResult:
    """
    Ingest one device push.

    Entries are handled in payload order inside a single transaction: each one
    becomes an AttendanceLog (orphan when no employee of the machine's
    organization carries that device user id) and resolved logs update the
    Daily inline. Entries whose natural key is already stored, or repeated
    within the batch, are skipped. A unique-key race with a concurrent push of
    the same batch retries the whole batch.

    Args:
        db: Database session
        machine: Authenticated machine
        payload: Request body, one object or a list
        overrides: Extra status code mappings for this push
        notifier: Sink for post-commit notifications

    Returns:
        SyncResult with counts of synced, processed, orphaned, duplicate and skipped entries
    """
    entries = normalize_payload(payload)
    machine_id = machine.id
    organization_id = machine.organization_id
    provider_type = machine.provider_type
    machine_branch_id = machine.branch_id

    punches: List[DevicePunch] = []
    skipped = 0
    for index, entry in enumerate(entries):
        punch = parse_device_entry(entry, machine)
        if punch is None:
            skipped += 1
            logger.warning("Skipping invalid device entry: machine_id=%s index=%s", machine_id, index)
            continue
        punches.append(punch)

    # Identity resolution happens up front, outside the write transaction
    raw_ids = {p.raw_user_id for p in punches}
    employees = []
    if raw_ids:
        employees = (
            db.query(Employee)
            .options(joinedload(Employee.shift))
            .filter(
                Employee.organization_id == organization_id,
                Employee.machine_user_id.in_(raw_ids),
                Employee.active.is_(True),
            )
            .all()
        )
    by_device_id = {e.machine_user_id: e for e in employees}
    event_keys = [p.event_key for p in punches]

    def work(session: Session) -> SyncResult:
        result = SyncResult(skipped=skipped)
        now = now_utc()
        seen: Set[str] = set()
        if event_keys:
            seen.update(
                key for (key,) in session.query(AttendanceLog.device_event_key)
                .filter(AttendanceLog.device_event_key.in_(event_keys))
                .all()
            )

        for punch in punches:
            if punch.event_key in seen:
                result.duplicates += 1
                continue
            seen.add(punch.event_key)

            employee = by_device_id.get(punch.raw_user_id)
            log = AttendanceLog(
                source=LogSource.MACHINE,
                user_id=employee.id if employee else None,
                organization_id=organization_id,
                branch_id=(employee.branch_id if employee and employee.branch_id else machine_branch_id),
                machine_id=machine_id,
                timestamp=punch.timestamp,
                server_timestamp=now,
                type=map_log_type(punch.status_code, provider_type, overrides),
                processing_status=ProcessingStatus.PROCESSED if employee else ProcessingStatus.ORPHAN,
                processing_notes=None if employee else "No employee mapped to this device user id",
                raw_user_id=punch.raw_user_id,
                raw_data=punch.raw,
                device_event_key=punch.event_key,
                is_verified=employee is not None,
                verification_method="biometric",
            )
            session.add(log)
            session.flush()
            result.synced += 1

            if employee is None:
                result.orphaned += 1
                continue
            apply_log(session, log, shift=employee.shift)
            result.processed += 1
            result.user_ids.add(employee.id)

        locked = (
            session.query(AttendanceMachine)
            .filter(AttendanceMachine.id == machine_id)
            .populate_existing()
            .with_for_update()
            .one()
        )
        locked.last_sync_at = now
        locked.last_seen_at = now
        locked.sync_count = (locked.sync_count or 0) + 1
        locked.total_logs = (locked.total_logs or 0) + result.synced
        locked.last_error = None

        log_audit(
            db=session,
            actor_id=None,
            action="MACHINE_SYNC",
            entity_type="attendance_machines",
            entity_id=machine_id,
            meta=result.as_dict(),
        )
        return result

    try:
        result = run_in_transaction(
            db,
            work,
            retry_on=(OperationalError, IntegrityError),
            ctx=f"machine_sync:{machine_id}",
        )
    except Exception as exc:
        logger.error("Machine sync failed: machine_id=%s entries=%s error=%s", machine_id, len(entries), exc)
        _record_sync_failure(db, machine_id, exc)
        raise

    logger.info(
        "Machine sync: machine_id=%s synced=%s processed=%s orphaned=%s duplicates=%s skipped=%s",
        machine_id, result.synced, result.processed, result.orphaned, result.duplicates, result.skipped,
    )

    messages = [
        (user_target(user_id), EVENT_PUNCH, {"machine_id": machine_id})
        for user_id in sorted(result.user_ids)
    ]
    messages.append(
        (org_target(organization_id), EVENT_MACHINE_SYNCED, {"machine_id": machine_id, **result.as_dict()})
    )
    dispatch_many(notifier, messages)
    return result


def _validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationFailed(detail=f"Unknown timezone: {name}")
    return name


def _validate_branch(db: Session, organization_id: int, branch_id: Optional[int]) -> None:
    if branch_id is None:
        return
    branch = db.query(Branch).filter(Branch.id == branch_id).first()
    if not branch or branch.organization_id != organization_id:
        raise ValidationFailed(detail="Branch does not belong to this organization")


def create_machine(
    db: Session,
    actor: Employee,
    *,
    name: str,
    serial_number: str,
    provider_type: ProviderType = ProviderType.GENERIC,
    branch_id: Optional[int] = None,
    timezone: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Tuple[AttendanceMachine, str]:
    """
    Register a machine for the actor's organization.

    Returns:
        (machine, api_key); the key is only ever returned here and by rotate_api_key

    Raises:
        ConflictError: serial_number already registered
        ValidationFailed: Unknown timezone or foreign branch
    """
    existing = db.query(AttendanceMachine).filter(AttendanceMachine.serial_number == serial_number).first()
    if existing:
        raise ConflictError(detail="Machine with this serial number already exists")
    _validate_branch(db, actor.organization_id, branch_id)

    api_key = generate_api_key()
    machine = AttendanceMachine(
        name=name,
        serial_number=serial_number,
        provider_type=ProviderType(provider_type),
        organization_id=actor.organization_id,
        branch_id=branch_id,
        api_key=api_key,
        status=MachineStatus.ACTIVE,
        timezone=_validate_timezone(timezone or settings.ATTENDANCE_TZ),
        ip_address=ip_address,
        sync_count=0,
        total_logs=0,
    )
    db.add(machine)
    db.flush()
    log_audit(
        db=db,
        actor_id=actor.id,
        action="MACHINE_CREATE",
        entity_type="attendance_machines",
        entity_id=machine.id,
        meta={"serial_number": serial_number, "provider_type": machine.provider_type},
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(detail="Machine with this serial number already exists")
    db.refresh(machine)
    logger.info("Machine created: id=%s serial=%s org_id=%s", machine.id, serial_number, actor.organization_id)
    return machine, api_key


def get_machine(db: Session, machine_id: int, organization_id: int) -> AttendanceMachine:
    machine = (
        db.query(AttendanceMachine)
        .filter(AttendanceMachine.id == machine_id, AttendanceMachine.organization_id == organization_id)
        .first()
    )
    if not machine:
        raise NotFoundError(detail="Machine not found")
    return machine


def list_machines(db: Session, organization_id: int) -> List[AttendanceMachine]:
    return (
        db.query(AttendanceMachine)
        .filter(AttendanceMachine.organization_id == organization_id)
        .order_by(AttendanceMachine.id)
        .all()
    )


def update_machine(
    db: Session,
    machine_id: int,
    actor: Employee,
    *,
    name: Optional[str] = None,
    status: Optional[MachineStatus] = None,
    provider_type: Optional[ProviderType] = None,
    branch_id: Optional[int] = None,
    timezone: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> AttendanceMachine:
    machine = get_machine(db, machine_id, actor.organization_id)
    before = {"status": machine.status, "name": machine.name}

    if name is not None:
        machine.name = name
    if status is not None:
        machine.status = MachineStatus(status)
    if provider_type is not None:
        machine.provider_type = ProviderType(provider_type)
    if branch_id is not None:
        _validate_branch(db, actor.organization_id, branch_id)
        machine.branch_id = branch_id
    if timezone is not None:
        machine.timezone = _validate_timezone(timezone)
    if ip_address is not None:
        machine.ip_address = ip_address

    db.flush()
    log_audit(
        db=db,
        actor_id=actor.id,
        action="MACHINE_UPDATE",
        entity_type="attendance_machines",
        entity_id=machine.id,
        meta={"before": before, "after": {"status": machine.status, "name": machine.name}},
    )
    db.commit()
    db.refresh(machine)
    if before["status"] != machine.status:
        logger.info(
            "Machine status transition: id=%s before=%s after=%s",
            machine.id, before["status"].value, machine.status.value,
        )
    return machine


def rotate_api_key(db: Session, machine_id: int, actor: Employee) -> Tuple[AttendanceMachine, str]:
    """Issue a new key; the previous key stops working immediately."""
    machine = get_machine(db, machine_id, actor.organization_id)
    api_key = generate_api_key()
    machine.api_key = api_key
    db.flush()
    log_audit(
        db=db,
        actor_id=actor.id,
        action="MACHINE_ROTATE_KEY",
        entity_type="attendance_machines",
        entity_id=machine.id,
    )
    db.commit()
    db.refresh(machine)
    logger.info("Machine API key rotated: id=%s", machine.id)
    return machine, api_key
