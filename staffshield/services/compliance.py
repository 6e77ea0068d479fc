"""
Compliance records and the background-check rollup onto agent profiles.
"""
import uuid
from collections import defaultdict
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundOrUnauthorized, ValidationError
from ..logging import get_logger
from ..models.models import COMPLIANCE_STATUSES, AgentProfile, ComplianceRecord, User
from .tx import atomic


log = get_logger(__name__)

PROBLEM_STATUSES = ("expired", "rejected")


def _check_status(status: str) -> None:
    if status not in COMPLIANCE_STATUSES:
        raise ValidationError("Invalid status", field="status")


def _expiry_cutoff(today: Optional[date] = None) -> date:
    today = today or date.today()
    return today + timedelta(days=settings.compliance_expiry_window_days)


def _propagate_background_check(db: Session, record: ComplianceRecord, status: str) -> None:
    """Mirror a background_check record's status onto the owner's agent profile."""
    if record.record_type != "background_check":
        return
    profile = db.query(AgentProfile).filter(AgentProfile.user_id == record.user_id).first()
    if profile is not None:
        profile.background_check_status = status
        profile.background_check_date = date.today()


def add_record(db: Session, user: User, data: Dict[str, Any]) -> ComplianceRecord:
    with atomic(db):
        record = ComplianceRecord(user_id=user.id, **data)
        if not record.status:
            record.status = "pending"
        db.add(record)
    return record


def list_records(
    db: Session,
    user: User,
    user_id: Optional[uuid.UUID] = None,
    record_type: Optional[str] = None,
    status: Optional[str] = None,
) -> List[ComplianceRecord]:
    query = db.query(ComplianceRecord)
    if user.role == "admin":
        if user_id is not None:
            query = query.filter(ComplianceRecord.user_id == user_id)
    elif user.role == "ppo" and user_id is not None:
        query = query.filter(ComplianceRecord.user_id == user_id)
    else:
        query = query.filter(ComplianceRecord.user_id == user.id)
    if record_type:
        query = query.filter(ComplianceRecord.record_type == record_type)
    if status:
        query = query.filter(ComplianceRecord.status == status)
    return query.order_by(ComplianceRecord.created_at.desc()).all()


def update_compliance_status(
    db: Session, record_id: uuid.UUID, status: str, notes: Optional[str] = None
) -> ComplianceRecord:
    _check_status(status)
    with atomic(db):
        record = db.query(ComplianceRecord).filter(ComplianceRecord.id == record_id).with_for_update().first()
        if record is None:
            raise NotFoundOrUnauthorized("Compliance record not found")
        record.status = status
        record.notes = notes
        _propagate_background_check(db, record, status)
    log.info("compliance_status_updated", record_id=str(record_id), status=status)
    return record


def bulk_update(
    db: Session, record_ids: Sequence[uuid.UUID], status: str, notes: Optional[str] = None
) -> List[ComplianceRecord]:
    """
    Set ``status`` on every record in ``record_ids``, all or nothing.

    An unknown id fails the whole batch, as does any error while
    propagating background checks onto agent profiles.
    """
    if not record_ids:
        raise ValidationError("Record IDs array required", field="record_ids")
    _check_status(status)
    wanted = set(record_ids)

    with atomic(db):
        records = (
            db.query(ComplianceRecord)
            .filter(ComplianceRecord.id.in_(wanted))
            .with_for_update()
            .all()
        )
        if len(records) != len(wanted):
            missing = wanted - {r.id for r in records}
            raise NotFoundOrUnauthorized(f"{len(missing)} compliance record(s) not found")
        for record in records:
            record.status = status
            record.notes = notes
            _propagate_background_check(db, record, status)

    log.info("compliance_bulk_updated", count=len(records), status=status)
    return records


def summary(db: Session, user_id: uuid.UUID, today: Optional[date] = None) -> Dict[str, Any]:
    today = today or date.today()
    records = db.query(ComplianceRecord).filter(ComplianceRecord.user_id == user_id).all()

    buckets: Dict[tuple, Dict[str, Any]] = defaultdict(lambda: {"count": 0, "latest_expiry": None})
    for record in records:
        bucket = buckets[(record.record_type, record.status)]
        bucket["count"] += 1
        if record.expiry_date and (bucket["latest_expiry"] is None or record.expiry_date > bucket["latest_expiry"]):
            bucket["latest_expiry"] = record.expiry_date

    cutoff = _expiry_cutoff(today)
    expiring = sorted(
        (r for r in records if r.expiry_date and today < r.expiry_date <= cutoff),
        key=lambda r: r.expiry_date,
    )
    return {
        "summary": [
            {"record_type": rt, "status": st, **values}
            for (rt, st), values in sorted(buckets.items())
        ],
        "expiring": expiring,
    }


def agent_issues(db: Session, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Agents with a non-approved background check or problem records, worst first."""
    today = today or date.today()
    cutoff = _expiry_cutoff(today)

    rows = (
        db.query(User, AgentProfile)
        .join(AgentProfile, AgentProfile.user_id == User.id)
        .filter(User.role == "agent")
        .all()
    )
    problem_records = (
        db.query(ComplianceRecord)
        .filter(
            or_(
                ComplianceRecord.status.in_(PROBLEM_STATUSES),
                ComplianceRecord.expiry_date.between(today + timedelta(days=1), cutoff),
            )
        )
        .all()
    )
    counts: Dict[uuid.UUID, Dict[str, int]] = defaultdict(
        lambda: {"expired_records": 0, "rejected_records": 0, "expiring_records": 0}
    )
    for record in problem_records:
        c = counts[record.user_id]
        if record.status == "expired":
            c["expired_records"] += 1
        elif record.status == "rejected":
            c["rejected_records"] += 1
        if record.expiry_date and today < record.expiry_date <= cutoff:
            c["expiring_records"] += 1

    issues = []
    for user, profile in rows:
        c = counts.get(user.id, {"expired_records": 0, "rejected_records": 0, "expiring_records": 0})
        if profile.background_check_status == "approved" and not any(c.values()):
            continue
        issues.append({
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "email": user.email,
            "background_check_status": profile.background_check_status,
            **c,
        })
    issues.sort(key=lambda i: (i["expired_records"], i["rejected_records"], i["expiring_records"]), reverse=True)
    return issues
