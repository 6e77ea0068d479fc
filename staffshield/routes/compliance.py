import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import User
from ..schemas.compliance import (
    AgentIssue,
    BulkUpdate,
    BulkUpdateResponse,
    ComplianceStatus,
    ComplianceType,
    RecordCreate,
    RecordOut,
    StatusUpdate,
    SummaryResponse,
)
from ..services import compliance


router = APIRouter(prefix="/compliance", tags=["compliance"])


@router.post("/records", response_model=RecordOut, status_code=201)
def add_record(
    payload: RecordCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return compliance.add_record(db, user, payload.model_dump())


@router.get("/records", response_model=List[RecordOut])
def list_records(
    record_type: Optional[ComplianceType] = Query(None),
    status: Optional[ComplianceStatus] = Query(None),
    user_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return compliance.list_records(
        db,
        user,
        user_id=user_id,
        record_type=record_type.value if record_type else None,
        status=status.value if status else None,
    )


@router.put("/records/{record_id}/status", response_model=RecordOut)
def update_status(
    record_id: uuid.UUID,
    payload: StatusUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("ppo", "admin")),
):
    return compliance.update_compliance_status(db, record_id, payload.status.value, payload.notes)


@router.post("/records/bulk-update", response_model=BulkUpdateResponse)
def bulk_update(
    payload: BulkUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("ppo", "admin")),
):
    records = compliance.bulk_update(db, payload.record_ids, payload.status.value, payload.notes)
    return {"updated": len(records), "records": records}


@router.get("/summary", response_model=SummaryResponse)
def summary(
    user_id: Optional[uuid.UUID] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    target = user_id or user.id
    if target != user.id and user.role not in ("ppo", "admin"):
        raise HTTPException(status_code=403, detail="Forbidden")
    return compliance.summary(db, target)


@router.get("/agents/issues", response_model=List[AgentIssue])
def agent_issues(
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("ppo")),
):
    return compliance.agent_issues(db)
