import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import Job, User
from ..schemas.jobs import (
    AssignAgentsRequest,
    AssignAgentsResponse,
    AssignmentAction,
    AssignmentOut,
    AssignPpoRequest,
    JobCreate,
    JobDetail,
    JobOut,
    JobStatus,
    JobStatusUpdate,
    UrgencyLevel,
)
from ..services import assignments
from ..services.realtime import job_room, publish
from ..services.tx import atomic


router = APIRouter(prefix="/jobs", tags=["jobs"])


def announce_status(job: Job) -> None:
    publish(job_room(job.id), "job_status_update", {"jobId": str(job.id), "newStatus": job.status})


@router.post("", response_model=JobOut, status_code=201)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("client")),
):
    with atomic(db):
        job = Job(client_id=user.id, status="open", **payload.model_dump())
        db.add(job)
    return job


@router.get("", response_model=List[JobOut])
def list_jobs(
    status: Optional[JobStatus] = Query(None),
    urgency: Optional[UrgencyLevel] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(Job)
    if user.role == "client":
        query = query.filter(Job.client_id == user.id)
    elif user.role == "ppo":
        query = query.filter(or_(Job.ppo_id == user.id, Job.ppo_id.is_(None)))
    if status:
        query = query.filter(Job.status == status.value)
    if urgency:
        query = query.filter(Job.urgency_level == urgency.value)
    return query.order_by(Job.created_at.desc(), Job.id).limit(limit).offset(offset).all()


@router.get("/{job_id}", response_model=JobDetail)
def get_job(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    job = db.query(Job).options(selectinload(Job.assignments)).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.post("/{job_id}/assign-ppo", response_model=JobOut)
def assign_ppo(
    job_id: uuid.UUID,
    payload: AssignPpoRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("client")),
):
    job, changed = assignments.assign_ppo(db, job_id, user, payload.ppo_id)
    if changed:
        announce_status(job)
    return job


@router.post("/{job_id}/assign-agents", response_model=AssignAgentsResponse)
def assign_agents(
    job_id: uuid.UUID,
    payload: AssignAgentsRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo")),
):
    job, rows, changed = assignments.assign_agents(db, job_id, user, payload.agent_ids)
    if changed:
        announce_status(job)
    return {"job": job, "assignments": rows}


@router.put("/{job_id}/status", response_model=JobOut)
def update_status(
    job_id: uuid.UUID,
    payload: JobStatusUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("client", "ppo")),
):
    job, changed = assignments.update_job_status(db, job_id, user, payload.status.value)
    if changed:
        announce_status(job)
    return job


@router.post("/{job_id}/assignment/{action}", response_model=AssignmentOut)
def respond(
    job_id: uuid.UUID,
    action: AssignmentAction,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("agent")),
):
    return assignments.respond_to_assignment(db, job_id, user, action.value)
