import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..config import settings
from ..db import get_db
from ..errors import NotFoundOrUnauthorized
from ..models.models import AgentProfile, Job, JobAssignment, User
from ..schemas.jobs import JobOut
from ..schemas.matching import AgentMatch, JobMatch, MatchStats, PreferenceRequest
from ..services import assignments
from ..services.assignments import ACTIVE_ASSIGNMENT_EXCLUDES
from ..services.availability import busy_agent_ids
from ..services.matching import rank, score_agent_for_job, score_job_for_agent
from .users import agent_listing


router = APIRouter(prefix="/matching", tags=["matching"])


def candidate_jobs(db: Session, agent_id: uuid.UUID, now: datetime) -> List[Job]:
    """Open, upcoming jobs the agent has no link to in any status."""
    linked = select(JobAssignment.job_id).where(JobAssignment.agent_id == agent_id)
    return (
        db.query(Job)
        .filter(Job.status == "open", Job.start_date > now, Job.id.notin_(linked))
        .order_by(Job.created_at, Job.id)
        .all()
    )


def candidate_agents(db: Session, job: Job):
    """Approved, active agents not already on the job and free for its window."""
    on_job = select(JobAssignment.agent_id).where(
        JobAssignment.job_id == job.id,
        JobAssignment.status.notin_(ACTIVE_ASSIGNMENT_EXCLUDES),
    )
    return (
        db.query(User, AgentProfile)
        .join(AgentProfile, AgentProfile.user_id == User.id)
        .filter(
            User.role == "agent",
            User.is_active.is_(True),
            AgentProfile.background_check_status == "approved",
            User.id.notin_(on_job),
            User.id.notin_(busy_agent_ids(job.start_date, job.end_date)),
        )
        .order_by(User.created_at, User.id)
        .all()
    )


@router.get("/jobs", response_model=List[JobMatch])
def match_jobs(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius: Optional[float] = Query(None, gt=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("agent")),
):
    agent = db.query(AgentProfile).filter(AgentProfile.user_id == user.id).first()
    if agent is None:
        raise NotFoundOrUnauthorized("Agent profile not found")

    origin = (lat, lng) if lat is not None and lng is not None else None
    radius_km = radius or settings.match_default_radius_km
    ranked = rank(
        candidate_jobs(db, user.id, datetime.utcnow()),
        lambda job: score_job_for_agent(agent, job, origin=origin),
    )

    results = []
    for job, match in ranked:
        if origin is not None and (match.distance_km is None or match.distance_km > radius_km):
            continue
        body = JobOut.model_validate(job).model_dump()
        body.update(match_score=match.score, match_reasons=match.reasons, distance_km=match.distance_km)
        results.append(body)
        if len(results) >= (limit or settings.match_jobs_limit):
            break
    return results


@router.get("/agents/{job_id}", response_model=List[AgentMatch])
def match_agents(
    job_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo", "client")),
):
    job = assignments.get_owned_job(db, job_id, user)
    ranked = rank(
        candidate_agents(db, job),
        lambda pair: score_agent_for_job(job, pair[1]),
    )
    results = []
    for (agent_user, profile), match in ranked[: settings.match_agents_limit]:
        body = agent_listing(agent_user, profile, match.distance_km)
        body.update(match_score=match.score, match_reasons=match.reasons)
        results.append(body)
    return results


def _avg(value) -> Optional[float]:
    return None if value is None else round(float(value), 2)


@router.get("/stats", response_model=MatchStats)
def stats(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    now = datetime.utcnow()
    if user.role == "agent":
        upcoming = db.query(Job).filter(Job.start_date > now)
        data = {
            "available_jobs": upcoming.filter(Job.status == "open").count(),
            "urgent_jobs": upcoming.filter(Job.urgency_level == "urgent").count(),
            "avg_hourly_rate": _avg(db.query(func.avg(Job.hourly_rate)).filter(Job.start_date > now).scalar()),
            "applied_jobs": (
                db.query(JobAssignment)
                .join(Job, Job.id == JobAssignment.job_id)
                .filter(JobAssignment.agent_id == user.id, Job.start_date > now)
                .count()
            ),
        }
    elif user.role == "ppo":
        agents = (
            db.query(AgentProfile)
            .join(User, User.id == AgentProfile.user_id)
            .filter(User.role == "agent", User.is_active.is_(True))
        )
        averages = agents.with_entities(func.avg(AgentProfile.hourly_rate), func.avg(AgentProfile.rating)).one()
        data = {
            "available_agents": agents.filter(AgentProfile.availability_status == "available").count(),
            "approved_agents": agents.filter(AgentProfile.background_check_status == "approved").count(),
            "avg_agent_rate": _avg(averages[0]),
            "avg_agent_rating": _avg(averages[1]),
        }
    elif user.role == "client":
        own = db.query(Job).filter(Job.client_id == user.id)
        data = {
            "open_jobs": own.filter(Job.status == "open").count(),
            "completed_jobs": own.filter(Job.status == "completed").count(),
            "available_ppos": db.query(User).filter(User.role == "ppo", User.is_active.is_(True)).count(),
            "avg_job_rate": _avg(db.query(func.avg(Job.hourly_rate)).filter(Job.client_id == user.id).scalar()),
        }
    else:
        data = {
            "open_jobs": db.query(Job).filter(Job.status == "open").count(),
            "active_agents": db.query(User).filter(User.role == "agent", User.is_active.is_(True)).count(),
            "active_ppos": db.query(User).filter(User.role == "ppo", User.is_active.is_(True)).count(),
        }
    return {"role": user.role, "stats": data}


@router.post("/preferences")
def set_preference(
    payload: PreferenceRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("agent")),
):
    row = assignments.set_interest(db, payload.job_id, user, payload.interested)
    return {
        "job_id": payload.job_id,
        "interested": payload.interested,
        "assignment_id": row.id if row is not None else None,
    }
