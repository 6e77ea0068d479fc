"""
Job assignment workflow.

Job lifecycle: open -> assigned -> in_progress -> completed, with cancelled
reachable from any non-terminal state. Every compound write runs inside
``atomic`` so a failure leaves no partial state behind.
"""
import uuid
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..errors import Conflict, NotFoundOrUnauthorized, ValidationError
from ..logging import get_logger
from ..models.models import AgentProfile, Job, JobAssignment, User
from .availability import conflicting_assignments
from .tx import atomic


log = get_logger(__name__)

JOB_STATUS_ORDER = ("open", "assigned", "in_progress", "completed")
TERMINAL_JOB_STATUSES = ("completed", "cancelled")
# Rows that still count against agents_needed / keep an agent off the candidate list
ACTIVE_ASSIGNMENT_EXCLUDES = ("declined", "no_show")


def can_transition(current: str, new: str) -> bool:
    if current == new:
        return True
    if current in TERMINAL_JOB_STATUSES:
        return False
    if new == "cancelled":
        return True
    if new not in JOB_STATUS_ORDER:
        return False
    return JOB_STATUS_ORDER.index(new) > JOB_STATUS_ORDER.index(current)


def _set_status(job: Job, new_status: str) -> bool:
    """Apply a validated transition. Returns True when the status changed."""
    if not can_transition(job.status, new_status):
        raise Conflict(f"Cannot move job from {job.status} to {new_status}")
    if job.status == new_status:
        return False
    job.status = new_status
    job.updated_at = datetime.utcnow()
    return True


def get_owned_job(db: Session, job_id: uuid.UUID, user: User) -> Job:
    """Job visible for mutation by ``user`` (client owner or assigned PPO)."""
    job = db.query(Job).filter(Job.id == job_id).first()
    if job is None:
        raise NotFoundOrUnauthorized("Job not found or unauthorized")
    if user.role == "client" and job.client_id == user.id:
        return job
    if user.role == "ppo" and job.ppo_id == user.id:
        return job
    raise NotFoundOrUnauthorized("Job not found or unauthorized")


def _active_user(db: Session, user_id: uuid.UUID, role: str) -> Optional[User]:
    return (
        db.query(User)
        .filter(User.id == user_id, User.role == role, User.is_active.is_(True))
        .first()
    )


def assign_ppo(db: Session, job_id: uuid.UUID, client: User, ppo_id: uuid.UUID) -> Tuple[Job, bool]:
    """
    Hand the job to a PPO.

    A paid job can already be ``assigned`` with no PPO (the payment webhook
    moves it); that job still takes its first PPO here.
    """
    with atomic(db):
        job = (
            db.query(Job)
            .filter(Job.id == job_id, Job.client_id == client.id)
            .with_for_update()
            .first()
        )
        if job is None:
            raise NotFoundOrUnauthorized("Job not found or unauthorized")
        if not (job.status == "open" or (job.status == "assigned" and job.ppo_id is None)):
            raise Conflict("Only open jobs can be handed to a PPO")
        if _active_user(db, ppo_id, "ppo") is None:
            raise NotFoundOrUnauthorized("PPO not found")
        job.ppo_id = ppo_id
        changed = _set_status(job, "assigned")
    log.info("job_ppo_assigned", job_id=str(job.id), ppo_id=str(ppo_id))
    return job, changed


def assign_agents(
    db: Session,
    job_id: uuid.UUID,
    ppo: User,
    agent_ids: Sequence[uuid.UUID],
) -> Tuple[Job, List[JobAssignment], bool]:
    """
    Replace the job's whole agent roster with ``agent_ids``.

    Destructive by design: every existing JobAssignment row for the job is
    removed (including interest, decline and history rows) and fresh
    ``assigned`` rows are written, then the job moves to in_progress.
    """
    if not agent_ids:
        raise ValidationError("Agent IDs array required", field="agent_ids")
    if len(set(agent_ids)) != len(agent_ids):
        raise ValidationError("Duplicate agent IDs", field="agent_ids")

    with atomic(db):
        job = (
            db.query(Job)
            .filter(Job.id == job_id, Job.ppo_id == ppo.id)
            .with_for_update()
            .first()
        )
        if job is None:
            raise NotFoundOrUnauthorized("Job not found or unauthorized")
        if len(agent_ids) > job.agents_needed:
            raise ValidationError("Too many agents assigned", field="agent_ids")
        if job.status in TERMINAL_JOB_STATUSES:
            raise Conflict(f"Job is {job.status}")

        for agent_id in agent_ids:
            if _active_user(db, agent_id, "agent") is None:
                raise NotFoundOrUnauthorized(f"Agent {agent_id} not found")
            if conflicting_assignments(db, agent_id, job.start_date, job.end_date, exclude_job_id=job.id):
                raise Conflict(f"Agent {agent_id} is already booked during this job")

        db.query(JobAssignment).filter(JobAssignment.job_id == job.id).delete(synchronize_session=False)
        db.flush()
        rows = [
            JobAssignment(job_id=job.id, agent_id=agent_id, hourly_rate=job.hourly_rate, status="assigned")
            for agent_id in agent_ids
        ]
        db.add_all(rows)
        changed = _set_status(job, "in_progress")

    log.info("job_agents_assigned", job_id=str(job.id), agent_count=len(rows))
    return job, rows, changed


def update_job_status(db: Session, job_id: uuid.UUID, user: User, new_status: str) -> Tuple[Job, bool]:
    with atomic(db):
        job = get_owned_job(db, job_id, user)
        changed = _set_status(job, new_status)
    if changed:
        log.info("job_status_changed", job_id=str(job.id), status=new_status, actor_id=str(user.id))
    return job, changed


def respond_to_assignment(db: Session, job_id: uuid.UUID, agent: User, action: str) -> JobAssignment:
    """Agent-side transitions on their own booking: accept, decline, complete."""
    with atomic(db):
        row = (
            db.query(JobAssignment)
            .filter(JobAssignment.job_id == job_id, JobAssignment.agent_id == agent.id)
            .with_for_update()
            .first()
        )
        if row is None:
            raise NotFoundOrUnauthorized("Assignment not found")
        now = datetime.utcnow()

        if action == "accept":
            if row.status != "assigned":
                raise Conflict(f"Cannot accept an assignment that is {row.status}")
            job = row.job
            if conflicting_assignments(db, agent.id, job.start_date, job.end_date, exclude_job_id=job.id):
                raise Conflict("You are already booked during this job")
            row.status = "accepted"
            row.accepted_at = now
        elif action == "decline":
            if row.status not in ("assigned", "accepted"):
                raise Conflict(f"Cannot decline an assignment that is {row.status}")
            row.status = "declined"
        elif action == "complete":
            if row.status != "accepted":
                raise Conflict(f"Cannot complete an assignment that is {row.status}")
            row.status = "completed"
            row.completed_at = now
            profile = db.query(AgentProfile).filter(AgentProfile.user_id == agent.id).first()
            if profile is not None:
                profile.total_jobs = (profile.total_jobs or 0) + 1
        else:
            raise ValidationError("Unknown action", field="action")

    log.info("assignment_updated", job_id=str(job_id), agent_id=str(agent.id), status=row.status)
    return row


def set_interest(db: Session, job_id: uuid.UUID, agent: User, interested: bool) -> Optional[JobAssignment]:
    """
    Record or withdraw an agent's interest in a job.

    Interest shares the JobAssignment row with formal assignments, so an
    existing non-interest row (assigned, declined, ...) is never overwritten.
    """
    with atomic(db):
        job = db.query(Job).filter(Job.id == job_id).first()
        if job is None:
            raise NotFoundOrUnauthorized("Job not found")
        if interested and job.status != "open":
            raise Conflict("Job is no longer open")
        row = (
            db.query(JobAssignment)
            .filter(JobAssignment.job_id == job_id, JobAssignment.agent_id == agent.id)
            .first()
        )
        if interested:
            if row is None:
                row = JobAssignment(job_id=job_id, agent_id=agent.id, hourly_rate=job.hourly_rate, status="interested")
                db.add(row)
            elif row.status != "interested":
                raise Conflict(f"Already linked to this job as {row.status}")
        else:
            if row is not None and row.status == "interested":
                db.delete(row)
            row = None
    return row
