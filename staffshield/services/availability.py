"""
Agent availability (booking conflict) detection.
HARD STOP rule: an agent may not hold two assigned/accepted bookings whose
job windows overlap. Windows are half-open [start, end); touching
endpoints do not overlap.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.models import Job, JobAssignment


BLOCKING_STATUSES = ("assigned", "accepted")


def windows_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """
    Two intervals overlap if: start1 < end2 AND start2 < end1
    """
    return start1 < end2 and start2 < end1


def _blocking_assignments(
    db: Session,
    agent_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_job_id: Optional[uuid.UUID] = None,
):
    query = (
        db.query(JobAssignment)
        .join(Job, Job.id == JobAssignment.job_id)
        .filter(
            JobAssignment.agent_id == agent_id,
            JobAssignment.status.in_(BLOCKING_STATUSES),
            Job.start_date < end,
            Job.end_date > start,
        )
    )
    if exclude_job_id:
        query = query.filter(JobAssignment.job_id != exclude_job_id)
    return query


def is_agent_available(
    db: Session,
    agent_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_job_id: Optional[uuid.UUID] = None,
) -> bool:
    """
    Check whether an agent is free for the window [start, end).

    Args:
        db: Database session
        agent_id: Agent user ID
        start: Window start
        end: Window end
        exclude_job_id: Job whose own bookings are ignored (the job being staffed)

    Returns:
        True if no assigned/accepted booking overlaps the window
    """
    query = _blocking_assignments(db, agent_id, start, end, exclude_job_id)
    return not db.query(query.exists()).scalar()


def conflicting_assignments(
    db: Session,
    agent_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_job_id: Optional[uuid.UUID] = None,
) -> List[JobAssignment]:
    """Bookings that make the agent unavailable for the window."""
    return _blocking_assignments(db, agent_id, start, end, exclude_job_id).all()


def busy_agent_ids(start: datetime, end: datetime):
    """
    Selectable of agent ids with a blocking booking overlapping [start, end).
    Used as a NOT IN predicate so busy agents are dropped before scoring.
    """
    return (
        select(JobAssignment.agent_id)
        .join(Job, Job.id == JobAssignment.job_id)
        .where(
            JobAssignment.status.in_(BLOCKING_STATUSES),
            Job.start_date < end,
            Job.end_date > start,
        )
    )
