"""
Job <-> agent compatibility scoring.

Weighted-sum score, base 100, plus distance, rate, certification and
experience components. The two search directions are deliberately not
mirror images:

- agent for job (a PPO or client staffing a job) adds rating and current
  availability, and tolerates agents asking up to 1.5x the job's rate;
- job for agent (an agent browsing work) adds job urgency, and accepts
  jobs paying down to 0.6x the agent's rate.

Everything here is pure: no database access and no mutation of inputs.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from .geo import distance_between


BASE_SCORE = 100
HIGH_MATCH_THRESHOLD = 150

URGENCY_POINTS = {"urgent": 20, "high": 15, "normal": 10, "low": 5}
AVAILABILITY_POINTS = {"available": 20, "busy": 5, "offline": 0}


@dataclass(frozen=True)
class MatchScore:
    score: int
    reasons: List[str] = field(default_factory=list)
    distance_km: Optional[float] = None


def _num(value: Any, default: float = 0.0) -> float:
    return default if value is None else float(value)


def distance_points(distance_km: Optional[float]) -> float:
    if distance_km is None:
        return 0
    return max(0.0, 50 - min(50.0, distance_km))


def agent_rate_points(agent_rate: Optional[float], job_rate: float) -> int:
    """Agent's asking rate against the job's offer (staffing a job)."""
    if agent_rate is None:
        return 0
    agent_rate = float(agent_rate)
    job_rate = float(job_rate)
    if agent_rate <= job_rate:
        return 30
    if agent_rate <= job_rate * 1.2:
        return 20
    if agent_rate <= job_rate * 1.5:
        return 10
    return 0


def job_rate_points(job_rate: float, agent_rate: Optional[float]) -> int:
    """Job's offer against the agent's asking rate (browsing work)."""
    job_rate = float(job_rate)
    agent_rate = _num(agent_rate)
    if job_rate >= agent_rate:
        return 30
    if job_rate >= agent_rate * 0.8:
        return 20
    if job_rate >= agent_rate * 0.6:
        return 10
    return 0


def certification_points(required: Optional[Sequence[str]], held: Optional[Sequence[str]]) -> int:
    # A job without requirements is never penalized
    if not required:
        return 20
    if held and set(required) & set(held):
        return 40
    return 0


def experience_points(years: Optional[int]) -> int:
    years = _num(years)
    if years >= 5:
        return 15
    if years >= 2:
        return 10
    if years >= 1:
        return 5
    return 0


def rating_points(rating: Optional[float]) -> int:
    rating = _num(rating)
    if rating >= 4.5:
        return 20
    if rating >= 4.0:
        return 15
    if rating >= 3.5:
        return 10
    return 0


def _location_reason(distance_km: Optional[float]) -> Optional[str]:
    if distance_km is None:
        return None
    if distance_km <= 10:
        return "Very close location"
    if distance_km <= 25:
        return "Close location"
    return None


def score_agent_for_job(job, agent) -> MatchScore:
    """
    Score a candidate agent for a job.

    Args:
        job: Job-like object (hourly_rate, required_certifications, location_lat/lng)
        agent: AgentProfile-like object (hourly_rate, certifications, rating,
            experience_years, availability_status, location_lat/lng)

    Returns:
        MatchScore with total, reasons and distance (if both points are known)
    """
    distance = distance_between(job.location_lat, job.location_lng, agent.location_lat, agent.location_lng)
    required = job.required_certifications or []
    held = agent.certifications or []

    total = (
        BASE_SCORE
        + distance_points(distance)
        + agent_rate_points(agent.hourly_rate, job.hourly_rate)
        + certification_points(required, held)
        + rating_points(agent.rating)
        + experience_points(agent.experience_years)
        + AVAILABILITY_POINTS.get(agent.availability_status, 0)
    )
    score = int(round(total))

    reasons = []
    if score >= HIGH_MATCH_THRESHOLD:
        reasons.append("Excellent match")
    if _num(agent.rating) >= 4.5:
        reasons.append("Top rated")
    if agent.hourly_rate is not None and float(agent.hourly_rate) <= float(job.hourly_rate):
        reasons.append("Rate compatible")
    if required and set(required) <= set(held):
        reasons.append("All certifications match")
    elif required and set(required) & set(held):
        reasons.append("Certification match")
    if agent.availability_status == "available":
        reasons.append("Currently available")
    if _num(agent.experience_years) >= 5:
        reasons.append("Highly experienced")
    location = _location_reason(distance)
    if location:
        reasons.append(location)

    return MatchScore(score=score, reasons=reasons, distance_km=distance)


def score_job_for_agent(
    agent,
    job,
    origin: Optional[Tuple[float, float]] = None,
) -> MatchScore:
    """
    Score a candidate job for an agent.

    ``origin`` (lat, lng) overrides the agent's stored location, e.g. when the
    agent searches around where they are right now.
    """
    if origin is not None:
        origin_lat, origin_lng = origin
    else:
        origin_lat, origin_lng = agent.location_lat, agent.location_lng
    distance = distance_between(origin_lat, origin_lng, job.location_lat, job.location_lng)
    required = job.required_certifications or []
    held = agent.certifications or []

    total = (
        BASE_SCORE
        + distance_points(distance)
        + job_rate_points(job.hourly_rate, agent.hourly_rate)
        + certification_points(required, held)
        + URGENCY_POINTS.get(job.urgency_level, 5)
        + experience_points(agent.experience_years)
    )
    score = int(round(total))

    reasons = []
    if score >= HIGH_MATCH_THRESHOLD:
        reasons.append("High overall match")
    if float(job.hourly_rate) >= _num(agent.hourly_rate):
        reasons.append("Good pay rate")
    if required and set(required) & set(held):
        reasons.append("Certification match")
    if job.urgency_level == "urgent":
        reasons.append("Urgent job")
    location = _location_reason(distance)
    if location:
        reasons.append(location)

    return MatchScore(score=score, reasons=reasons, distance_km=distance)


def rank(candidates: Iterable[Any], scorer: Callable[[Any], MatchScore]) -> List[Tuple[Any, MatchScore]]:
    """
    Score candidates and order them best first.
    sorted() is stable, so equal scores keep the incoming order.
    """
    scored = [(candidate, scorer(candidate)) for candidate in candidates]
    return sorted(scored, key=lambda pair: pair[1].score, reverse=True)
