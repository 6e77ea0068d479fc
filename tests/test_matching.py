from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from staffshield.services.geo import distance_between, haversine_km
from staffshield.services.matching import (
    certification_points,
    rank,
    score_agent_for_job,
    score_job_for_agent,
)


def job_like(**kw):
    base = dict(
        hourly_rate=150,
        required_certifications=["CPR"],
        urgency_level="urgent",
        location_lat=None,
        location_lng=None,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def agent_like(**kw):
    base = dict(
        hourly_rate=140,
        certifications=["CPR", "Security License"],
        rating=4.6,
        experience_years=6,
        availability_status="available",
        location_lat=None,
        location_lng=None,
    )
    base.update(kw)
    return SimpleNamespace(**base)


def test_worked_example_scores_205():
    match = score_job_for_agent(agent_like(), job_like())
    assert match.score == 205
    assert "High overall match" in match.reasons
    assert "Certification match" in match.reasons
    assert "Urgent job" in match.reasons
    assert match.distance_km is None


def test_scoring_is_repeatable_and_does_not_mutate():
    agent, job = agent_like(), job_like()
    before = (list(agent.certifications), list(job.required_certifications))
    first = score_agent_for_job(job, agent)
    second = score_agent_for_job(job, agent)
    assert first == second
    assert (agent.certifications, job.required_certifications) == before


@pytest.mark.parametrize("required", [None, []])
def test_no_requirement_is_flat_twenty(required):
    assert certification_points(required, []) == 20
    assert certification_points(required, ["CPR", "First Aid"]) == 20


def test_any_overlap_earns_full_certification_points():
    assert certification_points(["CPR", "Firearms"], ["CPR"]) == 40
    assert certification_points(["Firearms"], ["CPR"]) == 0


def test_agent_for_job_direction():
    # 100 + 30 rate + 40 certs + 20 rating + 15 experience + 20 available
    match = score_agent_for_job(job_like(), agent_like())
    assert match.score == 225
    assert match.reasons[:3] == ["Excellent match", "Top rated", "Rate compatible"]
    assert "All certifications match" in match.reasons
    assert "Currently available" in match.reasons
    assert "Highly experienced" in match.reasons


def test_rate_tiers_are_not_mirror_images():
    job = job_like(required_certifications=None, urgency_level="low")
    pricey = agent_like(hourly_rate=200, rating=0, experience_years=0, availability_status="offline")
    # agent asks 1.33x the job: 10 points when staffing the job
    assert score_agent_for_job(job, pricey).score == 100 + 10 + 20
    # job pays 0.75x the agent: 10 points when the agent browses
    assert score_job_for_agent(pricey, job).score == 100 + 10 + 20 + 5


def test_distance_component_and_location_reasons():
    job = job_like(location_lat=40.7128, location_lng=-74.0060)
    near = agent_like(location_lat=40.7306, location_lng=-73.9352)
    match = score_agent_for_job(job, near)
    assert match.distance_km == pytest.approx(6.3, abs=0.3)
    assert "Very close location" in match.reasons
    assert match.score == 225 + round(50 - match.distance_km)


def test_origin_overrides_stored_point():
    job = job_like(location_lat=51.5074, location_lng=-0.1278)
    agent = agent_like(location_lat=40.0, location_lng=-74.0)
    far = score_job_for_agent(agent, job)
    here = score_job_for_agent(agent, job, origin=(51.5074, -0.1278))
    assert far.distance_km > 5000
    assert here.distance_km == pytest.approx(0.0)
    assert here.score - far.score == 50


def test_haversine_symmetric_and_zero():
    a = (48.8566, 2.3522)
    b = (52.5200, 13.4050)
    assert haversine_km(*a, *b) == pytest.approx(haversine_km(*b, *a))
    assert haversine_km(*a, *a) == 0
    assert distance_between(None, 2.0, 1.0, 2.0) is None


def test_rank_is_stable_for_ties():
    now = datetime.utcnow()
    jobs = [
        SimpleNamespace(name=n, created_at=now + timedelta(minutes=i), **vars(job_like()))
        for i, n in enumerate(["first", "second", "third"])
    ]
    ranked = rank(jobs, lambda j: score_job_for_agent(agent_like(), j))
    assert [j.name for j, _ in ranked] == ["first", "second", "third"]


def test_rank_orders_best_first():
    low = job_like(urgency_level="low", hourly_rate=10)
    high = job_like(urgency_level="urgent")
    ranked = rank([low, high], lambda j: score_job_for_agent(agent_like(), j))
    assert ranked[0][0] is high
    assert ranked[0][1].score > ranked[1][1].score
