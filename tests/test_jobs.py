from datetime import datetime, timedelta

from staffshield.models.models import AgentProfile, Job, JobAssignment


def job_payload(**kw):
    start = datetime.utcnow() + timedelta(days=1)
    body = {
        "title": "Concert detail",
        "description": "Crowd control",
        "location_address": "500 Arena Way",
        "start_date": start.isoformat(),
        "end_date": (start + timedelta(hours=6)).isoformat(),
        "hourly_rate": 45,
        "agents_needed": 2,
        "required_certifications": ["CPR"],
        "urgency_level": "high",
    }
    body.update(kw)
    return body


def test_client_creates_job(client, headers, make_user):
    owner = make_user("client")
    resp = client.post("/jobs", json=job_payload(), headers=headers(owner))
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "open"
    assert body["client_id"] == str(owner.id)
    assert body["urgency_level"] == "high"


def test_job_window_must_be_ordered(client, headers, make_user):
    owner = make_user("client")
    start = datetime.utcnow() + timedelta(days=1)
    resp = client.post(
        "/jobs",
        json=job_payload(start_date=start.isoformat(), end_date=start.isoformat()),
        headers=headers(owner),
    )
    assert resp.status_code == 400


def test_aware_datetimes_are_stored_as_utc(client, headers, make_user):
    owner = make_user("client")
    resp = client.post(
        "/jobs",
        json=job_payload(start_date="2031-05-01T12:00:00+02:00", end_date="2031-05-01T16:00:00+02:00"),
        headers=headers(owner),
    )
    assert resp.status_code == 201
    assert resp.json()["start_date"].startswith("2031-05-01T10:00:00")


def test_only_clients_post_jobs(client, headers, make_user):
    resp = client.post("/jobs", json=job_payload(), headers=headers(make_user("agent")))
    assert resp.status_code == 403
    assert client.post("/jobs", json=job_payload()).status_code == 401


def test_job_list_is_role_scoped(client, headers, make_user, make_job):
    mine, other = make_user("client"), make_user("client")
    ppo = make_user("ppo")
    make_job(mine)
    make_job(other, ppo_id=ppo.id, status="assigned")
    make_job(other, ppo_id=make_user("ppo").id, status="assigned")

    assert len(client.get("/jobs", headers=headers(mine)).json()) == 1
    # own plus unassigned
    assert len(client.get("/jobs", headers=headers(ppo)).json()) == 2
    assert len(client.get("/jobs", headers=headers(make_user("agent"))).json()) == 3


def test_assign_ppo_then_agents_replaces_roster(client, headers, db, events, make_user, make_job):
    owner, ppo = make_user("client"), make_user("ppo")
    a, b, c = make_user("agent"), make_user("agent"), make_user("agent")
    job = make_job(owner, agents_needed=2)

    resp = client.post(f"/jobs/{job.id}/assign-ppo", json={"ppo_id": str(ppo.id)}, headers=headers(owner))
    assert resp.status_code == 200
    assert resp.json()["status"] == "assigned"

    resp = client.post(
        f"/jobs/{job.id}/assign-agents",
        json={"agent_ids": [str(a.id), str(b.id)]},
        headers=headers(ppo),
    )
    assert resp.status_code == 200
    assert resp.json()["job"]["status"] == "in_progress"
    assert all(r["hourly_rate"] == 50 for r in resp.json()["assignments"])

    resp = client.post(f"/jobs/{job.id}/assign-agents", json={"agent_ids": [str(c.id)]}, headers=headers(ppo))
    assert resp.status_code == 200

    db.expire_all()
    rows = db.query(JobAssignment).filter(JobAssignment.job_id == job.id).all()
    assert [r.agent_id for r in rows] == [c.id]
    assert rows[0].status == "assigned"

    statuses = [p["newStatus"] for room, p in events.named("job_status_update") if room == f"job:{job.id}"]
    # replacing the roster of an in-progress job does not re-announce
    assert statuses == ["assigned", "in_progress"]


def test_too_many_agents_is_rejected(client, headers, make_user, make_job):
    owner, ppo = make_user("client"), make_user("ppo")
    job = make_job(owner, agents_needed=1, ppo_id=ppo.id, status="assigned")
    ids = [str(make_user("agent").id), str(make_user("agent").id)]
    resp = client.post(f"/jobs/{job.id}/assign-agents", json={"agent_ids": ids}, headers=headers(ppo))
    assert resp.status_code == 400
    assert resp.json()["field"] == "agent_ids"


def test_double_booking_is_a_conflict_and_rolls_back(client, headers, db, make_user, make_job):
    owner, ppo = make_user("client"), make_user("ppo")
    busy, free = make_user("agent"), make_user("agent")
    start = datetime.utcnow() + timedelta(days=5)
    other = make_job(owner, start=start, hours=8)
    db.add(JobAssignment(job_id=other.id, agent_id=busy.id, status="accepted"))
    job = make_job(owner, start=start + timedelta(hours=2), ppo_id=ppo.id, status="assigned")
    db.add(JobAssignment(job_id=job.id, agent_id=free.id, status="interested"))
    db.commit()

    resp = client.post(
        f"/jobs/{job.id}/assign-agents",
        json={"agent_ids": [str(free.id), str(busy.id)]},
        headers=headers(ppo),
    )
    assert resp.status_code == 409

    db.expire_all()
    assert db.get(Job, job.id).status == "assigned"
    rows = db.query(JobAssignment).filter(JobAssignment.job_id == job.id).all()
    assert [(r.agent_id, r.status) for r in rows] == [(free.id, "interested")]


def test_assign_agents_requires_the_assigned_ppo(client, headers, make_user, make_job):
    owner = make_user("client")
    job = make_job(owner, ppo_id=make_user("ppo").id, status="assigned")
    resp = client.post(
        f"/jobs/{job.id}/assign-agents",
        json={"agent_ids": [str(make_user("agent").id)]},
        headers=headers(make_user("ppo")),
    )
    assert resp.status_code == 404


def test_status_moves_forward_only(client, headers, events, make_user, make_job):
    owner = make_user("client")
    job = make_job(owner)
    url = f"/jobs/{job.id}/status"

    assert client.put(url, json={"status": "completed"}, headers=headers(owner)).status_code == 200
    resp = client.put(url, json={"status": "open"}, headers=headers(owner))
    assert resp.status_code == 409
    assert client.put(url, json={"status": "cancelled"}, headers=headers(owner)).status_code == 409
    # same status is a no-op and does not re-announce
    assert client.put(url, json={"status": "completed"}, headers=headers(owner)).status_code == 200
    assert [p["newStatus"] for _, p in events.named("job_status_update")] == ["completed"]


def test_cancel_from_in_progress(client, headers, make_user, make_job):
    owner = make_user("client")
    job = make_job(owner, status="in_progress")
    resp = client.put(f"/jobs/{job.id}/status", json={"status": "cancelled"}, headers=headers(owner))
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"


def test_agents_cannot_change_job_status(client, headers, make_user, make_job):
    job = make_job(make_user("client"))
    resp = client.put(f"/jobs/{job.id}/status", json={"status": "assigned"}, headers=headers(make_user("agent")))
    assert resp.status_code == 403


def test_agent_accepts_then_completes(client, headers, db, make_user, make_job):
    owner = make_user("client")
    agent = make_user("agent", total_jobs=3)
    job = make_job(owner, status="in_progress")
    db.add(JobAssignment(job_id=job.id, agent_id=agent.id, status="assigned"))
    db.commit()

    base = f"/jobs/{job.id}/assignment"
    assert client.post(f"{base}/complete", headers=headers(agent)).status_code == 409
    resp = client.post(f"{base}/accept", headers=headers(agent))
    assert resp.status_code == 200
    assert resp.json()["status"] == "accepted"
    resp = client.post(f"{base}/complete", headers=headers(agent))
    assert resp.json()["status"] == "completed"

    db.expire_all()
    assert db.query(AgentProfile).filter(AgentProfile.user_id == agent.id).one().total_jobs == 4


def test_declined_assignment_is_never_revived(client, headers, db, make_user, make_job):
    owner = make_user("client")
    agent = make_user("agent")
    job = make_job(owner)
    db.add(JobAssignment(job_id=job.id, agent_id=agent.id, status="assigned"))
    db.commit()

    base = f"/jobs/{job.id}/assignment"
    assert client.post(f"{base}/decline", headers=headers(agent)).status_code == 200
    assert client.post(f"{base}/accept", headers=headers(agent)).status_code == 409
    resp = client.post("/matching/preferences", json={"job_id": str(job.id)}, headers=headers(agent))
    assert resp.status_code == 409


def test_get_job_includes_assignments(client, headers, db, make_user, make_job):
    owner = make_user("client")
    job = make_job(owner)
    db.add(JobAssignment(job_id=job.id, agent_id=make_user("agent").id, status="interested"))
    db.commit()
    resp = client.get(f"/jobs/{job.id}", headers=headers(owner))
    assert resp.status_code == 200
    assert [a["status"] for a in resp.json()["assignments"]] == ["interested"]
