from staffshield.models.models import AgentProfile, ClientProfile, User


def register(client, **kw):
    body = {
        "email": "Jordan@Example.com",
        "password": "s3cure-pass",
        "role": "agent",
        "first_name": "Jordan",
        "last_name": "Reyes",
    }
    body.update(kw)
    return client.post("/auth/register", json=body)


def test_register_creates_user_and_profile(client, db):
    resp = register(client)
    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["email"] == "jordan@example.com"
    assert body["user"]["role"] == "agent"
    assert body["access_token"] and body["refresh_token"]

    user = db.query(User).filter(User.email == "jordan@example.com").one()
    profile = db.query(AgentProfile).filter(AgentProfile.user_id == user.id).one()
    assert profile.availability_status == "available"
    assert profile.background_check_status == "pending"


def test_register_client_gets_client_profile(client, db):
    assert register(client, email="acme@example.com", role="client").status_code == 201
    user = db.query(User).filter(User.email == "acme@example.com").one()
    assert db.query(ClientProfile).filter(ClientProfile.user_id == user.id).count() == 1


def test_duplicate_email_conflicts(client):
    assert register(client).status_code == 201
    assert register(client, email="jordan@example.com").status_code == 409


def test_register_rejects_short_password_and_admin_role(client):
    resp = register(client, password="short")
    assert resp.status_code == 400
    assert resp.json()["field"] == "password"
    assert register(client, email="boss@example.com", role="admin").status_code == 400


def test_login_and_me(client):
    register(client)
    resp = client.post("/auth/login", json={"email": "jordan@example.com", "password": "s3cure-pass"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["first_name"] == "Jordan"


def test_login_with_wrong_password(client):
    register(client)
    resp = client.post("/auth/login", json={"email": "jordan@example.com", "password": "nope-nope"})
    assert resp.status_code == 401


def test_deactivated_account_cannot_log_in(client, make_user):
    user = make_user("agent", is_active=False)
    resp = client.post("/auth/login", json={"email": user.email, "password": "password123"})
    assert resp.status_code == 401


def test_refresh_issues_new_tokens(client):
    tokens = register(client).json()
    resp = client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert resp.status_code == 200
    assert resp.json()["token_type"] == "bearer"
    # an access token is not a refresh token
    resp = client.post("/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert resp.status_code == 401


def test_bad_bearer_token(client):
    assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401


def test_profile_update_validates_role_fields(client, headers, db, make_user):
    agent = make_user("agent")
    resp = client.put(
        "/users/profile",
        json={"phone": "555-0100", "profile": {"experience_years": 6, "certifications": ["CPR", "Armed"]}},
        headers=headers(agent),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["user"]["phone"] == "555-0100"
    assert body["profile"]["experience_years"] == 6
    assert body["profile"]["certifications"] == ["CPR", "Armed"]

    bad = client.put("/users/profile", json={"profile": {"experience_years": -1}}, headers=headers(agent))
    assert bad.status_code == 400
    assert bad.json()["field"] == "experience_years"


def test_agent_location_and_availability(client, headers, make_user):
    agent = make_user("agent")
    resp = client.put("/users/location", json={"lat": 40.7, "lng": -74.0}, headers=headers(agent))
    assert resp.status_code == 200
    assert resp.json()["profile"]["location_lat"] == 40.7
    resp = client.put("/users/availability", json={"status": "busy"}, headers=headers(agent))
    assert resp.json()["profile"]["availability_status"] == "busy"
    assert client.put("/users/availability", json={"status": "busy"}, headers=headers(make_user("ppo"))).status_code == 403


def test_agent_directory_filters(client, headers, make_user):
    near = make_user("agent", location_lat=40.71, location_lng=-74.0, certifications=["CPR"], rating=4.5)
    make_user("agent", location_lat=34.05, location_lng=-118.24, certifications=["CPR"], rating=5)
    make_user("agent", location_lat=40.72, location_lng=-74.0, certifications=["Armed"], rating=4)
    make_user("agent", location_lat=40.71, location_lng=-74.0, background_check_status="pending")

    resp = client.get(
        "/users/agents",
        params={"lat": 40.7, "lng": -74.0, "certifications": "CPR,First Aid"},
        headers=headers(make_user("client")),
    )
    assert resp.status_code == 200
    assert [a["user_id"] for a in resp.json()] == [str(near.id)]
    assert client.get("/users/agents", headers=headers(make_user("agent"))).status_code == 403
