import uuid

from staffshield.db import _engine_options


def test_request_id_is_echoed(client):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.headers["X-Request-ID"] == "req-123"


def test_request_id_is_minted_when_absent(client):
    resp = client.get("/health")
    assert uuid.UUID(resp.headers["X-Request-ID"])


def test_authenticated_request_carries_request_id(client, headers, make_user):
    resp = client.get("/auth/me", headers={**headers(make_user("agent")), "X-Request-ID": "req-me"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-me"


def test_engine_options_by_backend():
    assert _engine_options("sqlite:///./var/dev.db") == {"connect_args": {"check_same_thread": False}}
    assert _engine_options("postgresql+psycopg2://u:p@db/app")["pool_size"] == 5
