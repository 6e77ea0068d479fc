import uuid
from datetime import datetime, timedelta
from types import SimpleNamespace

from staffshield.models.models import Message
from staffshield.services.conversations import group_threads


ME, ALICE, BOB = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
JOB = uuid.uuid4()
T0 = datetime(2030, 1, 1, 12, 0)


def msg(sender, recipient, minutes, content="hi", job_id=None, is_read=False):
    return SimpleNamespace(
        sender_id=sender,
        recipient_id=recipient,
        job_id=job_id,
        content=content,
        message_type="text",
        is_read=is_read,
        created_at=T0 + timedelta(minutes=minutes),
    )


def test_threads_split_by_job_scope():
    threads = group_threads(ME, [
        msg(ALICE, ME, 1, "general"),
        msg(ALICE, ME, 2, "about the job", job_id=JOB),
        msg(ME, ALICE, 3, "re job", job_id=JOB),
    ])
    keys = [(t["other_user_id"], t["job_id"]) for t in threads]
    assert keys == [(ALICE, JOB), (ALICE, None)]
    assert threads[0]["last_message"] == "re job"


def test_unread_counts_only_received_messages():
    threads = group_threads(ME, [
        msg(BOB, ME, 1),
        msg(BOB, ME, 2, is_read=True),
        msg(BOB, ME, 3),
        msg(ME, BOB, 4),
    ])
    assert len(threads) == 1
    assert threads[0]["unread_count"] == 2
    assert threads[0]["last_message_time"] == T0 + timedelta(minutes=4)


def test_threads_ordered_by_latest_activity():
    threads = group_threads(ME, [
        msg(ALICE, ME, 5, "late"),
        msg(BOB, ME, 1, "early"),
        msg(ME, BOB, 9, "latest"),
        msg(ALICE, BOB, 20, "not mine"),
    ])
    assert [t["other_user_id"] for t in threads] == [BOB, ALICE]
    assert [t["last_message"] for t in threads] == ["latest", "late"]


def test_no_messages_no_threads():
    assert group_threads(ME, []) == []


def test_send_and_read_flow(client, headers, db, events, make_user, make_job):
    owner, agent = make_user("client"), make_user("agent")
    job = make_job(owner)

    resp = client.post(
        "/messages",
        json={"recipient_id": str(agent.id), "content": "Can you cover Friday?", "job_id": str(job.id)},
        headers=headers(owner),
    )
    assert resp.status_code == 201
    client.post("/messages", json={"recipient_id": str(agent.id), "content": "Also a general note"}, headers=headers(owner))

    pushed = events.named("new_message")
    assert [room for room, _ in pushed] == [f"user:{agent.id}"] * 2
    assert pushed[0][1]["sender_name"] == owner.full_name

    assert client.get("/messages/unread-count", headers=headers(agent)).json() == {"unread_count": 2}
    threads = client.get("/messages/conversations", headers=headers(agent)).json()
    assert len(threads) == 2
    scoped = next(t for t in threads if t["job_id"] == str(job.id))
    assert scoped["job_title"] == job.title
    assert scoped["unread_count"] == 1
    assert scoped["other_first_name"] == owner.first_name

    page = client.get(f"/messages/conversation/{owner.id}", headers=headers(agent)).json()
    assert [m["content"] for m in page] == ["Can you cover Friday?", "Also a general note"]
    assert client.get("/messages/unread-count", headers=headers(agent)).json() == {"unread_count": 0}


def test_mark_read_by_sender(client, headers, db, make_user):
    a, b = make_user("client"), make_user("ppo")
    db.add_all([
        Message(sender_id=a.id, recipient_id=b.id, content="one"),
        Message(sender_id=a.id, recipient_id=b.id, content="two"),
    ])
    db.commit()
    resp = client.put("/messages/mark-read", json={"sender_id": str(a.id)}, headers=headers(b))
    assert resp.json() == {"updated": 2}
    # the sender's own unread count is untouched
    assert client.get("/messages/unread-count", headers=headers(a)).json() == {"unread_count": 0}


def test_recipient_must_exist_and_be_active(client, headers, make_user):
    sender = make_user("client")
    gone = make_user("agent", is_active=False)
    resp = client.post("/messages", json={"recipient_id": str(gone.id), "content": "hello"}, headers=headers(sender))
    assert resp.status_code == 404
    resp = client.post("/messages", json={"recipient_id": str(uuid.uuid4()), "content": "hello"}, headers=headers(sender))
    assert resp.status_code == 404
    resp = client.post("/messages", json={"recipient_id": str(make_user("agent").id), "content": ""}, headers=headers(sender))
    assert resp.status_code == 400


def test_only_sender_deletes(client, headers, db, make_user):
    a, b = make_user("client"), make_user("agent")
    message = Message(sender_id=a.id, recipient_id=b.id, content="oops")
    db.add(message)
    db.commit()

    assert client.delete(f"/messages/{message.id}", headers=headers(b)).status_code == 404
    assert client.delete(f"/messages/{message.id}", headers=headers(a)).status_code == 200
    db.expire_all()
    assert db.get(Message, message.id) is None


def test_search_is_case_insensitive_and_scoped(client, headers, db, make_user):
    a, b, c = make_user("client"), make_user("agent"), make_user("agent")
    db.add_all([
        Message(sender_id=a.id, recipient_id=b.id, content="Parking is at Gate C"),
        Message(sender_id=b.id, recipient_id=a.id, content="ok"),
        Message(sender_id=c.id, recipient_id=b.id, content="gate code 1234"),
    ])
    db.commit()
    found = client.get("/messages/search", params={"query": "gate"}, headers=headers(a)).json()
    assert [m["content"] for m in found] == ["Parking is at Gate C"]
