"""
Message threads.

A thread is keyed by (counterpart, job scope): the same two people talking
about two different jobs, or outside any job, have separate threads.
"""
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from ..errors import NotFoundOrUnauthorized, ValidationError
from ..models.models import Message, User
from .tx import atomic


ThreadKey = Tuple[uuid.UUID, Optional[uuid.UUID]]


def counterpart_of(user_id: uuid.UUID, message) -> uuid.UUID:
    return message.recipient_id if message.sender_id == user_id else message.sender_id


def group_threads(user_id: uuid.UUID, messages: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Fold messages involving ``user_id`` into one summary per thread.

    Each summary carries the latest message's content, time and type plus
    the number of unread messages *received* in that thread. Threads come
    back most recent activity first.
    """
    threads: Dict[ThreadKey, Dict[str, Any]] = {}
    for m in messages:
        if user_id not in (m.sender_id, m.recipient_id):
            continue
        other = counterpart_of(user_id, m)
        key = (other, m.job_id)
        thread = threads.get(key)
        if thread is None:
            thread = threads[key] = {
                "other_user_id": other,
                "job_id": m.job_id,
                "last_message": None,
                "last_message_time": None,
                "last_message_type": None,
                "unread_count": 0,
            }
        if thread["last_message_time"] is None or m.created_at > thread["last_message_time"]:
            thread["last_message"] = m.content
            thread["last_message_time"] = m.created_at
            thread["last_message_type"] = m.message_type
        if m.recipient_id == user_id and not m.is_read:
            thread["unread_count"] += 1

    return sorted(threads.values(), key=lambda t: t["last_message_time"], reverse=True)


def list_conversations(db: Session, user: User) -> List[Dict[str, Any]]:
    messages = (
        db.query(Message)
        .options(joinedload(Message.sender), joinedload(Message.recipient), joinedload(Message.job))
        .filter(or_(Message.sender_id == user.id, Message.recipient_id == user.id))
        .all()
    )
    threads = group_threads(user.id, messages)

    people: Dict[uuid.UUID, User] = {}
    titles: Dict[uuid.UUID, str] = {}
    for m in messages:
        people[m.sender_id] = m.sender
        people[m.recipient_id] = m.recipient
        if m.job is not None:
            titles[m.job_id] = m.job.title
    for thread in threads:
        other = people.get(thread["other_user_id"])
        thread["other_first_name"] = other.first_name if other else None
        thread["other_last_name"] = other.last_name if other else None
        thread["other_image"] = other.profile_image_url if other else None
        thread["job_title"] = titles.get(thread["job_id"])
    return threads


def send_message(
    db: Session,
    sender: User,
    recipient_id: uuid.UUID,
    content: str,
    job_id: Optional[uuid.UUID] = None,
    message_type: str = "text",
    attachment_url: Optional[str] = None,
) -> Message:
    if not content:
        raise ValidationError("Recipient ID and content required", field="content")
    with atomic(db):
        recipient = db.query(User).filter(User.id == recipient_id, User.is_active.is_(True)).first()
        if recipient is None:
            raise NotFoundOrUnauthorized("Recipient not found")
        message = Message(
            sender_id=sender.id,
            recipient_id=recipient_id,
            job_id=job_id,
            message_type=message_type,
            content=content,
            attachment_url=attachment_url,
        )
        db.add(message)
    return message


def conversation(
    db: Session,
    user: User,
    other_user_id: uuid.UUID,
    job_id: Optional[uuid.UUID] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Message]:
    """One page of the exchange, oldest first; the counterpart's messages get marked read."""
    pair = or_(
        and_(Message.sender_id == user.id, Message.recipient_id == other_user_id),
        and_(Message.sender_id == other_user_id, Message.recipient_id == user.id),
    )
    query = db.query(Message).filter(pair)
    if job_id is not None:
        query = query.filter(Message.job_id == job_id)
    page = query.order_by(Message.created_at.desc()).limit(limit).offset(offset).all()

    mark_read(db, user, other_user_id)
    return list(reversed(page))


def mark_read(db: Session, user: User, sender_id: uuid.UUID, job_id: Optional[uuid.UUID] = None) -> int:
    with atomic(db):
        query = db.query(Message).filter(
            Message.recipient_id == user.id,
            Message.sender_id == sender_id,
            Message.is_read.is_(False),
        )
        if job_id is not None:
            query = query.filter(Message.job_id == job_id)
        updated = query.update({Message.is_read: True}, synchronize_session=False)
    return updated


def unread_count(db: Session, user: User) -> int:
    return (
        db.query(Message)
        .filter(Message.recipient_id == user.id, Message.is_read.is_(False))
        .count()
    )


def delete_message(db: Session, user: User, message_id: uuid.UUID) -> None:
    with atomic(db):
        message = db.query(Message).filter(Message.id == message_id, Message.sender_id == user.id).first()
        if message is None:
            raise NotFoundOrUnauthorized("Message not found or unauthorized")
        db.delete(message)


def search(
    db: Session, user: User, text: str, job_id: Optional[uuid.UUID] = None, limit: int = 20
) -> List[Message]:
    if not text:
        raise ValidationError("Search query required", field="query")
    query = db.query(Message).filter(
        or_(Message.sender_id == user.id, Message.recipient_id == user.id),
        Message.content.ilike(f"%{text}%"),
    )
    if job_id is not None:
        query = query.filter(Message.job_id == job_id)
    return query.order_by(Message.created_at.desc()).limit(limit).all()
