import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_user
from ..db import get_db
from ..models.models import User
from ..schemas.messages import MarkReadRequest, MessageCreate, MessageOut, ThreadOut
from ..services import conversations
from ..services.realtime import publish, user_room


router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", response_model=MessageOut, status_code=201)
def send(
    payload: MessageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    message = conversations.send_message(
        db,
        user,
        payload.recipient_id,
        payload.content,
        job_id=payload.job_id,
        message_type=payload.message_type.value,
        attachment_url=payload.attachment_url,
    )
    body = MessageOut.model_validate(message).model_dump(mode="json")
    body["sender_name"] = user.full_name
    publish(user_room(message.recipient_id), "new_message", body)
    return message


@router.get("/conversations", response_model=List[ThreadOut])
def list_conversations(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return conversations.list_conversations(db, user)


@router.get("/conversation/{other_user_id}", response_model=List[MessageOut])
def get_conversation(
    other_user_id: uuid.UUID,
    job_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return conversations.conversation(db, user, other_user_id, job_id=job_id, limit=limit, offset=offset)


@router.put("/mark-read")
def mark_read(
    payload: MarkReadRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    updated = conversations.mark_read(db, user, payload.sender_id, job_id=payload.job_id)
    return {"updated": updated}


@router.get("/unread-count")
def unread_count(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"unread_count": conversations.unread_count(db, user)}


@router.get("/search", response_model=List[MessageOut])
def search(
    query: str = Query(...),
    job_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return conversations.search(db, user, query, job_id=job_id, limit=limit)


@router.delete("/{message_id}")
def delete(
    message_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    conversations.delete_message(db, user, message_id)
    return {"deleted": True}
