import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MessageType(str, Enum):
    text = "text"
    image = "image"
    file = "file"
    location = "location"


class MessageCreate(BaseModel):
    recipient_id: uuid.UUID
    job_id: Optional[uuid.UUID] = None
    message_type: MessageType = MessageType.text
    content: str = Field(min_length=1)
    attachment_url: Optional[str] = None


class MarkReadRequest(BaseModel):
    sender_id: uuid.UUID
    job_id: Optional[uuid.UUID] = None


class MessageOut(BaseModel):
    id: uuid.UUID
    sender_id: uuid.UUID
    recipient_id: uuid.UUID
    job_id: Optional[uuid.UUID] = None
    message_type: str
    content: str
    attachment_url: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ThreadOut(BaseModel):
    other_user_id: uuid.UUID
    other_first_name: Optional[str] = None
    other_last_name: Optional[str] = None
    other_image: Optional[str] = None
    job_id: Optional[uuid.UUID] = None
    job_title: Optional[str] = None
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    last_message_type: Optional[str] = None
    unread_count: int = 0
