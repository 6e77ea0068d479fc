import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class JobStatus(str, Enum):
    open = "open"
    assigned = "assigned"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class UrgencyLevel(str, Enum):
    low = "low"
    normal = "normal"
    high = "high"
    urgent = "urgent"


class AssignmentAction(str, Enum):
    accept = "accept"
    decline = "decline"
    complete = "complete"


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Job windows are stored as naive UTC; aware inputs are converted first."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class JobCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str
    location_address: str
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    start_date: datetime
    end_date: datetime
    hourly_rate: Decimal = Field(ge=0)
    agents_needed: int = Field(default=1, ge=1)
    required_certifications: Optional[List[str]] = None
    special_requirements: Optional[str] = None
    urgency_level: UrgencyLevel = UrgencyLevel.normal
    equipment_provided: bool = False
    uniform_required: bool = False
    vehicle_required: bool = False

    class Config:
        use_enum_values = True

    @field_validator("start_date", "end_date")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def _window(self):
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self


class AssignPpoRequest(BaseModel):
    ppo_id: uuid.UUID


class AssignAgentsRequest(BaseModel):
    agent_ids: List[uuid.UUID]


class JobStatusUpdate(BaseModel):
    status: JobStatus


class AssignmentOut(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    agent_id: uuid.UUID
    hourly_rate: Optional[float] = None
    status: str
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None

    class Config:
        from_attributes = True


class JobOut(BaseModel):
    id: uuid.UUID
    client_id: uuid.UUID
    ppo_id: Optional[uuid.UUID] = None
    title: str
    description: str
    location_address: str
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    start_date: datetime
    end_date: datetime
    hourly_rate: float
    agents_needed: int
    required_certifications: Optional[List[str]] = None
    special_requirements: Optional[str] = None
    status: str
    urgency_level: str
    equipment_provided: bool = False
    uniform_required: bool = False
    vehicle_required: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class JobDetail(JobOut):
    assignments: List[AssignmentOut] = []


class AssignAgentsResponse(BaseModel):
    job: JobOut
    assignments: List[AssignmentOut]
