import uuid
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class ComplianceType(str, Enum):
    background_check = "background_check"
    drug_test = "drug_test"
    training = "training"
    certification = "certification"


class ComplianceStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    expired = "expired"


class RecordCreate(BaseModel):
    record_type: ComplianceType
    status: ComplianceStatus = ComplianceStatus.pending
    issued_date: Optional[date] = None
    expiry_date: Optional[date] = None
    issuing_authority: Optional[str] = None
    document_url: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        use_enum_values = True


class StatusUpdate(BaseModel):
    status: ComplianceStatus
    notes: Optional[str] = None


class BulkUpdate(BaseModel):
    record_ids: List[uuid.UUID]
    status: ComplianceStatus
    notes: Optional[str] = None


class RecordOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    record_type: str
    status: str
    issued_date: Optional[date] = None
    expiry_date: Optional[date] = None
    issuing_authority: Optional[str] = None
    document_url: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BulkUpdateResponse(BaseModel):
    updated: int
    records: List[RecordOut]


class SummaryBucket(BaseModel):
    record_type: str
    status: str
    count: int
    latest_expiry: Optional[date] = None


class SummaryResponse(BaseModel):
    summary: List[SummaryBucket]
    expiring: List[RecordOut]


class AgentIssue(BaseModel):
    id: uuid.UUID
    first_name: str
    last_name: str
    email: str
    background_check_status: str
    expired_records: int = 0
    rejected_records: int = 0
    expiring_records: int = 0
