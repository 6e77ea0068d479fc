import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class CreateIntentRequest(BaseModel):
    job_id: uuid.UUID
    amount: Decimal = Field(gt=0)  # dollars


class IntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str


class PayoutRequest(BaseModel):
    job_id: uuid.UUID
    payee_id: uuid.UUID
    amount: Decimal = Field(gt=0)


class PaymentOut(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    payer_id: uuid.UUID
    payee_id: Optional[uuid.UUID] = None
    amount: float
    payment_intent_id: Optional[str] = None
    status: str
    payment_type: str
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentSummary(BaseModel):
    total_payments: int
    total_paid: float
    total_received: float
    pending_payments: float
