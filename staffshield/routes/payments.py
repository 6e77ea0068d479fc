import uuid
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..db import get_db
from ..models.models import User
from ..schemas.payments import CreateIntentRequest, IntentResponse, PaymentOut, PaymentSummary, PayoutRequest
from ..services import payments, realtime
from ..services.payments import PaymentGateway, get_gateway


router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-intent", response_model=IntentResponse)
def create_intent(
    payload: CreateIntentRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("client")),
    gateway: PaymentGateway = Depends(get_gateway),
):
    intent, _ = payments.create_intent(db, gateway, user, payload.job_id, payload.amount)
    return {"client_secret": intent.client_secret, "payment_intent_id": intent.id}


def _apply_event(db: Session, event) -> Optional[Tuple[uuid.UUID, str]]:
    job = payments.handle_event(db, event)
    # Read while still in the worker thread; the commit expired the row
    return None if job is None else (job.id, job.status)


@router.post("/webhook")
async def webhook(
    request: Request,
    gateway: PaymentGateway = Depends(get_gateway),
    db: Session = Depends(get_db),
):
    # Signature covers the raw bytes, so read them before any parsing
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))
    moved = await run_in_threadpool(_apply_event, db, event)
    if moved is not None:
        job_id, status = moved
        await realtime.hub.emit(
            realtime.job_room(job_id), "job_status_update", {"jobId": str(job_id), "newStatus": status}
        )
    return {"received": True}


@router.get("/history", response_model=List[PaymentOut])
def history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return payments.history(db, user, limit=limit, offset=offset)


@router.post("/payout", response_model=PaymentOut, status_code=201)
def payout(
    payload: PayoutRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("client", "admin")),
):
    return payments.payout(db, user, payload.job_id, payload.payee_id, payload.amount)


@router.get("/summary", response_model=PaymentSummary)
def summary(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return payments.summary(db, user)
