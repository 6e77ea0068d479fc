"""
Payment escrow against Stripe.

The provider is reached only through ``PaymentGateway`` so routes and tests
can swap it (see ``get_gateway``). Our side tracks a Payment row per
intent and reconciles it when the provider's webhook reports the outcome.
"""
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Tuple

import stripe
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import InternalFailure, NotFoundOrUnauthorized, ValidationError, WebhookSignatureError
from ..logging import get_logger
from ..models.models import Job, Payment, User
from .tx import atomic


log = get_logger(__name__)


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str


@dataclass(frozen=True)
class GatewayEvent:
    type: str
    object: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway:
    """Contract for the payment provider collaborator."""

    def create_payment_intent(self, amount_cents: int, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        raise NotImplementedError

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    """Thin wrapper over the ``stripe`` SDK."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        tolerance: Optional[int] = None,
    ):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.tolerance = settings.webhook_tolerance_sec if tolerance is None else tolerance

    def create_payment_intent(self, amount_cents: int, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        if not self.secret_key:
            raise InternalFailure("Payment provider not configured")
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                metadata={k: str(v) for k, v in metadata.items()},
                api_key=self.secret_key,
            )
        except stripe.StripeError as e:
            log.error("payment_provider_error", error=str(e))
            raise InternalFailure("Failed to create payment intent") from e
        return PaymentIntent(id=intent.id, client_secret=intent.client_secret)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret not configured")
        if not signature:
            raise WebhookSignatureError("Missing signature header")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret, tolerance=self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        except ValueError as e:
            raise WebhookSignatureError("Malformed webhook payload") from e
        # Verified above; read the object back as plain dicts for the service layer
        body = json.loads(payload)
        return GatewayEvent(type=event.type, object=(body.get("data") or {}).get("object") or {})


_gateway: Optional[PaymentGateway] = None


def get_gateway() -> PaymentGateway:
    """FastAPI dependency; override in tests via ``app.dependency_overrides``."""
    global _gateway
    if _gateway is None:
        _gateway = StripeGateway()
    return _gateway


def to_cents(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_intent(db: Session, gateway: PaymentGateway, client: User, job_id: uuid.UUID, amount) -> Tuple[PaymentIntent, Payment]:
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationError("Job ID and amount required", field="amount")
    job = db.query(Job).filter(Job.id == job_id, Job.client_id == client.id).first()
    if job is None:
        raise NotFoundOrUnauthorized("Job not found or unauthorized")

    intent = gateway.create_payment_intent(
        to_cents(amount),
        settings.payment_currency,
        {"jobId": str(job.id), "clientId": str(client.id), "jobTitle": job.title},
    )
    with atomic(db):
        payment = Payment(
            job_id=job.id,
            payer_id=client.id,
            amount=amount,
            payment_intent_id=intent.id,
            payment_type="job_payment",
            status="pending",
        )
        db.add(payment)
    log.info("payment_intent_created", job_id=str(job.id), payment_intent_id=intent.id)
    return intent, payment


def handle_event(db: Session, event: GatewayEvent) -> Optional[Job]:
    """
    Apply a verified provider event.

    Returns the job whose status moved, so the caller can announce it after
    the commit; None otherwise.
    """
    intent_id = event.object.get("id")
    moved = None

    if event.type == "payment_intent.succeeded":
        with atomic(db):
            db.query(Payment).filter(Payment.payment_intent_id == intent_id).update(
                {Payment.status: "completed", Payment.processed_at: datetime.utcnow()},
                synchronize_session=False,
            )
            raw_job_id = (event.object.get("metadata") or {}).get("jobId")
            job_id = _parse_uuid(raw_job_id)
            if job_id is not None:
                job = db.query(Job).filter(Job.id == job_id, Job.status == "open").with_for_update().first()
                if job is not None:
                    job.status = "assigned"
                    job.updated_at = datetime.utcnow()
                    moved = job
        log.info("payment_succeeded", payment_intent_id=intent_id)
    elif event.type == "payment_intent.payment_failed":
        with atomic(db):
            db.query(Payment).filter(Payment.payment_intent_id == intent_id).update(
                {Payment.status: "failed"}, synchronize_session=False
            )
        log.info("payment_failed", payment_intent_id=intent_id)
    else:
        log.info("payment_webhook_unhandled", event_type=event.type)
    return moved


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def history(db: Session, user: User, limit: int = 50, offset: int = 0) -> List[Payment]:
    return (
        db.query(Payment)
        .filter(or_(Payment.payer_id == user.id, Payment.payee_id == user.id))
        .order_by(Payment.created_at.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def payout(db: Session, user: User, job_id: uuid.UUID, payee_id: uuid.UUID, amount) -> Payment:
    if amount is None or Decimal(str(amount)) <= 0:
        raise ValidationError("Job ID, payee ID, and amount required", field="amount")
    with atomic(db):
        query = db.query(Job).filter(Job.id == job_id)
        if user.role != "admin":
            query = query.filter(Job.client_id == user.id)
        job = query.first()
        if job is None:
            raise NotFoundOrUnauthorized("Job not found or unauthorized")
        if job.status != "completed":
            raise ValidationError("Job must be completed before payout", field="job_id")
        payee = db.query(User).filter(User.id == payee_id).first()
        if payee is None:
            raise NotFoundOrUnauthorized("Payee not found")
        payment = Payment(
            job_id=job.id,
            payer_id=user.id,
            payee_id=payee_id,
            amount=amount,
            payment_type="job_payment",
            status="completed",
            processed_at=datetime.utcnow(),
        )
        db.add(payment)
    log.info("payout_processed", job_id=str(job_id), payee_id=str(payee_id))
    return payment


def summary(db: Session, user: User) -> Dict[str, Any]:
    zero = Decimal("0")
    total_payments = (
        db.query(func.count(Payment.id))
        .filter(or_(Payment.payer_id == user.id, Payment.payee_id == user.id))
        .scalar()
    )
    total_paid = db.query(func.sum(Payment.amount)).filter(Payment.payer_id == user.id).scalar()
    total_received = db.query(func.sum(Payment.amount)).filter(Payment.payee_id == user.id).scalar()
    pending = (
        db.query(func.sum(Payment.amount))
        .filter(Payment.payer_id == user.id, Payment.status == "pending")
        .scalar()
    )
    return {
        "total_payments": total_payments or 0,
        "total_paid": Decimal(str(total_paid or zero)),
        "total_received": Decimal(str(total_received or zero)),
        "pending_payments": Decimal(str(pending or zero)),
    }
