import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Numeric,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def user_fk(ondelete: str = "CASCADE", nullable: bool = False, index: bool = True) -> Mapped[uuid.UUID]:
    return mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete=ondelete), nullable=nullable, index=index
    )


USER_ROLES = ("ppo", "agent", "client", "admin")
JOB_STATUSES = ("open", "assigned", "in_progress", "completed", "cancelled")
URGENCY_LEVELS = ("low", "normal", "high", "urgent")
ASSIGNMENT_STATUSES = ("assigned", "accepted", "declined", "completed", "no_show", "interested")
AVAILABILITY_STATUSES = ("available", "busy", "offline")
COMPLIANCE_STATUSES = ("pending", "approved", "rejected", "expired")
COMPLIANCE_TYPES = ("background_check", "drug_test", "training", "certification")
VEHICLE_STATUSES = ("available", "assigned", "maintenance", "retired")
MESSAGE_TYPES = ("text", "image", "file", "location")
PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "refunded")
PAYMENT_TYPES = ("job_payment", "platform_fee", "refund")


def _in(column: str, values) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # ppo|agent|client|admin
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20))
    profile_image_url: Mapped[Optional[str]] = mapped_column(Text)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    agent_profile = relationship("AgentProfile", back_populates="user", uselist=False)
    ppo_profile = relationship("PpoProfile", back_populates="user", uselist=False)
    client_profile = relationship("ClientProfile", back_populates="user", uselist=False)

    __table_args__ = (CheckConstraint(_in("role", USER_ROLES), name="ck_user_role"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class AgentProfile(Base):
    __tablename__ = "agent_profiles"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    license_number: Mapped[Optional[str]] = mapped_column(String(100))
    license_state: Mapped[Optional[str]] = mapped_column(String(2))
    license_expiry: Mapped[Optional[date]] = mapped_column(Date)
    certifications: Mapped[Optional[list]] = mapped_column(JSON, default=list)  # ["CPR", "Security License", ...]
    experience_years: Mapped[int] = mapped_column(Integer, default=0)
    hourly_rate: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    availability_status: Mapped[str] = mapped_column(String(20), default="available", index=True)  # available|busy|offline
    location_lat: Mapped[Optional[float]] = mapped_column(Float)
    location_lng: Mapped[Optional[float]] = mapped_column(Float)
    background_check_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|approved|rejected|expired
    background_check_date: Mapped[Optional[date]] = mapped_column(Date)
    rating: Mapped[float] = mapped_column(Numeric(3, 2), default=0)
    total_jobs: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    user = relationship("User", back_populates="agent_profile")

    __table_args__ = (
        CheckConstraint("experience_years >= 0", name="ck_agent_experience"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_agent_rating"),
    )


class PpoProfile(Base):
    __tablename__ = "ppo_profiles"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    company_name: Mapped[str] = mapped_column(String(255), default="")
    license_number: Mapped[str] = mapped_column(String(100), default="")
    license_state: Mapped[str] = mapped_column(String(2), default="")
    license_expiry: Mapped[Optional[date]] = mapped_column(Date)
    insurance_policy_number: Mapped[Optional[str]] = mapped_column(String(100))
    bonding_amount: Mapped[Optional[float]] = mapped_column(Numeric(12, 2))
    rating: Mapped[float] = mapped_column(Numeric(3, 2), default=0)
    total_jobs: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    user = relationship("User", back_populates="ppo_profile")


class ClientProfile(Base):
    __tablename__ = "client_profiles"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    company_name: Mapped[Optional[str]] = mapped_column(String(255))
    industry: Mapped[Optional[str]] = mapped_column(String(100))
    company_size: Mapped[Optional[str]] = mapped_column(String(20))
    billing_address: Mapped[Optional[str]] = mapped_column(Text)
    payment_method_id: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    user = relationship("User", back_populates="client_profile")


# Role -> profile model, resolved once at registration and reused by profile reads/updates.
# Admins own no profile.
PROFILE_MODELS = {
    "agent": AgentProfile,
    "ppo": PpoProfile,
    "client": ClientProfile,
}


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = uuid_pk()
    client_id: Mapped[uuid.UUID] = user_fk()
    ppo_id: Mapped[Optional[uuid.UUID]] = user_fk(ondelete="SET NULL", nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location_address: Mapped[str] = mapped_column(Text, nullable=False)
    location_lat: Mapped[Optional[float]] = mapped_column(Float)
    location_lng: Mapped[Optional[float]] = mapped_column(Float)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    hourly_rate: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    agents_needed: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    required_certifications: Mapped[Optional[list]] = mapped_column(JSON)  # None or [] means no requirement
    special_requirements: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="open", index=True)  # open|assigned|in_progress|completed|cancelled
    urgency_level: Mapped[str] = mapped_column(String(10), default="normal")  # low|normal|high|urgent
    equipment_provided: Mapped[bool] = mapped_column(Boolean, default=False)
    uniform_required: Mapped[bool] = mapped_column(Boolean, default=False)
    vehicle_required: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    client = relationship("User", foreign_keys=[client_id])
    assignments = relationship("JobAssignment", back_populates="job", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_job_window"),
        CheckConstraint("agents_needed >= 1", name="ck_job_agents_needed"),
        CheckConstraint(_in("status", JOB_STATUSES), name="ck_job_status"),
        CheckConstraint(_in("urgency_level", URGENCY_LEVELS), name="ck_job_urgency"),
        Index("idx_job_window", "start_date", "end_date"),
    )


class JobAssignment(Base):
    __tablename__ = "job_assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id: Mapped[uuid.UUID] = user_fk()
    hourly_rate: Mapped[Optional[float]] = mapped_column(Numeric(10, 2))
    # assigned|accepted|declined|completed|no_show|interested
    status: Mapped[str] = mapped_column(String(20), default="assigned", index=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rating: Mapped[Optional[int]] = mapped_column(Integer)
    feedback: Mapped[Optional[str]] = mapped_column(Text)

    job = relationship("Job", back_populates="assignments")
    agent = relationship("User", foreign_keys=[agent_id])

    __table_args__ = (
        UniqueConstraint("job_id", "agent_id", name="uq_job_agent"),
        CheckConstraint(_in("status", ASSIGNMENT_STATUSES), name="ck_assignment_status"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_assignment_rating"),
        Index("idx_assignment_agent_status", "agent_id", "status"),
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    payer_id: Mapped[uuid.UUID] = user_fk()
    payee_id: Mapped[Optional[uuid.UUID]] = user_fk(nullable=True)
    amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|processing|completed|failed|refunded
    payment_type: Mapped[str] = mapped_column(String(20), nullable=False)  # job_payment|platform_fee|refund
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(_in("status", PAYMENT_STATUSES), name="ck_payment_status"),
        CheckConstraint(_in("payment_type", PAYMENT_TYPES), name="ck_payment_type"),
    )


class FleetVehicle(Base):
    __tablename__ = "fleet_vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    ppo_id: Mapped[uuid.UUID] = user_fk()
    make: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(50), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    license_plate: Mapped[str] = mapped_column(String(20), nullable=False)
    vin: Mapped[Optional[str]] = mapped_column(String(17))
    color: Mapped[Optional[str]] = mapped_column(String(30))
    vehicle_type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="available", index=True)  # available|assigned|maintenance|retired
    daily_rate: Mapped[Optional[float]] = mapped_column(Numeric(8, 2))
    insurance_policy: Mapped[Optional[str]] = mapped_column(String(100))
    registration_expiry: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    assignments = relationship(
        "VehicleAssignment", back_populates="vehicle", cascade="all, delete-orphan",
        order_by="VehicleAssignment.assigned_at.desc()",
    )

    __table_args__ = (
        CheckConstraint(_in("status", VEHICLE_STATUSES), name="ck_vehicle_status"),
        Index("idx_vehicle_ppo_status", "ppo_id", "status"),
    )


class VehicleAssignment(Base):
    """Open while returned_at is NULL; at most one open row per vehicle."""
    __tablename__ = "vehicle_assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("fleet_vehicles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id: Mapped[uuid.UUID] = user_fk()
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    returned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    mileage_start: Mapped[Optional[int]] = mapped_column(Integer)
    mileage_end: Mapped[Optional[int]] = mapped_column(Integer)
    fuel_level_start: Mapped[Optional[float]] = mapped_column(Numeric(3, 2))
    fuel_level_end: Mapped[Optional[float]] = mapped_column(Numeric(3, 2))
    condition_notes: Mapped[Optional[str]] = mapped_column(Text)

    vehicle = relationship("FleetVehicle", back_populates="assignments")
    job = relationship("Job")
    agent = relationship("User", foreign_keys=[agent_id])

    __table_args__ = (
        Index("idx_vehicle_assignment_open", "vehicle_id", "returned_at"),
    )


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = uuid_pk()
    sender_id: Mapped[uuid.UUID] = user_fk()
    recipient_id: Mapped[uuid.UUID] = user_fk()
    job_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), index=True
    )
    message_type: Mapped[str] = mapped_column(String(20), default="text")  # text|image|file|location
    content: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_url: Mapped[Optional[str]] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    sender = relationship("User", foreign_keys=[sender_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    job = relationship("Job")

    __table_args__ = (
        CheckConstraint(_in("message_type", MESSAGE_TYPES), name="ck_message_type"),
        Index("idx_message_recipient_read", "recipient_id", "is_read"),
    )


class ComplianceRecord(Base):
    __tablename__ = "compliance_records"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = user_fk()
    record_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|approved|rejected|expired
    issued_date: Mapped[Optional[date]] = mapped_column(Date)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, index=True)
    issuing_authority: Mapped[Optional[str]] = mapped_column(String(255))
    document_url: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint(_in("record_type", COMPLIANCE_TYPES), name="ck_compliance_type"),
        CheckConstraint(_in("status", COMPLIANCE_STATUSES), name="ck_compliance_status"),
    )
