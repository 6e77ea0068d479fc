"""
Fleet vehicle workflows.

Invariant: a vehicle has at most one open VehicleAssignment (returned_at IS
NULL) and its status is ``assigned`` exactly while one is open. Only
assign/return move a vehicle in or out of ``assigned``.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFoundOrUnauthorized, ValidationError
from ..logging import get_logger
from ..models.models import FleetVehicle, Job, User, VehicleAssignment
from .tx import atomic


log = get_logger(__name__)


def get_owned_vehicle(db: Session, vehicle_id: uuid.UUID, ppo: User) -> FleetVehicle:
    vehicle = (
        db.query(FleetVehicle)
        .filter(FleetVehicle.id == vehicle_id, FleetVehicle.ppo_id == ppo.id)
        .first()
    )
    if vehicle is None:
        raise NotFoundOrUnauthorized("Vehicle not found or unauthorized")
    return vehicle


def add_vehicle(db: Session, ppo: User, data: Dict[str, Any]) -> FleetVehicle:
    with atomic(db):
        vehicle = FleetVehicle(ppo_id=ppo.id, status="available", **data)
        db.add(vehicle)
    log.info("vehicle_added", vehicle_id=str(vehicle.id), ppo_id=str(ppo.id))
    return vehicle


def update_vehicle(db: Session, vehicle_id: uuid.UUID, ppo: User, data: Dict[str, Any]) -> FleetVehicle:
    new_status = data.get("status")
    if new_status == "assigned":
        raise ValidationError("Vehicles are assigned through the assign workflow", field="status")
    with atomic(db):
        vehicle = get_owned_vehicle(db, vehicle_id, ppo)
        if new_status and vehicle.status == "assigned":
            raise Conflict("Vehicle is assigned; return it before changing its status")
        for key, value in data.items():
            setattr(vehicle, key, value)
    return vehicle


def assign_vehicle(
    db: Session,
    vehicle_id: uuid.UUID,
    ppo: User,
    job_id: uuid.UUID,
    agent_id: uuid.UUID,
    mileage_start: Optional[int] = None,
    fuel_level_start: Optional[float] = None,
) -> VehicleAssignment:
    with atomic(db):
        vehicle = get_owned_vehicle(db, vehicle_id, ppo)
        if vehicle.status != "available":
            raise Conflict("Vehicle is not available")
        job = db.query(Job).filter(Job.id == job_id, Job.ppo_id == ppo.id).first()
        if job is None:
            raise NotFoundOrUnauthorized("Job not found or unauthorized")
        agent = (
            db.query(User)
            .filter(User.id == agent_id, User.role == "agent", User.is_active.is_(True))
            .first()
        )
        if agent is None:
            raise NotFoundOrUnauthorized("Agent not found")

        # Conditional flip: a competing request that got here first leaves rowcount 0
        result = db.execute(
            update(FleetVehicle)
            .where(FleetVehicle.id == vehicle_id, FleetVehicle.status == "available")
            .values(status="assigned")
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict("Vehicle is not available")
        open_count = (
            db.query(VehicleAssignment)
            .filter(VehicleAssignment.vehicle_id == vehicle_id, VehicleAssignment.returned_at.is_(None))
            .count()
        )
        if open_count:
            raise Conflict("Vehicle already has an open assignment")

        assignment = VehicleAssignment(
            vehicle_id=vehicle_id,
            job_id=job_id,
            agent_id=agent_id,
            assigned_at=datetime.utcnow(),
            mileage_start=mileage_start,
            fuel_level_start=fuel_level_start,
        )
        db.add(assignment)

    log.info("vehicle_assigned", vehicle_id=str(vehicle_id), job_id=str(job_id), agent_id=str(agent_id))
    return assignment


def return_vehicle(
    db: Session,
    vehicle_id: uuid.UUID,
    user: User,
    mileage_end: Optional[int] = None,
    fuel_level_end: Optional[float] = None,
    condition_notes: Optional[str] = None,
) -> VehicleAssignment:
    """Close the open assignment. Caller is the owning PPO or the assigned agent."""
    with atomic(db):
        query = db.query(VehicleAssignment).filter(
            VehicleAssignment.vehicle_id == vehicle_id,
            VehicleAssignment.returned_at.is_(None),
        )
        if user.role == "ppo":
            query = query.join(FleetVehicle, FleetVehicle.id == VehicleAssignment.vehicle_id).filter(
                FleetVehicle.ppo_id == user.id
            )
        else:
            query = query.filter(VehicleAssignment.agent_id == user.id)
        assignment = query.with_for_update().first()
        if assignment is None:
            raise NotFoundOrUnauthorized("Active vehicle assignment not found")

        assignment.returned_at = datetime.utcnow()
        assignment.mileage_end = mileage_end
        assignment.fuel_level_end = fuel_level_end
        assignment.condition_notes = condition_notes
        db.execute(
            update(FleetVehicle)
            .where(FleetVehicle.id == vehicle_id)
            .values(status="available")
            .execution_options(synchronize_session=False)
        )

    log.info("vehicle_returned", vehicle_id=str(vehicle_id), actor_id=str(user.id))
    return assignment


def available_vehicles(db: Session, ppo: User, start: datetime, end: datetime) -> List[FleetVehicle]:
    """Owned, available vehicles with no open assignment on a job overlapping [start, end)."""
    if start >= end:
        raise ValidationError("start_date must be before end_date", field="start_date")
    busy = (
        db.query(VehicleAssignment.vehicle_id)
        .join(Job, Job.id == VehicleAssignment.job_id)
        .filter(
            Job.start_date < end,
            Job.end_date > start,
            VehicleAssignment.returned_at.is_(None),
        )
    )
    return (
        db.query(FleetVehicle)
        .filter(
            FleetVehicle.ppo_id == ppo.id,
            FleetVehicle.status == "available",
            FleetVehicle.id.notin_(busy),
        )
        .order_by(FleetVehicle.daily_rate.asc())
        .all()
    )


def list_assignments(db: Session, ppo: User, active_only: bool = False) -> List[VehicleAssignment]:
    query = (
        db.query(VehicleAssignment)
        .join(FleetVehicle, FleetVehicle.id == VehicleAssignment.vehicle_id)
        .filter(FleetVehicle.ppo_id == ppo.id)
    )
    if active_only:
        query = query.filter(VehicleAssignment.returned_at.is_(None))
    return query.order_by(VehicleAssignment.assigned_at.desc()).all()
