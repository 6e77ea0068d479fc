import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import require_roles
from ..db import get_db
from ..models.models import FleetVehicle, User
from ..schemas.fleet import (
    VehicleAssignmentOut,
    VehicleAssignRequest,
    VehicleCreate,
    VehicleOut,
    VehicleReturnRequest,
    VehicleStatus,
    VehicleUpdate,
)
from ..schemas.jobs import to_naive_utc
from ..services import fleet
from ..services.realtime import publish, user_room


router = APIRouter(prefix="/fleet", tags=["fleet"])


@router.post("/vehicles", response_model=VehicleOut, status_code=201)
def add_vehicle(
    payload: VehicleCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo")),
):
    return fleet.add_vehicle(db, user, payload.model_dump())


@router.get("/vehicles", response_model=List[VehicleOut])
def list_vehicles(
    status: Optional[VehicleStatus] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo")),
):
    query = db.query(FleetVehicle).filter(FleetVehicle.ppo_id == user.id)
    if status:
        query = query.filter(FleetVehicle.status == status.value)
    return query.order_by(FleetVehicle.created_at.desc()).all()


@router.get("/vehicles/available", response_model=List[VehicleOut])
def available_vehicles(
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo")),
):
    return fleet.available_vehicles(db, user, to_naive_utc(start_date), to_naive_utc(end_date))


@router.put("/vehicles/{vehicle_id}", response_model=VehicleOut)
def update_vehicle(
    vehicle_id: uuid.UUID,
    payload: VehicleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo")),
):
    return fleet.update_vehicle(db, vehicle_id, user, payload.model_dump(exclude_unset=True))


@router.post("/vehicles/{vehicle_id}/assign", response_model=VehicleAssignmentOut, status_code=201)
def assign_vehicle(
    vehicle_id: uuid.UUID,
    payload: VehicleAssignRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo")),
):
    assignment = fleet.assign_vehicle(
        db,
        vehicle_id,
        user,
        job_id=payload.job_id,
        agent_id=payload.agent_id,
        mileage_start=payload.mileage_start,
        fuel_level_start=payload.fuel_level_start,
    )
    publish(
        user_room(payload.agent_id),
        "vehicle_assigned",
        {"vehicleId": str(vehicle_id), "jobId": str(payload.job_id), "assignmentId": str(assignment.id)},
    )
    return assignment


@router.post("/vehicles/{vehicle_id}/return", response_model=VehicleAssignmentOut)
def return_vehicle(
    vehicle_id: uuid.UUID,
    payload: VehicleReturnRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo", "agent")),
):
    return fleet.return_vehicle(
        db,
        vehicle_id,
        user,
        mileage_end=payload.mileage_end,
        fuel_level_end=payload.fuel_level_end,
        condition_notes=payload.condition_notes,
    )


@router.get("/assignments", response_model=List[VehicleAssignmentOut])
def list_assignments(
    active: bool = Query(False),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("ppo")),
):
    return fleet.list_assignments(db, user, active_only=active)
