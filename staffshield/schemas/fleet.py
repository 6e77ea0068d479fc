import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class VehicleStatus(str, Enum):
    available = "available"
    assigned = "assigned"
    maintenance = "maintenance"
    retired = "retired"


class VehicleCreate(BaseModel):
    make: str = Field(min_length=1, max_length=50)
    model: str = Field(min_length=1, max_length=50)
    year: int = Field(ge=1900, le=2100)
    license_plate: str = Field(min_length=1, max_length=20)
    vehicle_type: str = Field(min_length=1, max_length=30)
    vin: Optional[str] = Field(default=None, max_length=17)
    color: Optional[str] = None
    daily_rate: Optional[Decimal] = Field(default=None, ge=0)
    insurance_policy: Optional[str] = None
    registration_expiry: Optional[date] = None


class VehicleUpdate(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1900, le=2100)
    license_plate: Optional[str] = None
    vehicle_type: Optional[str] = None
    vin: Optional[str] = Field(default=None, max_length=17)
    color: Optional[str] = None
    daily_rate: Optional[Decimal] = Field(default=None, ge=0)
    insurance_policy: Optional[str] = None
    registration_expiry: Optional[date] = None
    status: Optional[VehicleStatus] = None

    class Config:
        use_enum_values = True


class VehicleOut(BaseModel):
    id: uuid.UUID
    ppo_id: uuid.UUID
    make: str
    model: str
    year: int
    license_plate: str
    vin: Optional[str] = None
    color: Optional[str] = None
    vehicle_type: str
    status: str
    daily_rate: Optional[float] = None
    insurance_policy: Optional[str] = None
    registration_expiry: Optional[date] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VehicleAssignRequest(BaseModel):
    job_id: uuid.UUID
    agent_id: uuid.UUID
    mileage_start: Optional[int] = Field(default=None, ge=0)
    fuel_level_start: Optional[float] = Field(default=None, ge=0, le=1)


class VehicleReturnRequest(BaseModel):
    mileage_end: Optional[int] = Field(default=None, ge=0)
    fuel_level_end: Optional[float] = Field(default=None, ge=0, le=1)
    condition_notes: Optional[str] = None


class VehicleAssignmentOut(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    job_id: uuid.UUID
    agent_id: uuid.UUID
    assigned_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    mileage_start: Optional[int] = None
    mileage_end: Optional[int] = None
    fuel_level_start: Optional[float] = None
    fuel_level_end: Optional[float] = None
    condition_notes: Optional[str] = None

    class Config:
        from_attributes = True
