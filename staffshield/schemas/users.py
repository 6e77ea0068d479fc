import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .auth import UserOut


class AvailabilityStatus(str, Enum):
    available = "available"
    busy = "busy"
    offline = "offline"


class AgentProfileUpdate(BaseModel):
    license_number: Optional[str] = None
    license_state: Optional[str] = Field(default=None, max_length=2)
    license_expiry: Optional[date] = None
    certifications: Optional[List[str]] = None
    experience_years: Optional[int] = Field(default=None, ge=0)
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0)
    location_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    location_lng: Optional[float] = Field(default=None, ge=-180, le=180)


class PpoProfileUpdate(BaseModel):
    company_name: Optional[str] = None
    license_number: Optional[str] = None
    license_state: Optional[str] = Field(default=None, max_length=2)
    license_expiry: Optional[date] = None
    insurance_policy_number: Optional[str] = None
    bonding_amount: Optional[Decimal] = Field(default=None, ge=0)


class ClientProfileUpdate(BaseModel):
    company_name: Optional[str] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    billing_address: Optional[str] = None
    payment_method_id: Optional[str] = None


# Role -> schema accepted for the nested ``profile`` block of a profile update
PROFILE_UPDATE_SCHEMAS = {
    "agent": AgentProfileUpdate,
    "ppo": PpoProfileUpdate,
    "client": ClientProfileUpdate,
}


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = None
    profile_image_url: Optional[str] = None
    profile: Optional[Dict[str, Any]] = None


class AgentProfileOut(BaseModel):
    license_number: Optional[str] = None
    license_state: Optional[str] = None
    license_expiry: Optional[date] = None
    certifications: Optional[List[str]] = None
    experience_years: int = 0
    hourly_rate: Optional[float] = None
    availability_status: str
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    background_check_status: str
    background_check_date: Optional[date] = None
    rating: float = 0
    total_jobs: int = 0

    class Config:
        from_attributes = True


class PpoProfileOut(BaseModel):
    company_name: Optional[str] = None
    license_number: Optional[str] = None
    license_state: Optional[str] = None
    license_expiry: Optional[date] = None
    insurance_policy_number: Optional[str] = None
    bonding_amount: Optional[float] = None
    rating: float = 0
    total_jobs: int = 0

    class Config:
        from_attributes = True


class ClientProfileOut(BaseModel):
    company_name: Optional[str] = None
    industry: Optional[str] = None
    company_size: Optional[str] = None
    billing_address: Optional[str] = None
    payment_method_id: Optional[str] = None

    class Config:
        from_attributes = True


PROFILE_OUT_SCHEMAS = {
    "agent": AgentProfileOut,
    "ppo": PpoProfileOut,
    "client": ClientProfileOut,
}


class ProfileResponse(BaseModel):
    user: UserOut
    profile: Optional[Dict[str, Any]] = None


class LocationUpdate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class AvailabilityUpdate(BaseModel):
    status: AvailabilityStatus


class AgentListing(BaseModel):
    user_id: uuid.UUID
    first_name: str
    last_name: str
    profile_image_url: Optional[str] = None
    certifications: List[str] = []
    experience_years: int = 0
    hourly_rate: Optional[float] = None
    rating: float = 0
    total_jobs: int = 0
    availability_status: str
    background_check_status: str
    location_lat: Optional[float] = None
    location_lng: Optional[float] = None
    distance_km: Optional[float] = None
