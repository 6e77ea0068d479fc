from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError as SchemaError
from sqlalchemy.orm import Session

from ..auth.security import get_current_user, require_roles
from ..config import settings
from ..db import get_db
from ..errors import ValidationError
from ..models.models import PROFILE_MODELS, AgentProfile, User
from ..schemas.auth import UserOut
from ..schemas.users import (
    PROFILE_OUT_SCHEMAS,
    PROFILE_UPDATE_SCHEMAS,
    AgentListing,
    AvailabilityUpdate,
    LocationUpdate,
    ProfileResponse,
    ProfileUpdate,
)
from ..services.geo import distance_between
from ..services.tx import atomic


router = APIRouter(prefix="/users", tags=["users"])


def load_profile(db: Session, user: User):
    model = PROFILE_MODELS.get(user.role)
    if model is None:
        return None
    return db.query(model).filter(model.user_id == user.id).first()


def profile_response(db: Session, user: User) -> dict:
    profile = load_profile(db, user)
    body = None
    if profile is not None:
        body = PROFILE_OUT_SCHEMAS[user.role].model_validate(profile).model_dump()
    return {"user": UserOut.model_validate(user), "profile": body}


def agent_listing(user: User, profile: AgentProfile, distance_km: Optional[float] = None) -> dict:
    return {
        "user_id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "profile_image_url": user.profile_image_url,
        "certifications": profile.certifications or [],
        "experience_years": profile.experience_years or 0,
        "hourly_rate": profile.hourly_rate,
        "rating": profile.rating or 0,
        "total_jobs": profile.total_jobs or 0,
        "availability_status": profile.availability_status,
        "background_check_status": profile.background_check_status,
        "location_lat": profile.location_lat,
        "location_lng": profile.location_lng,
        "distance_km": distance_km,
    }


@router.get("/profile", response_model=ProfileResponse)
def get_profile(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return profile_response(db, user)


@router.put("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    profile_fields = {}
    if payload.profile:
        schema = PROFILE_UPDATE_SCHEMAS.get(user.role)
        if schema is None:
            raise ValidationError("This account has no profile", field="profile")
        try:
            profile_fields = schema.model_validate(payload.profile).model_dump(exclude_unset=True)
        except SchemaError as e:
            first = e.errors()[0]
            raise ValidationError(first["msg"], field=".".join(str(p) for p in first["loc"]))

    with atomic(db):
        for key, value in payload.model_dump(exclude_unset=True, exclude={"profile"}).items():
            setattr(user, key, value)
        if profile_fields:
            profile = load_profile(db, user)
            if profile is None:
                profile = PROFILE_MODELS[user.role](user_id=user.id)
                db.add(profile)
            for key, value in profile_fields.items():
                setattr(profile, key, value)
    return profile_response(db, user)


@router.get("/agents", response_model=List[AgentListing])
def list_agents(
    lat: Optional[float] = Query(None),
    lng: Optional[float] = Query(None),
    radius: Optional[float] = Query(None, gt=0),
    certifications: Optional[str] = Query(None, description="Comma separated; any overlap matches"),
    min_rating: Optional[float] = Query(None, ge=0, le=5),
    db: Session = Depends(get_db),
    _: User = Depends(require_roles("ppo", "client")),
):
    query = (
        db.query(User, AgentProfile)
        .join(AgentProfile, AgentProfile.user_id == User.id)
        .filter(
            User.role == "agent",
            User.is_active.is_(True),
            AgentProfile.availability_status == "available",
            AgentProfile.background_check_status == "approved",
        )
    )
    if min_rating is not None:
        query = query.filter(AgentProfile.rating >= min_rating)
    rows = query.order_by(AgentProfile.rating.desc(), AgentProfile.total_jobs.desc(), User.id).all()

    wanted = {c.strip() for c in certifications.split(",") if c.strip()} if certifications else set()
    radius_km = radius or settings.match_default_radius_km
    results = []
    for user, profile in rows:
        if wanted and not wanted & set(profile.certifications or []):
            continue
        distance = None
        if lat is not None and lng is not None:
            distance = distance_between(lat, lng, profile.location_lat, profile.location_lng)
            if distance is None or distance > radius_km:
                continue
        results.append(agent_listing(user, profile, distance))
    return results


@router.put("/location", response_model=ProfileResponse)
def update_location(
    payload: LocationUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("agent")),
):
    with atomic(db):
        profile = load_profile(db, user)
        if profile is None:
            profile = AgentProfile(user_id=user.id)
            db.add(profile)
        profile.location_lat = payload.lat
        profile.location_lng = payload.lng
    return profile_response(db, user)


@router.put("/availability", response_model=ProfileResponse)
def update_availability(
    payload: AvailabilityUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles("agent")),
):
    with atomic(db):
        profile = load_profile(db, user)
        if profile is None:
            profile = AgentProfile(user_id=user.id)
            db.add(profile)
        profile.availability_status = payload.status.value
    return profile_response(db, user)
