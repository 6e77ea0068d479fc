import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from .jobs import JobOut
from .users import AgentListing


class JobMatch(JobOut):
    match_score: int
    match_reasons: List[str] = []
    distance_km: Optional[float] = None


class AgentMatch(AgentListing):
    match_score: int
    match_reasons: List[str] = []


class PreferenceRequest(BaseModel):
    job_id: uuid.UUID
    interested: bool = True


class MatchStats(BaseModel):
    role: str
    stats: Dict[str, Any]
