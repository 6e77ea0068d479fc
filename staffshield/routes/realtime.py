import json
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..auth.security import user_from_token
from ..db import get_db
from ..logging import get_logger
from ..models.models import Job, JobAssignment, User
from ..services.realtime import hub, job_room, user_room


router = APIRouter(tags=["realtime"])
log = get_logger(__name__)


def is_job_party(db: Session, job_id: uuid.UUID, user: User) -> bool:
    job = db.query(Job).filter(Job.id == job_id).first()
    if job is None:
        return False
    if user.role == "admin" or user.id in (job.client_id, job.ppo_id):
        return True
    return (
        db.query(JobAssignment)
        .filter(JobAssignment.job_id == job_id, JobAssignment.agent_id == user.id)
        .first()
        is not None
    )


@router.websocket("/ws")
async def ws_events(websocket: WebSocket, token: Optional[str] = None, db: Session = Depends(get_db)):
    if not token:
        await websocket.close(code=4401)
        return
    try:
        user = user_from_token(db, token)
    except HTTPException:
        await websocket.close(code=4401)
        return

    await websocket.accept()
    await hub.join(user_room(user.id), websocket)

    try:
        while True:
            raw = await websocket.receive_text()
            if raw.strip().lower() in {"ping", "keepalive"}:
                await websocket.send_text("pong")
                continue
            try:
                frame = json.loads(raw)
            except ValueError:
                continue
            if not isinstance(frame, dict) or frame.get("action") != "join_job":
                continue
            try:
                job_id = uuid.UUID(str(frame.get("job_id")))
            except ValueError:
                await websocket.send_json({"event": "error", "data": {"detail": "Invalid job id"}})
                continue
            if is_job_party(db, job_id, user):
                await hub.join(job_room(job_id), websocket)
                await websocket.send_json({"event": "joined", "data": {"room": job_room(job_id)}})
            else:
                await websocket.send_json({"event": "error", "data": {"detail": "Job not found or unauthorized"}})
    except WebSocketDisconnect:
        pass
    finally:
        await hub.leave_all(websocket)
        log.debug("ws_disconnected", user_id=str(user.id))
