import asyncio
from typing import Any, Dict, Set

import anyio
from fastapi import WebSocket

from ..logging import get_logger


log = get_logger(__name__)


def user_room(user_id) -> str:
    return f"user:{user_id}"


def job_room(job_id) -> str:
    return f"job:{job_id}"


class RoomHub:
    def __init__(self) -> None:
        # room name -> set of WebSocket connections
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def join(self, room: str, ws: WebSocket) -> None:
        async with self._lock:
            self._rooms.setdefault(room, set()).add(ws)

    async def leave(self, room: str, ws: WebSocket) -> None:
        async with self._lock:
            conns = self._rooms.get(room)
            if conns is not None:
                conns.discard(ws)
                if not conns:
                    self._rooms.pop(room, None)

    async def leave_all(self, ws: WebSocket) -> None:
        async with self._lock:
            for room in list(self._rooms):
                conns = self._rooms[room]
                conns.discard(ws)
                if not conns:
                    self._rooms.pop(room, None)

    async def emit(self, room: str, event: str, payload: Any) -> None:
        data = {"event": event, "data": payload}
        async with self._lock:
            targets = list(self._rooms.get(room, set()))
        dead = []
        for ws in targets:
            try:
                await ws.send_json(data)
            except Exception:
                # best-effort; drop the socket on failure
                dead.append(ws)
        for ws in dead:
            await self.leave(room, ws)


# Global singleton hub
hub = RoomHub()


def publish(room: str, event: str, payload: Any) -> None:
    """
    Emit from sync request handlers (they run in a worker thread).
    Delivery is best-effort; a failed emit never fails the request.
    """
    async def _emit():
        await hub.emit(room, event, payload)

    try:
        anyio.from_thread.run(_emit)
    except RuntimeError:
        # Not inside a worker thread spawned by the event loop (scripts, tests)
        log.debug("realtime_emit_skipped", room=room, event_name=event)
