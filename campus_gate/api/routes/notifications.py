# =======================================================================================
# campus_gate/api/routes/notifications.py - Notification Stream
# =======================================================================================
import asyncio
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from loguru import logger
from starlette.concurrency import run_in_threadpool
from ...models.enums import Role
from ...models.schemas import Actor
from ...services import Services
from ...services.notification_service import OBSERVERS_ROOM, QueueSubscription, student_room
from ...utils.exceptions import Unauthorized

router = APIRouter()
logger = logger.bind(module="notifications")


def _resolve(services: Services, token: str) -> Actor:
    with services.db.get_connection() as conn:
        return services.auth.resolve_session(conn, token)


def room_for(actor: Actor) -> str:
    """Students hear about themselves; staff accounts observe all activity."""
    if actor.role == Role.STUDENT.value and actor.student_id is not None:
        return student_room(actor.student_id)
    return OBSERVERS_ROOM


@router.websocket("/ws/notifications")
async def notification_stream(websocket: WebSocket, token: str = Query("")):
    """
    Push stream of committed changes. Delivery is best effort; clients
    should re-read /api/student/status after reconnecting.
    """
    services: Services = websocket.app.state.services
    try:
        actor = await run_in_threadpool(_resolve, services, token)
    except Unauthorized:
        await websocket.close(code=1008, reason="Invalid session")
        return

    await websocket.accept()
    room = room_for(actor)
    subscription = services.hub.subscribe(
        QueueSubscription(room, asyncio.get_running_loop())
    )
    await websocket.send_json({"type": "connected", "room": room})

    async def pump():
        while True:
            await websocket.send_json(await subscription.get())

    async def drain():
        # incoming frames are ignored; this only notices the disconnect
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(pump()), asyncio.create_task(drain())]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.warning(f"Notification stream on {room} closed: {exc}")
    finally:
        for task in tasks:
            task.cancel()
        services.hub.unsubscribe(subscription)
        logger.debug(f"Session left {room}")
