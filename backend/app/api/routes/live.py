import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.services.quiz_service import QuizService, get_quiz_service
from app.utils.errors import InvalidTransitionError, SessionNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/{session_id}")
async def websocket_session(
    websocket: WebSocket, session_id: str, service: QuizService = Depends(get_quiz_service)
):
    """Push a session snapshot every tick and accept timer toggles"""
    await websocket.accept()

    try:
        session = service.get_session(session_id)
    except SessionNotFoundError:
        await websocket.send_json({"type": "error", "message": "Session not found"})
        await websocket.close()
        return

    await websocket.send_json({"type": "snapshot", "session": session.snapshot()})
    pusher = asyncio.create_task(_push_snapshots(websocket, service, session_id))

    try:
        while True:
            data = await websocket.receive_text()
            message = json.loads(data)

            if message.get("type") == "toggle_timer":
                try:
                    session = await service.toggle_timer(session_id)
                except (InvalidTransitionError, SessionNotFoundError) as e:
                    await websocket.send_json({"type": "error", "message": str(e)})
                    continue
                await websocket.send_json({"type": "snapshot", "session": session.snapshot()})
            elif message.get("type") == "ping":
                await websocket.send_json({"type": "pong"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("WebSocket error for session %s: %s", session_id, e)
        await websocket.close()
    finally:
        pusher.cancel()
        await asyncio.gather(pusher, return_exceptions=True)


async def _push_snapshots(websocket: WebSocket, service: QuizService, session_id: str):
    while True:
        await asyncio.sleep(service.tick_interval)
        try:
            session = service.get_session(session_id)
        except SessionNotFoundError:
            await websocket.send_json({"type": "error", "message": "Session not found"})
            return
        await websocket.send_json({"type": "snapshot", "session": session.snapshot()})
