"""WebSocket router -- live updates for one project."""

import logging
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.ws_manager import MAX_MESSAGE_SIZE, manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/ws/projects/{project_id}")
async def project_updates(websocket: WebSocket, project_id: str) -> None:
    """Subscribe to a project's events.

    The server sends ``{"type": "fragment_ready" | "job_failed", "payload"}``
    when the agent run finishes, plus periodic ``ping`` frames.  Client
    messages are read only to keep the socket alive.
    """
    try:
        key = str(UUID(project_id))
    except ValueError:
        await websocket.close(code=4004, reason="Invalid project id")
        return

    await websocket.accept()
    await manager.connect(key, websocket)
    logger.info("WS open  project=%s conns=%d", key[:8], manager.connection_count(key))

    try:
        while True:
            data = await websocket.receive_text()
            if len(data) > MAX_MESSAGE_SIZE:
                await websocket.close(code=1009, reason="Message too large")
                return
    except WebSocketDisconnect:
        logger.info("WS close project=%s (client disconnect)", key[:8])
    except Exception:
        logger.exception("WS error project=%s", key[:8])
    finally:
        await manager.disconnect(key, websocket)
        logger.info(
            "WS cleaned up project=%s remaining=%d", key[:8], manager.connection_count(key),
        )
