"""WebSocket endpoint for real-time pipeline progress.

Uses Redis Pub/Sub to receive notifications from pipeline runs (API process
or Celery workers) and relay them to connected browser clients.
"""

from __future__ import annotations

import asyncio
import logging

import redis.exceptions
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from scenesmith.api.deps import get_user_id
from scenesmith.database import async_session_factory
from scenesmith.models.project import Project
from scenesmith.services.pubsub import listen_pubsub, subscribe_project

router = APIRouter()
logger = logging.getLogger(__name__)

# In-process registry: project_id -> set of active WebSocket connections
_project_connections: dict[str, set[WebSocket]] = {}


async def _owns_project(project_id: str, user_id: str) -> bool:
    async with async_session_factory() as session:
        project = await session.get(Project, project_id)
    return project is not None and project.owner_id == user_id


@router.websocket("/ws/{project_id}")
async def ws_project(ws: WebSocket, project_id: str, user_id: str = Depends(get_user_id)):
    """Relay a project's progress, scene and status events to the client.

    Clients may send "ping" and get {"type": "pong"} back.
    """
    if not await _owns_project(project_id, user_id):
        await ws.close(code=4404)
        return
    await ws.accept()

    _project_connections.setdefault(project_id, set()).add(ws)
    logger.info("WS connected: project=%s (total=%d)", project_id[:8], len(_project_connections[project_id]))

    pubsub = None
    listener_task = None
    try:
        pubsub = await subscribe_project(project_id)
        listener_task = asyncio.create_task(_relay_pubsub_to_ws(pubsub, ws, project_id))

        while True:
            data = await ws.receive_text()
            if data == "ping":
                await ws.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info("WS disconnected: project=%s", project_id[:8])
    except redis.exceptions.RedisError as exc:
        logger.warning("WS relay unavailable for project=%s: %s", project_id[:8], exc)
        await ws.close(code=1011)
    finally:
        _project_connections.get(project_id, set()).discard(ws)
        if not _project_connections.get(project_id):
            _project_connections.pop(project_id, None)
        if listener_task:
            listener_task.cancel()
        if pubsub:
            await pubsub.unsubscribe()
            await pubsub.aclose()


async def _relay_pubsub_to_ws(pubsub, ws: WebSocket, project_id: str) -> None:
    """Background task: read from Redis Pub/Sub and forward to the WebSocket client."""
    try:
        async for message in listen_pubsub(pubsub):
            await ws.send_json(message)
    except asyncio.CancelledError:
        raise
    except WebSocketDisconnect:
        logger.debug("WS closed while relaying for project=%s", project_id[:8])
    except redis.exceptions.RedisError as exc:
        logger.warning("Pub/Sub relay error for project=%s: %s", project_id[:8], exc)
