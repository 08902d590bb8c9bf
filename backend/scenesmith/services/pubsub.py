"""Redis Pub/Sub bridge for cross-process WebSocket notifications.

Pipeline runs (API process or Celery worker) publish progress to a Redis
channel per project. FastAPI's WebSocket handler subscribes and relays to
connected clients.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis
import redis.asyncio as aioredis

from scenesmith.config import get_settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "scenesmith:ws:"

# ──────── Sync connection pool (publishers) ────────

_sync_pool: redis.ConnectionPool | None = None


def get_sync_pool() -> redis.ConnectionPool:
    """Lazy-init a module-level sync Redis ConnectionPool."""
    global _sync_pool
    if _sync_pool is None:
        _sync_pool = redis.ConnectionPool.from_url(get_settings().REDIS_URL)
    return _sync_pool


def channel_for(project_id: str) -> str:
    return f"{CHANNEL_PREFIX}{project_id}"


# ──────── Publishers (sync; async callers go through asyncio.to_thread) ────────

def publish_pipeline_progress(project_id: str, snapshot: dict[str, Any]) -> None:
    _publish_sync(project_id, {"type": "pipeline_progress", **snapshot})


def publish_scene_update(project_id: str, scene_number: int, status: str) -> None:
    _publish_sync(project_id, {
        "type": "scene_update",
        "scene_number": scene_number,
        "status": status,
    })


def publish_project_update(project_id: str, status: str, error: str | None = None) -> None:
    message: dict[str, Any] = {"type": "project_update", "status": status}
    if error:
        message["error"] = error
    _publish_sync(project_id, message)


def _publish_sync(project_id: str, message: dict[str, Any]) -> None:
    """Publish to the project channel; notification loss never fails a run."""
    try:
        r = redis.Redis(connection_pool=get_sync_pool())
        r.publish(channel_for(project_id), json.dumps(message))
    except redis.RedisError:
        logger.warning("Failed to publish WS notification for project %s", project_id[:8], exc_info=True)


# ──────── Subscriber (used by FastAPI, async) ────────

_async_client: aioredis.Redis | None = None


def _get_async_client() -> aioredis.Redis:
    """Lazy-init a module-level async Redis client (singleton)."""
    global _async_client
    if _async_client is None:
        _async_client = aioredis.from_url(get_settings().REDIS_URL)
    return _async_client


async def subscribe_project(project_id: str) -> aioredis.client.PubSub:
    """Subscribe to a project channel.

    Caller should close the pubsub when done, but NOT the shared client.
    """
    pubsub = _get_async_client().pubsub()
    await pubsub.subscribe(channel_for(project_id))
    return pubsub


async def listen_pubsub(pubsub: aioredis.client.PubSub):
    """Async generator that yields parsed messages from a PubSub subscription."""
    async for raw_message in pubsub.listen():
        if raw_message["type"] == "message":
            try:
                yield json.loads(raw_message["data"])
            except (json.JSONDecodeError, TypeError):
                continue
