"""Cancellation flags checked by the pipeline at stage boundaries.

Runs inside the API process use the in-process registry; Celery runs use a
Redis key so the API can cancel a run living in another process. Setting a
flag never interrupts an in-flight provider call.
"""

from __future__ import annotations

import logging
from typing import Callable

import redis

from scenesmith.services.pubsub import get_sync_pool

logger = logging.getLogger(__name__)

CANCEL_KEY_PREFIX = "scenesmith:cancel:"
CANCEL_TTL_SECONDS = 6 * 3600

_local_flags: set[str] = set()

CancelCheck = Callable[[], bool]


def cancel_key(project_id: str) -> str:
    return f"{CANCEL_KEY_PREFIX}{project_id}"


def request_cancel(project_id: str) -> None:
    """Flag a project's run for cancellation (both registries)."""
    _local_flags.add(project_id)
    try:
        redis.Redis(connection_pool=get_sync_pool()).set(cancel_key(project_id), "1", ex=CANCEL_TTL_SECONDS)
    except redis.RedisError as e:
        logger.warning("Cancel flag for project=%s only set in-process: %s", project_id[:8], e)


def clear_cancel(project_id: str) -> None:
    _local_flags.discard(project_id)
    try:
        redis.Redis(connection_pool=get_sync_pool()).delete(cancel_key(project_id))
    except redis.RedisError as e:
        logger.debug("Could not clear redis cancel flag for project=%s: %s", project_id[:8], e)


def local_cancel_check(project_id: str) -> CancelCheck:
    return lambda: project_id in _local_flags


def redis_cancel_check(project_id: str) -> CancelCheck:
    """Checks the Redis flag, falling back to the in-process one if Redis is down."""
    def _check() -> bool:
        if project_id in _local_flags:
            return True
        try:
            return bool(redis.Redis(connection_pool=get_sync_pool()).exists(cancel_key(project_id)))
        except redis.RedisError as e:
            logger.warning("Cancel check failed for project=%s: %s", project_id[:8], e)
            return False
    return _check
