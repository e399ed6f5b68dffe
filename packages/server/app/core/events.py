"""
Task event publication over Redis.

Events are handed to the notification collaborator through a Redis Pub/Sub
channel, with a bounded list kept alongside so late subscribers can catch
up. Publication is fire-and-forget: a Redis failure is logged and never
turns a committed task change into an error for the caller.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

import structlog
from redis.exceptions import RedisError

from app.core.config import get_settings
from app.core.redis import get_redis

log = structlog.get_logger()
settings = get_settings()

BUFFER_KEY = "taskflow:events:buffer"


def build_envelope(
    event_type: str,
    payload: dict[str, Any],
    actor_id: UUID | None = None,
) -> dict[str, Any]:
    return {
        "id": str(uuid4()),
        "type": event_type,
        "actor_id": str(actor_id) if actor_id else None,
        "payload": payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def broadcast_event(
    event_type: str,
    payload: dict[str, Any],
    actor_id: UUID | None = None,
) -> bool:
    """
    Buffer the event in Redis and publish it to Pub/Sub.

    Returns False when Redis could not be reached; callers do not act on it.
    """
    event_json = json.dumps(build_envelope(event_type, payload, actor_id), default=str)
    try:
        redis = await get_redis()
        async with redis.pipeline() as pipe:
            pipe.lpush(BUFFER_KEY, event_json)
            pipe.ltrim(BUFFER_KEY, 0, settings.events_buffer_size - 1)
            await pipe.execute()
        await redis.publish(settings.events_channel, event_json)
    except (RedisError, OSError) as exc:
        log.warning("events.publish_failed", event_type=event_type, error=str(exc))
        return False
    return True
