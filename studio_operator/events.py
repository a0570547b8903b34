"""
Activity feed on Redis Streams for dashboards.

Optional: with no REDIS_URL, or with Redis unreachable, publishing is a no-op
and the operator carries on.
"""
import json as _json
import logging
from datetime import datetime, timezone

import redis

from studio_operator.config import settings

logger = logging.getLogger("studio-operator.events")

STREAM_MAXLEN = 100
CHANNEL = "studio:events"

_redis_client = None


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _get_redis():
    """Lazy-init Redis client. Returns None if unavailable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    if not settings.REDIS_URL:
        return None
    try:
        _redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        _redis_client.ping()
        logger.info(f"Redis connected: {settings.REDIS_URL}")
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"Redis unavailable (non-fatal): {e}")
        _redis_client = None
        return None


def publish_event(instance: str, event_type: str, message: str, state: str = ""):
    """Publish an event to the instance stream and the global channel."""
    r = _get_redis()
    if not r:
        return
    entry = {
        "type": event_type,
        "message": message,
        "state": state,
        "timestamp": _now(),
        "studio": instance,
    }
    try:
        r.xadd(f"{CHANNEL}:{instance}", entry, maxlen=STREAM_MAXLEN)
        r.publish(CHANNEL, _json.dumps(entry))
    except redis.RedisError as e:
        logger.debug(f"Redis publish failed (non-fatal): {e}")
