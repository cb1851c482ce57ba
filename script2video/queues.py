"""
Script2Video Queue Definitions

One queue:
- script2video:compose - compose, export and record a script timeline
"""

from typing import Optional

from redis import Redis
from rq import Queue

from script2video.core.config import get_settings

COMPOSE_QUEUE = "script2video:compose"

# Redis connection singleton
_redis_connection: Optional[Redis] = None


def get_redis_connection() -> Redis:
    """
    Get or create a Redis connection from the REDIS_URL setting.

    Returns:
        Redis: A Redis connection instance
    """
    global _redis_connection

    if _redis_connection is None:
        _redis_connection = Redis.from_url(get_settings().redis_url, decode_responses=False)

    return _redis_connection


class _LazyQueue:
    """Lazy queue wrapper that connects on first use."""

    def __init__(self, name: str):
        self._name = name
        self._queue: Optional[Queue] = None

    @property
    def name(self) -> str:
        return self._name

    def _get_queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(self._name, connection=get_redis_connection())
        return self._queue

    def __getattr__(self, name):
        return getattr(self._get_queue(), name)

    def enqueue(self, *args, **kwargs):
        return self._get_queue().enqueue(*args, **kwargs)


compose_queue = _LazyQueue(COMPOSE_QUEUE)

# All queues in priority order for worker initialization
ALL_QUEUES = [COMPOSE_QUEUE]
