"""
SceneStitch Queue Definitions

Render jobs go on a single queue (RENDER_QUEUE_NAME, default
``scenestitch:render``). RQ stores pickled payloads, so its connection
does not decode responses; the progress store uses the decoding pool in
``scenestitch.core.redis``.
"""

from typing import Optional

from redis import Redis
from rq import Queue

from .core.config import get_settings

# Redis connection singleton
_redis_connection: Optional[Redis] = None


def get_queue_connection() -> Redis:
    """
    Get or create the Redis connection used by RQ.

    Returns:
        Redis: A Redis connection instance (bytes responses)
    """
    global _redis_connection

    if _redis_connection is None:
        _redis_connection = Redis.from_url(get_settings().redis_url, decode_responses=False)

    return _redis_connection


def reset_queue_connection() -> None:
    """Drop the cached connection (tests, settings changes)."""
    global _redis_connection
    _redis_connection = None


class _LazyQueue:
    """Lazy queue wrapper that initializes on first access."""

    def __init__(self, name: Optional[str] = None):
        self._name = name
        self._queue: Optional[Queue] = None

    @property
    def name(self) -> str:
        return self._name or get_settings().render_queue_name

    def _get_queue(self) -> Queue:
        if self._queue is None:
            self._queue = Queue(self.name, connection=get_queue_connection())
        return self._queue

    def __getattr__(self, name):
        return getattr(self._get_queue(), name)

    def enqueue(self, *args, **kwargs):
        return self._get_queue().enqueue(*args, **kwargs)


# Queue name comes from settings at first use
render_queue = _LazyQueue()


def all_queue_names() -> list:
    """Queue names the worker listens on, in priority order."""
    return [render_queue.name]
