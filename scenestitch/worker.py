"""
SceneStitch Worker Entry Point

Starts the RQ worker that processes queued scene renders.

Usage:
    scenestitch-worker
    python -m scenestitch.worker

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379/0)
    RENDER_QUEUE_NAME: Queue to listen on (default: scenestitch:render)
"""

import logging
import os
import socket
import sys

from redis import Redis
from rq import Queue, Worker

from .core.config import get_settings
from .queues import all_queue_names, get_queue_connection
from .tasks.ffmpeg_runner import validate_ffmpeg_available

logger = logging.getLogger("scenestitch.worker")


def configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def create_worker(connection: Redis) -> Worker:
    """
    Create an RQ worker that listens to the render queue.

    Args:
        connection: Redis connection instance

    Returns:
        Worker: Configured RQ worker instance
    """
    queues = [Queue(name, connection=connection) for name in all_queue_names()]

    return Worker(
        queues=queues,
        connection=connection,
        name=f"scenestitch-{socket.gethostname()}-{os.getpid()}",
    )


def start_worker() -> None:
    """
    Initialize Redis connection and start the RQ worker.

    This function blocks and runs until the worker is terminated.
    """
    logger.info("Starting SceneStitch worker...")

    settings = get_settings()
    if not validate_ffmpeg_available(settings.ffmpeg_binary):
        logger.warning(f"{settings.ffmpeg_binary} is not runnable; renders will fail")

    try:
        connection = get_queue_connection()

        # Verify Redis connection
        connection.ping()
        logger.info("Successfully connected to Redis")

    except Exception as e:
        logger.error(f"Failed to connect to Redis: {e}")
        sys.exit(1)

    logger.info(f"Listening on queues: {', '.join(all_queue_names())}")

    worker = create_worker(connection)

    try:
        worker.work(with_scheduler=False)
    except KeyboardInterrupt:
        logger.info("Worker shutdown requested")
    except Exception as e:
        logger.error(f"Worker error: {e}")
        sys.exit(1)

    logger.info("Worker stopped")


def main() -> None:
    """Main entry point for the worker module."""
    configure_logging()
    start_worker()


if __name__ == "__main__":
    main()
