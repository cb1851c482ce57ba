"""
Script2Video Worker Entry Point

Starts the RQ worker that composes and exports script timelines.

Usage:
    python -m script2video.worker

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379/0)
"""

import logging
import sys

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Worker

from script2video.core.logging import configure_logging
from script2video.queues import ALL_QUEUES, get_redis_connection

logger = logging.getLogger("script2video.worker")


def create_worker(connection: Redis) -> Worker:
    """
    Create an RQ worker listening to all Script2Video queues.

    Args:
        connection: Redis connection instance

    Returns:
        Worker: Configured RQ worker instance
    """
    queues = [Queue(name, connection=connection) for name in ALL_QUEUES]
    return Worker(queues=queues, connection=connection)


def start_worker() -> None:
    """
    Initialize the Redis connection and start the RQ worker.

    Blocks until the worker is terminated.
    """
    configure_logging()
    logger.info("Starting Script2Video worker...")

    try:
        connection = get_redis_connection()
        connection.ping()
        logger.info("Successfully connected to Redis")
    except RedisError as e:
        logger.error(f"Failed to connect to Redis: {e}")
        sys.exit(1)

    logger.info(f"Listening on queues: {', '.join(ALL_QUEUES)}")

    worker = create_worker(connection)
    try:
        worker.work(with_scheduler=False)
    except KeyboardInterrupt:
        logger.info("Worker shutdown requested")

    logger.info("Worker stopped")


def main() -> None:
    """Main entry point for the worker module."""
    start_worker()


if __name__ == "__main__":
    main()
