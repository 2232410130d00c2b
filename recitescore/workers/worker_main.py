# recitescore/workers/worker_main.py
import logging

from redis.exceptions import RedisError
from rq import Queue, SimpleWorker

from recitescore.core.logging_config import setup_logging
from recitescore.workers.queue import (
    enqueue_stale_sweep,
    get_redis_connection,
    MAINTENANCE_QUEUE_NAME,
    TRANSCRIPTION_QUEUE_NAME,
)

logger = logging.getLogger(__name__)

QUEUE_NAMES = [TRANSCRIPTION_QUEUE_NAME, MAINTENANCE_QUEUE_NAME]


def main():
    setup_logging()
    redis_conn = get_redis_connection()

    queues = [Queue(name, connection=redis_conn) for name in QUEUE_NAMES]

    # sweep now, then again every pending timeout for as long as workers run
    try:
        enqueue_stale_sweep()
    except RedisError as e:
        logger.warning(f"Could not queue stale submission sweep: {e}")

    worker = SimpleWorker(queues, connection=redis_conn)

    # the scheduler releases the delayed sweeps
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    main()
