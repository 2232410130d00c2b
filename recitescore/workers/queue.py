# recitescore/workers/queue.py
from datetime import timedelta

from redis import Redis
from rq import Queue

from recitescore.core.config import settings

TRANSCRIPTION_QUEUE_NAME = "transcription"
MAINTENANCE_QUEUE_NAME = "maintenance"

_redis_conn: Redis | None = None


def get_redis_connection() -> Redis:
    global _redis_conn
    if _redis_conn is None:
        redis_url = settings.REDIS_URL
        _redis_conn = Redis.from_url(redis_url)
    return _redis_conn


def get_queue(name: str = TRANSCRIPTION_QUEUE_NAME) -> Queue:
    return Queue(name, connection=get_redis_connection())


def enqueue_transcription_task(submission_id: int) -> str:
    from recitescore.workers.tasks import transcription_task

    q = get_queue(TRANSCRIPTION_QUEUE_NAME)
    # the ASR call itself is bounded by ASR_TIMEOUT_SECONDS
    job = q.enqueue(
        transcription_task,
        submission_id,
        job_timeout=int(settings.ASR_TIMEOUT_SECONDS) + 60,
    )
    return job.id


def enqueue_stale_sweep(delay: timedelta | None = None) -> str:
    """
    Queue a stale-pending sweep, now or after ``delay``. Each sweep queues
    the next one, so a running worker keeps sweeping.

    Delayed jobs need a worker started with the rq scheduler.
    """
    from recitescore.workers.tasks import stale_pending_sweep_task

    q = get_queue(MAINTENANCE_QUEUE_NAME)
    if delay is None:
        job = q.enqueue(stale_pending_sweep_task, reschedule=True)
    else:
        job = q.enqueue_in(delay, stale_pending_sweep_task, reschedule=True)
    return job.id


def sweep_interval() -> timedelta:
    return timedelta(minutes=settings.PENDING_TIMEOUT_MINUTES)
