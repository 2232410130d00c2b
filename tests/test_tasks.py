"""Worker tasks, run in-process against the test database."""

from datetime import datetime, timedelta, timezone
from functools import partial
from types import SimpleNamespace

import httpx
import pytest
from redis.exceptions import RedisError
from sqlalchemy.orm import sessionmaker

from recitescore.models.submission import Submission, STATUS_COMPLETED, STATUS_ERROR
from recitescore.services import transcription_service
from recitescore.services.retry import RetryPolicy
from recitescore.services.upload_manager import upload_recitation
from recitescore.workers import queue, tasks
from tests.helpers import BISMILLAH_PLAIN, asr_text, make_asr_client, make_wav


@pytest.fixture
def worker_env(db_session, storage, monkeypatch):
    """Point the tasks at the test engine, storage and a mocked ASR."""
    holder = {"handler": asr_text(BISMILLAH_PLAIN)}

    monkeypatch.setattr(
        tasks, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=db_session.get_bind())
    )
    monkeypatch.setattr(
        tasks,
        "run_transcription_for_submission",
        lambda db, submission_id: transcription_service.run_transcription_for_submission(
            db,
            submission_id,
            asr_client=make_asr_client(lambda request: holder["handler"](request)),
            storage=storage,
        ),
    )
    return holder


@pytest.fixture
def upload(db_session, assignment, storage):
    return partial(
        upload_recitation,
        db_session,
        assignment_id=assignment.id,
        student_id="student-1",
        audio=make_wav(1.0),
        content_type="audio/wav",
        storage=storage,
        retry_policy=RetryPolicy(max_attempts=1, sleep=lambda _: None),
    )


class TestTranscriptionTask:
    def test_success(self, worker_env, upload, db_session):
        sub = upload()
        result = tasks.transcription_task(sub.id)

        assert result["status"] == "success"
        assert result["accuracy"] == 1.0
        db_session.expire_all()
        assert db_session.get(Submission, sub.id).transcription_status == STATUS_COMPLETED

    def test_failure_is_reported_not_raised(self, worker_env, upload, db_session):
        worker_env["handler"] = lambda request: httpx.Response(502, text="bad gateway")
        sub = upload()

        result = tasks.transcription_task(sub.id)
        assert result["status"] == "error"
        assert "bad gateway" in result["message"]
        db_session.expire_all()
        assert db_session.get(Submission, sub.id).transcription_status == STATUS_ERROR

    def test_already_processed_is_skipped(self, worker_env, upload):
        sub = upload()
        assert tasks.transcription_task(sub.id)["status"] == "success"
        assert tasks.transcription_task(sub.id)["status"] == "skipped"

    def test_unknown_submission(self, worker_env):
        assert tasks.transcription_task(4242)["status"] == "error"


def test_stale_sweep_task(worker_env, upload, db_session):
    old = upload(submitted_at=datetime.now(timezone.utc) - timedelta(days=1))
    result = tasks.stale_pending_sweep_task()

    assert result == {"status": "success", "failed": 1}
    db_session.expire_all()
    assert db_session.get(Submission, old.id).transcription_status == STATUS_ERROR


class FakeQueue:
    def __init__(self):
        self.enqueued = []
        self.delayed = []

    def enqueue(self, func, *args, **kwargs):
        self.enqueued.append((func, kwargs))
        return SimpleNamespace(id="job-now")

    def enqueue_in(self, delay, func, *args, **kwargs):
        self.delayed.append((delay, func, kwargs))
        return SimpleNamespace(id="job-later")


class TestStaleSweepSchedule:
    @pytest.fixture
    def fake_queue(self, monkeypatch):
        fake = FakeQueue()
        monkeypatch.setattr(queue, "get_queue", lambda name=queue.MAINTENANCE_QUEUE_NAME: fake)
        return fake

    def test_rescheduled_sweep_queues_the_next_one(self, worker_env, fake_queue, monkeypatch):
        monkeypatch.setattr(queue.settings, "PENDING_TIMEOUT_MINUTES", 10)

        result = tasks.stale_pending_sweep_task(reschedule=True)

        assert result == {"status": "success", "failed": 0}
        assert fake_queue.delayed == [
            (timedelta(minutes=10), tasks.stale_pending_sweep_task, {"reschedule": True})
        ]

    def test_one_off_sweep_does_not_reschedule(self, worker_env, fake_queue):
        tasks.stale_pending_sweep_task()
        assert fake_queue.delayed == []

    def test_redis_outage_still_reports_the_sweep(self, worker_env, upload, monkeypatch):
        def unreachable(delay=None):
            raise RedisError("connection refused")

        monkeypatch.setattr(tasks, "enqueue_stale_sweep", unreachable)
        upload(submitted_at=datetime.now(timezone.utc) - timedelta(days=1))

        assert tasks.stale_pending_sweep_task(reschedule=True) == {"status": "success", "failed": 1}

    def test_worker_start_sweeps_immediately(self, fake_queue):
        assert queue.enqueue_stale_sweep() == "job-now"
        assert fake_queue.enqueued == [(tasks.stale_pending_sweep_task, {"reschedule": True})]
