"""
Transcription orchestration against a mocked ASR endpoint.
"""

import httpx
import pytest

from recitescore.models.assignment import Assignment
from recitescore.models.feedback import Feedback
from recitescore.models.submission import (
    Submission,
    STATUS_COMPLETED,
    STATUS_ERROR,
    STATUS_PENDING,
)
from recitescore.services.asr_client import AsrClient, AsrError, AsrNotConfigured, extract_text
from recitescore.services.scoring_service import NOTES_EXCELLENT, NOTES_NO_REFERENCE
from recitescore.services.transcription_service import (
    CHECKPOINT_SENDING,
    EmptyTranscript,
    SubmissionNotFound,
    TranscriptionError,
    TranscriptionNotPending,
    describe_passage,
    run_transcription_for_submission,
)
from recitescore.services.upload_manager import upload_recitation
from recitescore.services.retry import RetryPolicy
from tests.helpers import BISMILLAH_PLAIN, asr_text, make_asr_client, make_wav


@pytest.fixture
def pending_submission(db_session, assignment, storage):
    """A stored recording waiting for transcription."""
    return upload_recitation(
        db_session,
        assignment_id=assignment.id,
        student_id="student-1",
        audio=make_wav(1.0),
        content_type="audio/wav",
        storage=storage,
        retry_policy=RetryPolicy(max_attempts=1, sleep=lambda _: None),
    )


class TestAsrClient:
    def test_posts_raw_audio_with_content_type_and_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"text": "  بسم الله  "})

        text = make_asr_client(handler).transcribe(b"RIFF....", "audio/wav")

        assert text == "  بسم الله  "
        request = seen[0]
        assert request.method == "POST"
        assert request.content == b"RIFF...."
        assert request.headers["content-type"] == "audio/wav"
        assert request.headers["authorization"] == "Bearer test-token"

    def test_transcription_field(self):
        client = make_asr_client(lambda r: httpx.Response(200, json={"transcription": "abc"}))
        assert client.transcribe(b"x", "audio/wav") == "abc"

    def test_non_2xx_carries_body(self):
        client = make_asr_client(lambda r: httpx.Response(503, text="Model is loading"))
        with pytest.raises(AsrError) as excinfo:
            client.transcribe(b"x", "audio/wav")
        assert excinfo.value.status_code == 503
        assert "Model is loading" in str(excinfo.value)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(AsrError, match="timed out"):
            make_asr_client(handler).transcribe(b"x", "audio/wav")

    def test_invalid_json(self):
        client = make_asr_client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(AsrError, match="invalid JSON"):
            client.transcribe(b"x", "audio/wav")

    def test_not_configured(self):
        with pytest.raises(AsrNotConfigured):
            AsrClient("", token=None).transcribe(b"x", "audio/wav")

    @pytest.mark.parametrize(
        "payload, expected",
        [
            ({"text": "a"}, "a"),
            ({"transcription": "b"}, "b"),
            ([{"text": "c"}], "c"),
            ({}, ""),
        ],
    )
    def test_extract_text(self, payload, expected):
        assert extract_text(payload) == expected

    def test_extract_text_error_field(self):
        with pytest.raises(AsrError):
            extract_text({"error": "quota exceeded"})


class TestRunTranscription:
    def test_success_scores_and_completes(self, db_session, pending_submission, storage):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"text": BISMILLAH_PLAIN})

        sub = run_transcription_for_submission(
            db_session,
            pending_submission.id,
            asr_client=make_asr_client(handler),
            storage=storage,
        )

        assert sub.transcription_status == STATUS_COMPLETED
        assert sub.transcription == BISMILLAH_PLAIN
        assert sub.transcribed_at is not None
        assert sub.transcription_progress is None
        assert sub.transcription_error is None
        assert sent[0].content == storage.get(sub.audio_key)

        feedback = db_session.query(Feedback).filter(Feedback.recitation_id == sub.id).one()
        assert feedback.accuracy == 1.0
        assert feedback.notes == NOTES_EXCELLENT
        assert feedback.expected_text == sub.assignment.target_text

    def test_transcript_is_trimmed(self, db_session, pending_submission, storage):
        sub = run_transcription_for_submission(
            db_session,
            pending_submission.id,
            asr_client=make_asr_client(asr_text(f"  {BISMILLAH_PLAIN}\n")),
            storage=storage,
        )
        assert sub.transcription == BISMILLAH_PLAIN

    def test_server_error_marks_submission(self, db_session, pending_submission, storage):
        client = make_asr_client(lambda r: httpx.Response(500, text="CUDA out of memory"))

        with pytest.raises(TranscriptionError):
            run_transcription_for_submission(
                db_session, pending_submission.id, asr_client=client, storage=storage
            )

        sub = db_session.get(Submission, pending_submission.id)
        assert sub.transcription_status == STATUS_ERROR
        assert "CUDA out of memory" in sub.transcription_error
        assert sub.transcription_progress is None
        assert db_session.query(Feedback).count() == 0

    def test_empty_transcript_is_an_error(self, db_session, pending_submission, storage):
        with pytest.raises(EmptyTranscript):
            run_transcription_for_submission(
                db_session,
                pending_submission.id,
                asr_client=make_asr_client(asr_text("   ")),
                storage=storage,
            )

        sub = db_session.get(Submission, pending_submission.id)
        assert sub.transcription_status == STATUS_ERROR
        assert "empty" in sub.transcription_error

    def test_storage_read_failure_is_an_error(self, db_session, pending_submission, storage):
        (storage.root / pending_submission.audio_key).unlink()

        with pytest.raises(TranscriptionError):
            run_transcription_for_submission(
                db_session,
                pending_submission.id,
                asr_client=make_asr_client(asr_text("x")),
                storage=storage,
            )
        assert db_session.get(Submission, pending_submission.id).transcription_status == STATUS_ERROR

    def test_missing_reference_is_unscored(self, db_session, pending_submission, storage):
        assignment = db_session.get(Assignment, pending_submission.assignment_id)
        assignment.target_text = None
        db_session.commit()

        run_transcription_for_submission(
            db_session,
            pending_submission.id,
            asr_client=make_asr_client(asr_text(BISMILLAH_PLAIN)),
            storage=storage,
        )
        feedback = db_session.query(Feedback).one()
        assert feedback.accuracy == 0.0
        assert feedback.notes == NOTES_NO_REFERENCE
        assert feedback.expected_text == "Reference: Surah Al-Fatiha, Ayahs 1-1"

    def test_second_run_is_rejected(self, db_session, pending_submission, storage):
        client = make_asr_client(asr_text(BISMILLAH_PLAIN))
        run_transcription_for_submission(db_session, pending_submission.id, asr_client=client, storage=storage)

        with pytest.raises(TranscriptionNotPending):
            run_transcription_for_submission(db_session, pending_submission.id, asr_client=client, storage=storage)
        assert db_session.query(Feedback).count() == 1

    def test_claimed_row_is_not_run_twice(self, db_session, pending_submission, storage):
        # another trigger already took it
        pending_submission.transcription_progress = CHECKPOINT_SENDING
        db_session.commit()

        with pytest.raises(TranscriptionNotPending):
            run_transcription_for_submission(
                db_session,
                pending_submission.id,
                asr_client=make_asr_client(asr_text("x")),
                storage=storage,
            )
        sub = db_session.get(Submission, pending_submission.id)
        assert sub.transcription_status == STATUS_PENDING

    def test_unknown_submission(self, db_session, storage):
        with pytest.raises(SubmissionNotFound):
            run_transcription_for_submission(
                db_session, 12345, asr_client=make_asr_client(asr_text("x")), storage=storage
            )


def test_describe_passage_prefers_target_text():
    assignment = Assignment(target_text="نص", surah_name="Al-Ikhlas", start_ayah=1, end_ayah=4)
    assert describe_passage(assignment) == "نص"
    assignment.target_text = None
    assert describe_passage(assignment) == "Reference: Surah Al-Ikhlas, Ayahs 1-4"
    assert describe_passage(None) is None
