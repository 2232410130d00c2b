"""
Client side of a submission: upload the ready capture, then kick off
transcription without waiting for it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

import httpx

from recitescore.capture.encoder import AudioEncoder
from recitescore.capture.errors import CaptureStateError
from recitescore.capture.recorder import AudioCapture, CaptureState
from recitescore.core.config import settings
from recitescore.core.media import extension_for
from recitescore.services.upload_manager import SubmissionError, UploadFailed

logger = logging.getLogger(__name__)

RECITATIONS_PATH = "/api/v1/recitations"
TRIGGER_PATH = "/api/v1/speech-recognition"


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        return str(payload.get("detail") or payload.get("error") or payload)
    return str(payload)


class RecitationSubmitter:
    def __init__(
        self,
        base_url: str,
        *,
        encoder: AudioEncoder | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ):
        if encoder is None and settings.ENCODER_ENABLED:
            encoder = AudioEncoder()
        self.encoder = encoder
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._triggers: Set[asyncio.Task] = set()

    async def submit(
        self,
        capture: AudioCapture,
        *,
        assignment_id: int,
        student_id: str,
    ) -> dict:
        """
        Upload the capture's audio and return the created submission.

        On failure the capture is left untouched in ``ready`` so the same
        audio can be submitted again.

        Raises:
            CaptureStateError: nothing ready to submit
            SubmissionError: the server rejected the submission (4xx)
            UploadFailed: network failure or the server could not store it
        """
        if capture.state != CaptureState.READY or capture.audio is None:
            raise CaptureStateError("There is no finished recording to submit.")

        audio = capture.audio
        if self.encoder is not None:
            audio = await asyncio.to_thread(self.encoder.encode, audio)

        filename = audio.filename or f"recitation.{extension_for(audio.content_type)}"
        try:
            response = await self._client.post(
                RECITATIONS_PATH,
                files={"file": (filename, audio.data, audio.content_type)},
                data={"assignment_id": str(assignment_id), "student_id": student_id},
            )
        except httpx.HTTPError as e:
            logger.error(f"Upload request failed: {e}")
            raise UploadFailed(f"Upload failed: {e}", last_error=e) from e

        if response.status_code >= 500:
            raise UploadFailed(f"Upload failed: {_error_detail(response)}")
        if response.status_code >= 400:
            raise SubmissionError(_error_detail(response))

        submission = response.json()
        logger.info(f"Submitted recitation {submission['id']} for assignment {assignment_id}")

        if not submission.get("transcription_queued"):
            task = asyncio.create_task(self._trigger_quietly(submission["id"]))
            self._triggers.add(task)
            task.add_done_callback(self._triggers.discard)
        return submission

    async def trigger_transcription(self, recitation_id: int) -> dict:
        """POST the trigger and return its JSON body (``success`` or ``error``)."""
        response = await self._client.post(TRIGGER_PATH, json={"recitationId": recitation_id})
        try:
            payload = response.json()
        except ValueError:
            payload = {"error": response.text or response.reason_phrase}
        if not response.is_success:
            logger.warning(
                f"Transcription trigger for recitation {recitation_id} "
                f"returned {response.status_code}: {_error_detail(response)}"
            )
        return payload

    async def _trigger_quietly(self, recitation_id: int) -> Optional[dict]:
        # the submission already exists; its status endpoint reports the outcome
        try:
            return await self.trigger_transcription(recitation_id)
        except httpx.HTTPError as e:
            logger.warning(f"Could not trigger transcription for recitation {recitation_id}: {e}")
            return None

    async def wait_for_triggers(self) -> None:
        if self._triggers:
            await asyncio.gather(*list(self._triggers))

    async def aclose(self) -> None:
        await self.wait_for_triggers()
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "RecitationSubmitter":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
