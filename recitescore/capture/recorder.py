"""
Client-side capture state machine.

    idle -> recording -> processing -> ready
    idle -> error  (no device)
    processing -> error  (rejected recording)
    ready/error -> idle  (reset, or a new start)

All transitions run on one asyncio loop. The only work off the loop is the
PortAudio callback, which appends chunks inside the recorder.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from recitescore.capture.errors import CaptureError, CaptureStateError, DeviceError
from recitescore.capture.session import (
    CaptureSession,
    Recorder,
    SoundDeviceRecorder,
    assemble_wav,
    check_encoder,
)
from recitescore.capture.validation import AudioValidator, ValidatedAudio
from recitescore.core.config import settings

logger = logging.getLogger(__name__)

CAPTURE_CONTENT_TYPE = "audio/wav"
CAPTURE_FILENAME = "recitation.wav"


class CaptureState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


def _default_recorder() -> Recorder:
    return SoundDeviceRecorder(samplerate=settings.CAPTURE_SAMPLE_RATE, channels=1)


class AudioCapture:
    """
    One recording at a time, from microphone or file import, ending in a
    validated audio blob ready for upload.

    Args:
        recorder_factory: builds a fresh recorder for each ``start()``
        validator: shared validator for recordings and imports
        max_duration: hard ceiling in seconds; the capture auto-stops there
        tick_interval: seconds between ``on_tick`` callbacks (display only)
        timeslice: recorder chunk length in seconds
    """

    def __init__(
        self,
        recorder_factory: Callable[[], Recorder] | None = None,
        *,
        validator: AudioValidator | None = None,
        max_duration: float | None = None,
        tick_interval: float = 1.0,
        timeslice: float | None = None,
        on_tick: Callable[[float], None] | None = None,
        on_state_change: Callable[[CaptureState], None] | None = None,
    ):
        self.recorder_factory = recorder_factory or _default_recorder
        self.validator = validator or AudioValidator()
        self.max_duration = (
            max_duration if max_duration is not None else settings.MAX_RECORDING_SECONDS
        )
        self.tick_interval = tick_interval
        self.timeslice = (
            timeslice if timeslice is not None else settings.CAPTURE_TIMESLICE_SECONDS
        )
        self.on_tick = on_tick
        self.on_state_change = on_state_change

        self.state = CaptureState.IDLE
        self.audio: Optional[ValidatedAudio] = None
        self.error: Optional[CaptureError] = None
        self.elapsed = 0.0

        self._session: Optional[CaptureSession] = None
        self._tick_task: Optional[asyncio.Task] = None
        self._ceiling_task: Optional[asyncio.Task] = None
        self._stopped: Optional[asyncio.Event] = None

    # -- state helpers --

    def _set_state(self, state: CaptureState) -> None:
        if state == self.state:
            return
        logger.debug(f"capture {self.state.value} -> {state.value}")
        self.state = state
        if self.on_state_change:
            self.on_state_change(state)

    def _fail(self, error: CaptureError) -> None:
        self.error = error
        self.audio = None
        self._set_state(CaptureState.ERROR)

    def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        for task in (self._tick_task, self._ceiling_task):
            # the ceiling task calls stop() itself and must run to completion
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._tick_task = None
        self._ceiling_task = None

    def _release(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            session.release()

    def _teardown(self) -> None:
        self._cancel_timers()
        self._release()
        self.audio = None
        self.error = None
        self.elapsed = 0.0
        if self._stopped is not None:
            self._stopped.set()
            self._stopped = None

    # -- timers --

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            self.elapsed += self.tick_interval
            if self.on_tick:
                self.on_tick(self.elapsed)

    async def _ceiling(self) -> None:
        await asyncio.sleep(self.max_duration)
        if self.state != CaptureState.RECORDING:
            return
        logger.info(f"Maximum recording length of {self.max_duration}s reached, stopping")
        try:
            await self.stop()
        except CaptureError as e:
            logger.warning(f"Auto-stop failed: {e}")

    # -- public API --

    @property
    def is_recording(self) -> bool:
        return self.state == CaptureState.RECORDING

    async def start(self) -> None:
        """
        Acquire the microphone and begin recording.

        Raises:
            CaptureStateError: a recording is already running or being finalized
            DeviceError: no permission, no device, or no usable encoder
        """
        if self.state in (CaptureState.RECORDING, CaptureState.PROCESSING):
            raise CaptureStateError("A recording is already in progress.")

        self._teardown()

        try:
            check_encoder()
            session = CaptureSession(self.recorder_factory())
            session.acquire(self.timeslice)
        except DeviceError as e:
            logger.error(f"Could not start recording: {e}")
            self._fail(e)
            raise
        except Exception as e:
            logger.error(f"Could not start recording: {e}", exc_info=True)
            error = DeviceError(f"Could not start recording: {e}")
            self._fail(error)
            raise error from e

        self._session = session
        self._stopped = asyncio.Event()
        self._set_state(CaptureState.RECORDING)
        self._tick_task = asyncio.create_task(self._tick())
        self._ceiling_task = asyncio.create_task(self._ceiling())

    async def stop(self) -> ValidatedAudio:
        """
        Finish the recording and validate it.

        The state leaves ``recording`` before anything else happens, so a
        second stop (user click racing the ceiling) is rejected.
        """
        if self.state != CaptureState.RECORDING:
            raise CaptureStateError("No recording is in progress.")
        self._set_state(CaptureState.PROCESSING)
        self._cancel_timers()

        session, self._session = self._session, None
        stopped = self._stopped
        try:
            with session:
                chunks = session.finalize()
            recorder = session.recorder
            data = assemble_wav(chunks, recorder.samplerate, recorder.channels)
            audio = self.validator.validate(
                data, CAPTURE_CONTENT_TYPE, filename=CAPTURE_FILENAME
            )
        except CaptureError as e:
            logger.warning(f"Recording rejected: {e}")
            self._fail(e)
            raise
        except Exception as e:
            logger.error(f"Failed to process recording: {e}", exc_info=True)
            error = CaptureError(f"Failed to process recording: {e}")
            self._fail(error)
            raise error from e
        finally:
            if stopped is not None:
                stopped.set()

        self.audio = audio
        self._set_state(CaptureState.READY)
        logger.info(f"Recording ready: {audio.duration:.2f}s, {audio.size} bytes")
        return audio

    async def reset(self) -> None:
        """Drop everything and return to idle; the device is released without waiting for data."""
        self._teardown()
        self._set_state(CaptureState.IDLE)

    async def import_file(
        self,
        data: bytes,
        content_type: str | None = None,
        filename: str | None = None,
    ) -> ValidatedAudio:
        """Use an existing audio file instead of the microphone."""
        if self.state == CaptureState.PROCESSING:
            raise CaptureStateError("A recording is being processed.")
        self._teardown()

        try:
            audio = self.validator.validate(data, content_type, filename=filename)
        except CaptureError as e:
            logger.warning(f"Imported file rejected: {e}")
            self._fail(e)
            raise

        self.audio = audio
        self._set_state(CaptureState.READY)
        return audio

    async def wait_until_stopped(self) -> Optional[ValidatedAudio]:
        """
        Wait for the running recording to end (user stop or ceiling).

        Returns the validated audio, or raises the error that ended it.
        """
        if self._stopped is not None:
            await self._stopped.wait()
        if self.state == CaptureState.ERROR and self.error is not None:
            raise self.error
        return self.audio
