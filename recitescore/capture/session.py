"""
Microphone ownership for a single recording.

``CaptureSession`` is the only holder of the input device while a recording
runs; ``release()`` is safe to call from every exit path (success, error,
reset) and more than once.
"""

from __future__ import annotations

import io
import logging
import threading
from typing import List, Optional, Protocol

import numpy as np
import soundfile as sf

from recitescore.capture.errors import DeviceError

logger = logging.getLogger(__name__)

WAV_FORMAT = "WAV"
WAV_SUBTYPE = "PCM_16"


class Recorder(Protocol):
    samplerate: int
    channels: int

    def open(self, timeslice: float) -> None: ...

    def start(self) -> None: ...

    def flush(self) -> None: ...

    def drain(self) -> List[np.ndarray]: ...

    def close(self) -> None: ...


class SoundDeviceRecorder:
    """
    Chunked recorder on a PortAudio input stream.

    The stream delivers one block per time-slice, so audio recorded before an
    early stop is already buffered.
    """

    def __init__(
        self,
        samplerate: int = 16000,
        channels: int = 1,
        device: Optional[int | str] = None,
        dtype: str = "int16",
    ):
        self.samplerate = samplerate
        self.channels = channels
        self.device = device
        self.dtype = dtype
        self._stream = None
        self._chunks: List[np.ndarray] = []
        self._lock = threading.Lock()

    def _on_block(self, indata, frames, time_info, status):
        # runs on the PortAudio thread
        if status:
            logger.debug("input stream status: %s", status)
        with self._lock:
            self._chunks.append(indata.copy())

    def open(self, timeslice: float) -> None:
        try:
            import sounddevice as sd
        except OSError as e:
            raise DeviceError(f"Audio input is unavailable: {e}") from e

        try:
            sd.check_input_settings(
                device=self.device,
                channels=self.channels,
                dtype=self.dtype,
                samplerate=self.samplerate,
            )
            self._stream = sd.InputStream(
                samplerate=self.samplerate,
                blocksize=max(1, int(self.samplerate * timeslice)),
                device=self.device,
                channels=self.channels,
                dtype=self.dtype,
                callback=self._on_block,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceError(
                f"Could not start recording: {e}. Please ensure microphone access "
                "is allowed and try again."
            ) from e

    def start(self) -> None:
        import sounddevice as sd

        try:
            self._stream.start()
        except sd.PortAudioError as e:
            raise DeviceError(f"Could not start recording: {e}") from e

    def flush(self) -> None:
        """Stop the stream; PortAudio finishes any block in flight first."""
        if self._stream is not None and self._stream.active:
            self._stream.stop()

    def drain(self) -> List[np.ndarray]:
        with self._lock:
            chunks, self._chunks = self._chunks, []
        return chunks

    def close(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        stream.close(ignore_errors=True)


class CaptureSession:
    def __init__(self, recorder: Recorder):
        self.recorder = recorder
        self.acquired = False
        self.released = False

    def __enter__(self) -> "CaptureSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def acquire(self, timeslice: float) -> None:
        try:
            self.recorder.open(timeslice)
            self.recorder.start()
        except Exception:
            self.release()
            raise
        self.acquired = True
        logger.info("Microphone acquired (%s Hz, %s ch)", self.recorder.samplerate, self.recorder.channels)

    def finalize(self) -> List[np.ndarray]:
        """Flush the last block and hand back every chunk recorded."""
        self.recorder.flush()
        return self.recorder.drain()

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.recorder.close()
        if self.acquired:
            logger.info("Microphone released")


def check_encoder() -> None:
    if not sf.check_format(WAV_FORMAT, WAV_SUBTYPE):
        raise DeviceError("No compatible audio encoder is available on this system.")


def assemble_wav(chunks: List[np.ndarray], samplerate: int, channels: int = 1) -> bytes:
    """Concatenate recorded chunks into one WAV container; b'' when nothing was captured."""
    chunks = [c for c in chunks if c is not None and c.size > 0]
    if not chunks:
        return b""

    data = np.concatenate(chunks)
    if channels == 1 and data.ndim == 2:
        data = data[:, 0]

    buf = io.BytesIO()
    sf.write(buf, data, samplerate, format=WAV_FORMAT, subtype=WAV_SUBTYPE)
    return buf.getvalue()
