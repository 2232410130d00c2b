"""
Shared validation for recorded and imported audio.

The decoded duration from the container is the only thing that decides
whether a recording is long enough; the UI timer is never consulted.
"""

import io
import logging
import math
from dataclasses import dataclass
from typing import Optional

import soundfile as sf

from recitescore.capture.errors import EmptyCapture, InvalidAudio, RecordingTooShort
from recitescore.core.config import settings
from recitescore.core.media import (
    ALLOWED_CONTENT_TYPES,
    base_mime_type,
    extension_for,
    guess_content_type,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedAudio:
    data: bytes
    content_type: str
    duration: float
    filename: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def _duration_via_soundfile(data: bytes) -> Optional[float]:
    try:
        info = sf.info(io.BytesIO(data))
    except (RuntimeError, TypeError, ValueError) as exc:
        logger.debug("soundfile could not read audio: %s", exc)
        return None
    if info.samplerate <= 0:
        return None
    return info.frames / info.samplerate


def _duration_via_mutagen(data: bytes) -> Optional[float]:
    from mutagen import File as MutagenFile, MutagenError

    try:
        audio = MutagenFile(io.BytesIO(data))
    except MutagenError as exc:
        logger.debug("mutagen could not read audio: %s", exc)
        return None
    if audio is None or getattr(audio, "info", None) is None:
        return None
    length = getattr(audio.info, "length", None)
    return float(length) if length is not None else None


def _duration_via_pydub(data: bytes, content_type: str) -> Optional[float]:
    from pydub import AudioSegment
    from pydub.exceptions import CouldntDecodeError
    from pydub.utils import which

    if which("ffmpeg") is None:
        return None
    try:
        segment = AudioSegment.from_file(io.BytesIO(data), format=extension_for(content_type))
    except (CouldntDecodeError, OSError) as exc:
        logger.debug("ffmpeg could not decode audio: %s", exc)
        return None
    return len(segment) / 1000.0


def probe_duration(data: bytes, content_type: str) -> Optional[float]:
    """Container duration in seconds, or None when no decoder understands it."""
    for probe in (
        _duration_via_soundfile,
        _duration_via_mutagen,
    ):
        duration = probe(data)
        if duration is not None:
            return duration
    return _duration_via_pydub(data, content_type)


class AudioValidator:
    """
    One validator for both paths (microphone capture and file import):
    type allow-list, size cap, and a minimum decoded duration.
    """

    def __init__(
        self,
        *,
        min_duration: float | None = None,
        max_bytes: int | None = None,
        allowed_content_types=ALLOWED_CONTENT_TYPES,
    ):
        self.min_duration = (
            min_duration if min_duration is not None else settings.MIN_RECORDING_SECONDS
        )
        self.max_bytes = max_bytes if max_bytes is not None else settings.MAX_UPLOAD_BYTES
        self.allowed_content_types = allowed_content_types

    def validate(
        self,
        data: bytes,
        content_type: str | None,
        filename: str | None = None,
    ) -> ValidatedAudio:
        if not data:
            raise EmptyCapture(
                "No audio data was recorded. Please try recording for a longer duration."
            )

        content_type = content_type or guess_content_type(filename) or ""
        if base_mime_type(content_type) not in self.allowed_content_types:
            raise InvalidAudio(f"Please upload a valid audio file (got '{content_type or 'unknown'}').")

        if len(data) > self.max_bytes:
            raise InvalidAudio(
                f"File size must be less than {self.max_bytes // (1024 * 1024)}MB"
            )

        duration = probe_duration(data, content_type)
        if duration is None:
            raise InvalidAudio("Failed to read audio properties. The file may be corrupted.")

        if not math.isfinite(duration) or duration < self.min_duration:
            shown = f"{duration:.2f}s" if math.isfinite(duration) else "N/A"
            raise RecordingTooShort(
                f"Recording too short or invalid (duration: {shown}, "
                f"min {self.min_duration}s). Please try again.",
                duration=duration,
            )

        return ValidatedAudio(
            data=data,
            content_type=content_type,
            duration=duration,
            filename=filename,
        )
