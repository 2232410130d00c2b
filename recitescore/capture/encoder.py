"""
Optional transcoding of captured audio before upload (pydub + ffmpeg).

Never blocks submission: any failure hands back the original audio.
"""

import io
import logging
from dataclasses import replace

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError
from pydub.utils import which

from recitescore.capture.validation import ValidatedAudio
from recitescore.core.config import settings
from recitescore.core.media import base_mime_type, extension_for

logger = logging.getLogger(__name__)

CONTENT_TYPE_BY_FORMAT = {
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "wav": "audio/wav",
    "flac": "audio/flac",
    "webm": "audio/webm",
}


class AudioEncoder:
    def __init__(
        self,
        format: str | None = None,
        bitrate: str | None = None,
        *,
        sample_rate: int | None = None,
        channels: int = 1,
    ):
        self.format = (format or settings.ENCODER_FORMAT).lower()
        if self.format not in CONTENT_TYPE_BY_FORMAT:
            raise ValueError(f"Unsupported encoder format: {self.format}")
        self.bitrate = bitrate or settings.ENCODER_BITRATE
        self.sample_rate = sample_rate or settings.CAPTURE_SAMPLE_RATE
        self.channels = channels

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_BY_FORMAT[self.format]

    @property
    def available(self) -> bool:
        return which("ffmpeg") is not None

    def encode(self, audio: ValidatedAudio) -> ValidatedAudio:
        if base_mime_type(audio.content_type) == self.content_type:
            return audio
        if not self.available:
            logger.warning("ffmpeg not found, uploading audio without transcoding")
            return audio

        try:
            segment = AudioSegment.from_file(
                io.BytesIO(audio.data), format=extension_for(audio.content_type)
            )
            segment = segment.set_channels(self.channels).set_frame_rate(self.sample_rate)
            out = io.BytesIO()
            segment.export(out, format=self.format, bitrate=self.bitrate)
        except (CouldntDecodeError, CouldntEncodeError, OSError) as e:
            logger.warning(f"Transcoding to {self.format} failed, keeping original audio: {e}")
            return audio

        data = out.getvalue()
        if not data:
            logger.warning(f"Transcoding to {self.format} produced no data, keeping original audio")
            return audio

        filename = audio.filename
        if filename:
            filename = f"{filename.rsplit('.', 1)[0]}.{self.format}"

        logger.info(
            f"Transcoded {audio.size} bytes of {audio.content_type} "
            f"to {len(data)} bytes of {self.content_type}"
        )
        return replace(audio, data=data, content_type=self.content_type, filename=filename)
