import io
from zoneinfo import ZoneInfo

import httpx
import numpy as np
import soundfile as sf

from recitescore.services.asr_client import AsrClient

ASR_TEST_URL = "https://asr.test/models/whisper-quran"

REFERENCE_TZ = ZoneInfo("America/Los_Angeles")

BISMILLAH = "بِسْمِ اللَّهِ الرَّحْمَٰنِ الرَّحِيمِ"
BISMILLAH_PLAIN = "بسم الله الرحمن الرحيم"


def make_wav(seconds: float, samplerate: int = 16000, frequency: float = 440.0) -> bytes:
    """Mono PCM_16 sine tone of the given length."""
    frames = int(round(seconds * samplerate))
    t = np.arange(frames) / samplerate
    tone = (0.3 * np.sin(2 * np.pi * frequency * t) * 32767).astype(np.int16)
    buf = io.BytesIO()
    sf.write(buf, tone, samplerate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def make_asr_client(handler) -> AsrClient:
    """AsrClient whose requests are answered by ``handler(request)``."""
    return AsrClient(
        ASR_TEST_URL,
        token="test-token",
        timeout=5.0,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def asr_text(text: str):
    return lambda request: httpx.Response(200, json={"text": text})
