# recitescore/core/media.py
import mimetypes

DEFAULT_EXTENSION = "webm"
DEFAULT_CONTENT_TYPE = "audio/webm"

EXTENSION_BY_MIME = {
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/opus": "opus",
    "audio/mp4": "mp4",
    "audio/m4a": "m4a",
    "audio/x-m4a": "m4a",
    "audio/aac": "aac",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/wave": "wav",
    "audio/x-wav": "wav",
    "audio/flac": "flac",
    "audio/x-flac": "flac",
}

# formats accepted from the recorder or a file import
ALLOWED_CONTENT_TYPES = frozenset(EXTENSION_BY_MIME)


def base_mime_type(content_type: str | None) -> str:
    """'audio/webm;codecs=opus' -> 'audio/webm'"""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def extension_for(content_type: str | None) -> str:
    return EXTENSION_BY_MIME.get(base_mime_type(content_type), DEFAULT_EXTENSION)


def guess_content_type(filename: str | None) -> str | None:
    if not filename:
        return None
    guessed, _ = mimetypes.guess_type(filename)
    if guessed is None and filename.lower().endswith((".m4a", ".webm", ".opus")):
        return "audio/" + filename.rsplit(".", 1)[1].lower()
    return guessed
