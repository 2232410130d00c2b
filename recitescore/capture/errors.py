# recitescore/capture/errors.py


class CaptureError(Exception):
    """Recoverable locally: the learner retries without losing context."""


class DeviceError(CaptureError):
    pass


class EmptyCapture(CaptureError):
    pass


class RecordingTooShort(CaptureError):
    def __init__(self, message: str, duration: float | None = None):
        super().__init__(message)
        self.duration = duration


class InvalidAudio(CaptureError):
    pass


class CaptureStateError(CaptureError):
    pass
