"""
ASR Client Service
Sends recitation audio to the external speech recognition endpoint
"""

import logging

import httpx

from recitescore.core.config import settings

logger = logging.getLogger(__name__)

# Providers disagree on the field name
TEXT_FIELDS = ("text", "transcription")


class AsrError(Exception):
    """Transport failure, non-2xx answer or an unreadable response body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AsrNotConfigured(AsrError):
    pass


class AsrClient:
    """
    Thin wrapper over one POST to the speech recognition endpoint.

    Exactly one attempt is made per call: recognition is slow and billed per
    request, so a failure is reported to the caller instead of retried.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        token: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.url = url if url is not None else settings.ASR_API_URL
        self.token = token if token is not None else settings.ASR_API_TOKEN
        self.timeout = timeout if timeout is not None else settings.ASR_TIMEOUT_SECONDS
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.url)

    def _headers(self, content_type: str) -> dict:
        headers = {"Content-Type": content_type or "audio/webm"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def transcribe(self, audio: bytes, content_type: str) -> str:
        """
        Returns the raw (untrimmed) text from the response.

        Raises:
            AsrNotConfigured: no endpoint url
            AsrError: network error, timeout, non-2xx, or no text field
        """
        if not self.configured:
            raise AsrNotConfigured("Speech recognition service is not configured.")

        client = self._client or httpx.Client(timeout=self.timeout)
        try:
            logger.info(f"Sending {len(audio)} bytes ({content_type}) to ASR endpoint")
            response = client.post(
                self.url,
                content=audio,
                headers=self._headers(content_type),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise AsrError(f"Speech recognition timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise AsrError(f"Speech recognition service unreachable: {e}") from e
        finally:
            if self._client is None:
                client.close()

        if not response.is_success:
            body = response.text.strip() or response.reason_phrase
            raise AsrError(
                f"Speech recognition error ({response.status_code}): {body}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise AsrError(f"Speech recognition returned invalid JSON: {response.text[:200]}") from e

        return extract_text(payload)


def extract_text(payload) -> str:
    """Pull the text out of a provider response; a list holds one result."""
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if not isinstance(payload, dict):
        raise AsrError(f"Unexpected speech recognition response: {payload!r}")

    for field in TEXT_FIELDS:
        value = payload.get(field)
        if value is not None:
            return str(value)

    if "error" in payload:
        raise AsrError(f"Speech recognition error: {payload['error']}")
    return ""


def get_asr_client() -> AsrClient:
    return AsrClient()
