# recitescore/core/config.py
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Recitation Capture and Scoring Service"

    # Database
    # Use PostgreSQL for production
    DATABASE_URL: str = "sqlite:///./recitescore.db"

    LOG_LEVEL: str = "INFO"

    # Storage: "local" writes under STORAGE_DIR, "s3" uses the bucket below
    STORAGE_BACKEND: str = "local"
    STORAGE_DIR: str = "storage"
    PUBLIC_BASE_URL: str = "http://localhost:8000/media"

    # AWS S3
    AWS_ACCESS_KEY_ID: str | None = None
    AWS_SECRET_ACCESS_KEY: str | None = None
    AWS_REGION: str = "us-west-2"
    S3_BUCKET_NAME: str | None = None

    # Redis (for local queue)
    REDIS_URL: str = "redis://localhost:6379/0"
    TRANSCRIPTION_QUEUE_ENABLED: bool = False

    # Speech recognition service
    ASR_API_URL: str | None = (
        "https://api-inference.huggingface.co/models/tarteel-ai/whisper-base-ar-quran"
    )
    ASR_API_TOKEN: str | None = None
    ASR_TIMEOUT_SECONDS: float = 120.0

    # Upload
    UPLOAD_MAX_ATTEMPTS: int = 3
    UPLOAD_RETRY_DELAY_SECONDS: float = 1.0
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024  # 10MB

    # Capture
    MIN_RECORDING_SECONDS: float = 0.5
    MAX_RECORDING_SECONDS: float = 180.0
    CAPTURE_SAMPLE_RATE: int = 16000
    CAPTURE_TIMESLICE_SECONDS: float = 0.25

    # Optional transcoding before upload (needs ffmpeg)
    ENCODER_ENABLED: bool = True
    ENCODER_FORMAT: str = "mp3"
    ENCODER_BITRATE: str = "96k"

    # Due dates are compared in this zone on both sides
    REFERENCE_TIMEZONE: str = "America/Los_Angeles"

    # Submissions still pending after this long are failed by the sweeper
    PENDING_TIMEOUT_MINUTES: int = 15

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
