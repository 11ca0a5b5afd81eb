from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    batch_size: int
    error_mode: str
    error_threshold: int | None
    listener_failure_policy: str
    writer_max_retries: int
    retry_backoff_seconds: float
    max_consecutive_read_errors: int | None


def _optional_int(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    return int(raw)


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "recordflow"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./recordflow.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        batch_size=int(os.getenv("BATCH_SIZE", "100")),
        error_mode=os.getenv("ERROR_MODE", "tolerant"),
        error_threshold=_optional_int(os.getenv("ERROR_THRESHOLD")),
        listener_failure_policy=os.getenv("LISTENER_FAILURE_POLICY", "record"),
        writer_max_retries=int(os.getenv("WRITER_MAX_RETRIES", "0")),
        retry_backoff_seconds=float(os.getenv("RETRY_BACKOFF_SECONDS", "1")),
        max_consecutive_read_errors=_optional_int(os.getenv("MAX_CONSECUTIVE_READ_ERRORS", "100")),
    )
