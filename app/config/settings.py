from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_progress_spans() -> dict[str, int]:
    return {
        "uploading": 15,
        "summarizing": 35,
        "identifying_rules": 15,
        "assessing_compliance": 15,
        "reviewing_report": 10,
        "generating_charts": 10,
    }


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "compliance"
    db_username: str = "compliance"
    db_password: str = "secret"

    max_event_attempts: int = 3
    event_lock_timeout_seconds: int = 900
    event_poll_interval_seconds: int = 5
    worker_concurrency: int = 4

    artifact_storage_disk: str = "local"
    artifacts_root: Path = Path("/app/files")

    chunk_size_bytes: int = 100_000
    chunk_overlap_bytes: int = 10_000

    upload_complete_progress: int = 10
    progress_spans: dict[str, int] = Field(default_factory=_default_progress_spans)

    max_error_message_length: int = 1000
    default_language_code: str = "pt-BR"

    ai_provider: str = "openai"
    ai_api_key: str = ""
    ai_model_name: str = ""
    ai_base_url: str = ""
    ai_timeout_seconds: int = 60
    ai_temperature: float = 0.1
