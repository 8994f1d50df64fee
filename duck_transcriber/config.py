"""Configuration settings for the transcriber bot."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    telegram_bot_token: str = Field(alias="TELEGRAM_BOT_TOKEN")
    groq_api_keys: str = Field(alias="GROQ_API_KEYS")
    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1", alias="GROQ_BASE_URL"
    )

    whisper_model: str = Field(default="whisper-large-v3", alias="WHISPER_MODEL")
    summary_model: str = Field(
        default="moonshotai/kimi-k2-instruct", alias="SUMMARY_MODEL"
    )

    cache_backend: str = Field(default="redis", alias="CACHE_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    cache_table: str = Field(default="duck_transcriber_cache", alias="CACHE_TABLE")
    cache_db_path: str = Field(
        default="./temp/duck_transcriber_cache.sqlite3", alias="CACHE_DB_PATH"
    )
    cache_ttl_days: int = Field(default=7, alias="CACHE_TTL_DAYS")

    max_file_size_mb: int = Field(default=20, alias="MAX_FILE_SIZE_MB")
    max_duration_minutes: int = Field(default=30, alias="MAX_DURATION_MINUTES")

    # Must stay below the hosting environment's own execution limit
    http_timeout_seconds: float = Field(default=50.0, alias="HTTP_TIMEOUT_SECONDS")

    transcode_audio: bool = Field(default=False, alias="TRANSCODE_AUDIO")
    ffmpeg_path: str = Field(default="ffmpeg", alias="FFMPEG_PATH")
    typing_interval_seconds: float = Field(default=4.0, alias="TYPING_INTERVAL_SECONDS")

    temp_dir: str = Field(default="/tmp/duck_transcriber", alias="TEMP_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    dev_telegram_id: int | None = Field(default=None, alias="DEV_TELEGRAM_ID")
    webhook_url: str = Field(default="", alias="WEBHOOK_URL")
    port: int = Field(default=8080, alias="PORT")

    @property
    def api_keys(self) -> tuple[str, ...]:
        """Ordered API key pool parsed from the comma-separated setting."""
        return tuple(key.strip() for key in self.groq_api_keys.split(",") if key.strip())


def get_settings() -> Settings:
    """Get settings instance."""
    return Settings()
