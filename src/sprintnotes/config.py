"""Configuration management for SprintNotes."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPRINTNOTES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Local store
    database_path: Path = Field(
        default=Path("data/sprintnotes.db"),
        description="Path to the local SQLite database file",
    )
    collab_database_url: str = Field(
        default="",
        description="SQLAlchemy URL of the collaboration store (users, matches, messages)",
    )

    # Remote sync
    remote_url: str = Field(
        default="",
        description="Base URL of the remote store that receives sync operations",
    )
    remote_api_key: str = Field(
        default="",
        description="Bearer token for the remote store",
    )
    connectivity_probe_url: str = Field(
        default="",
        description="URL probed to decide whether the device is online (default: remote_url)",
    )
    connectivity_interval: float = Field(
        default=15.0,
        gt=0,
        description="Seconds between connectivity probes",
    )
    sync_max_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Failed deliveries before an operation is dead-lettered",
    )
    sync_backoff_multiplier: float = Field(
        default=1.0,
        gt=0,
        description="Base of the exponential backoff between delivery attempts (seconds)",
    )
    sync_backoff_max: float = Field(
        default=300.0,
        gt=0,
        description="Upper bound of the backoff between delivery attempts (seconds)",
    )

    # LLM
    llm_provider: str = Field(
        default="ollama",
        pattern="^(ollama|gemini)$",
        description="LLM backend used for summaries and translations",
    )
    ollama_host: str = Field(
        default="https://ollama.com",
        description="Ollama API host",
    )
    ollama_model: str = Field(
        default="gpt-oss:120b-cloud",
        description="Ollama model to use for generation",
    )
    ollama_api_key: str = Field(
        default="",
        description="Ollama API key (default: from OLLAMA_API_KEY env var)",
    )
    gemini_api_key: str = Field(
        default="",
        description="Google Gemini API key (required when llm_provider is gemini)",
    )
    gemini_model: str = Field(
        default="gemini-2.0-flash-lite",
        description="Gemini model to use for generation",
    )

    # Canvas LMS
    canvas_url: str = Field(
        default="",
        description="Canvas instance URL, e.g. canvas.university.edu",
    )
    canvas_api_token: str = Field(
        default="",
        description="Canvas personal access token",
    )

    # Messaging
    message_poll_interval: float = Field(
        default=3.0,
        gt=0,
        description="Seconds between message polls while a chat is open",
    )

    # Logging
    log_level: str = Field(
        default="WARNING",
        description="Root log level",
    )
    log_json: bool = Field(
        default=False,
        description="Emit logs as JSON lines instead of rich console output",
    )

    @property
    def database_url(self) -> str:
        """SQLAlchemy database URL."""
        return f"sqlite:///{self.database_path}"

    @property
    def collab_url(self) -> str:
        """SQLAlchemy URL of the collaboration store (default: the local database)."""
        return self.collab_database_url or self.database_url

    @property
    def probe_url(self) -> str:
        """URL used by the connectivity monitor."""
        return self.connectivity_probe_url or self.remote_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
