"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/arcana/core/config.py
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
# Fallback: backend/.env
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Arcana"
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Logging
    log_sqlalchemy: bool = Field(default=False, description="Enable SQLAlchemy query logging")
    log_uvicorn_access: bool = Field(default=False, description="Enable Uvicorn access logging")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"arcana.api": "DEBUG"})'
    )
    log_format: str = Field(
        default="json",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=False, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/arcana.log",
        description="Path to log file (relative to project root)"
    )
    log_file_rotation: str = Field(
        default="midnight",
        description="Log file rotation: 'midnight' or 'W0'..'W6' (weekly)"
    )
    log_file_retention: int = Field(default=30, ge=1, description="Number of days to keep log files")
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (tokens, keys) - NOT RECOMMENDED"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./arcana.db",
        description="SQLAlchemy database URL (PostgreSQL in production)"
    )
    database_pool_size: int = Field(default=20, ge=1, description="Database pool size")
    database_max_overflow: int = Field(default=10, ge=0, description="Database max overflow")

    # LLM (Ollama-compatible chat endpoint)
    llm_base_url: str = Field(default="http://localhost:11434", description="LLM server URL")
    llm_model: str = Field(default="llama3.1:8b", description="Model used by every stage")
    llm_timeout_seconds: int = Field(default=30, ge=1, le=300, description="HTTP timeout for one LLM call")
    llm_temperature: float = Field(default=0.5, ge=0.0, le=2.0, description="Default sampling temperature")

    # Workflow
    stage_max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per external stage")
    stage_base_delay_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Linear backoff unit: attempt N waits N * base delay"
    )
    stage_timeout_seconds: float = Field(
        default=45.0,
        gt=0.0,
        description="Per-attempt timeout for one stage call (independent of retries)"
    )
    persistence_max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per checkpoint write")
    persistence_base_delay_seconds: float = Field(default=0.5, ge=0.0, description="Checkpoint write backoff unit")

    # Rate limiting / credits
    rate_limit_cooldown_seconds: int = Field(
        default=120,
        ge=0,
        description="Minimum interval between two submissions of the same user"
    )
    reading_cost: int = Field(default=1, ge=1, description="Credits debited per completed reading")

    # Reading domain
    card_deck_size: int = Field(default=78, ge=1, description="Number of cards in the deck")
    allowed_card_counts: str = Field(
        default="3,5",
        description="Spread sizes the analysis may recommend (comma-separated)"
    )
    default_card_count: int = Field(default=3, ge=1, description="Spread size used when analysis gives none")
    question_min_length: int = Field(default=8, ge=1, description="Minimum question length")
    question_max_length: int = Field(default=180, ge=1, description="Maximum question length")

    @field_validator("allowed_card_counts")
    @classmethod
    def validate_card_counts(cls, v: str) -> str:
        """Reject spread sizes that are not positive integers"""
        counts = [item.strip() for item in v.split(",") if item.strip()]
        if not counts or not all(item.isdigit() and int(item) > 0 for item in counts):
            raise ValueError("allowed_card_counts must be comma-separated positive integers")
        return v

    @property
    def allowed_card_counts_list(self) -> List[int]:
        """Parse spread sizes from comma-separated string"""
        return [int(item.strip()) for item in self.allowed_card_counts.split(",") if item.strip()]

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
