"""
Application configuration using Pydantic Settings
Reads from environment variables and .env file
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Code catalog
    catalog_path: str = Field(default="data/hs_codes.json", alias="CATALOG_PATH")
    priority_codes_path: Optional[str] = Field(default=None, alias="PRIORITY_CODES_PATH")

    # Override store
    override_backend: str = Field(default="file", alias="OVERRIDE_BACKEND")
    overrides_path: str = Field(default="data/corrections.json", alias="OVERRIDES_PATH")
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    database_pool_size: int = Field(default=5, alias="DATABASE_POOL_SIZE")

    # Inference provider (Anthropic)
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    inference_model: str = Field(default="claude-sonnet-4-5", alias="INFERENCE_MODEL")
    inference_max_tokens: int = Field(default=1024, alias="INFERENCE_MAX_TOKENS")
    inference_timeout_seconds: float = Field(default=60.0, alias="INFERENCE_TIMEOUT_SECONDS")
    inference_temperature: float = Field(default=0.0, alias="INFERENCE_TEMPERATURE")
    max_concurrent_inference: int = Field(default=5, alias="MAX_CONCURRENT_INFERENCE")

    # Callers wait this long after a quota refusal before retrying
    quota_cooldown_seconds: int = Field(default=60, alias="QUOTA_COOLDOWN_SECONDS")

    # Output wording
    unclassified_label: str = Field(default="Barang", alias="UNCLASSIFIED_LABEL")
    analysis_language: str = Field(default="Bahasa Indonesia", alias="ANALYSIS_LANGUAGE")

    # Application
    environment: str = Field(default="production", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    metrics_enabled: bool = Field(default=True, alias="METRICS_ENABLED")

    @property
    def sentinel(self) -> str:
        """Reserved output when no candidate matches"""
        return f"000000 - {self.unclassified_label}"

    @validator("override_backend")
    def validate_override_backend(cls, v):
        """Validate override backend"""
        valid_backends = ["file", "postgres"]
        if v.lower() not in valid_backends:
            raise ValueError(f"OVERRIDE_BACKEND must be one of {valid_backends}")
        return v.lower()

    @validator("max_concurrent_inference")
    def validate_max_concurrent_inference(cls, v):
        if v < 1:
            raise ValueError("MAX_CONCURRENT_INFERENCE must be at least 1")
        return v

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @validator("environment")
    def validate_environment(cls, v):
        """Validate environment"""
        valid_envs = ["development", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"ENVIRONMENT must be one of {valid_envs}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
