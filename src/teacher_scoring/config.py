"""Configuration management for teacher scoring."""

from typing import Dict, Optional

from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Database configuration settings."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_", env_file=".env", extra="ignore")

    url: Optional[str] = None
    pool_min_size: int = 1
    pool_max_size: int = 10

    @validator("url")
    def validate_url(cls, v):
        """Validate database URL format."""
        if v is None:
            return v
        if not v.startswith("postgresql://"):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL connection string")
        if "[PASSWORD]" in v:
            raise ValueError("DATABASE_URL contains placeholder password - please set actual password")
        return v


class ScoringConfig(BaseSettings):
    """Scoring engine settings."""

    model_config = SettingsConfigDict(env_prefix="SCORING_", env_file=".env", extra="ignore")

    student_rating_weight: float = 0.40
    course_performance_weight: float = 0.30
    engagement_weight: float = 0.20
    development_weight: float = 0.10

    max_concurrent_teachers: int = 5
    insufficient_data_policy: str = "baseline"
    strict_ranking_barrier: bool = True
    achievement_rules_file: Optional[str] = None

    @validator("max_concurrent_teachers")
    def validate_concurrency_limit(cls, v):
        if v < 1 or v > 50:
            raise ValueError("Concurrency limits must be between 1 and 50")
        return v

    @validator("insufficient_data_policy")
    def validate_policy(cls, v):
        if v not in ("baseline", "skip"):
            raise ValueError("insufficient_data_policy must be 'baseline' or 'skip'")
        return v

    @property
    def weights(self) -> Dict[str, float]:
        """Category weights keyed by category value."""
        return {
            "student_rating": self.student_rating_weight,
            "course_performance": self.course_performance_weight,
            "engagement": self.engagement_weight,
            "development": self.development_weight,
        }


class AppConfig(BaseSettings):
    """Application configuration settings."""

    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", extra="ignore")

    name: str = "teacher-scoring"
    version: str = "0.1.0"
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    debug: bool = Field(False, validation_alias="DEBUG")
    environment: str = Field("development", validation_alias="ENVIRONMENT")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    app: AppConfig = Field(default_factory=AppConfig)

    @classmethod
    def load(cls) -> "Settings":
        """
        Load settings from environment.

        Production relaxes the ranking barrier to log-and-skip unless
        SCORING_STRICT_RANKING_BARRIER is set explicitly.
        """
        loaded = cls()
        if loaded.app.is_production and "strict_ranking_barrier" not in loaded.scoring.model_fields_set:
            loaded.scoring.strict_ranking_barrier = False
        return loaded


# Global settings instance
settings = Settings.load()
