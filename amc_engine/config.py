from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
RENEWAL_STATUSES = {"draft", "pending"}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/amc_engine"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"

    # Contracts
    CONTRACT_NUMBER_PREFIX: str = "AMC"
    CURRENCY_DECIMAL_PLACES: int = 2
    RENEWAL_DEFAULT_STATUS: str = "draft"

    # Dashboard windows
    EXPIRING_SOON_DAYS: int = 30
    VISITS_DUE_DAYS: int = 7

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(VALID_LOG_LEVELS)}")
        return level

    @field_validator('CURRENCY_DECIMAL_PLACES')
    @classmethod
    def validate_decimal_places(cls, v: int) -> int:
        if not 0 <= v <= 4:
            raise ValueError("CURRENCY_DECIMAL_PLACES must be between 0 and 4")
        return v

    @field_validator('RENEWAL_DEFAULT_STATUS')
    @classmethod
    def validate_renewal_status(cls, v: str) -> str:
        if v not in RENEWAL_STATUSES:
            raise ValueError("RENEWAL_DEFAULT_STATUS must be 'draft' or 'pending'")
        return v

    @field_validator('EXPIRING_SOON_DAYS', 'VISITS_DUE_DAYS')
    @classmethod
    def validate_window(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Dashboard windows must be >= 0 days")
        return v

    @model_validator(mode='after')
    def harden_production(self) -> "Settings":
        """Force debug output off outside development."""
        if self.is_production:
            self.DEBUG = False
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT in ("production", "staging")

    @property
    def sqlalchemy_echo(self) -> bool:
        # SECURITY: never echo SQL (and bound parameters) in production
        return self.DEBUG and not self.is_production

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
