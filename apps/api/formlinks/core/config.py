"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str = "sqlite:///./formlinks.db"

    # Public form links
    FORM_LINK_BASE_URL: str = "http://localhost:3000"
    DEFAULT_FORM_LINK_EXPIRATION_HOURS: int = 72
    MAX_FORM_LINK_EXPIRATION_HOURS: int = 24 * 60

    # HMAC key for obfuscated customer references (empty disables obfuscation)
    CUSTOMER_REFERENCE_SECRET: str = ""

    # External verification API keys (comma-separated)
    EXTERNAL_API_KEYS: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Rate Limiting (requests per minute)
    RATE_LIMIT_API: int = 60
    RATE_LIMIT_PUBLIC_READ: int = 30
    RATE_LIMIT_PUBLIC_SUBMIT: int = 10
    RATE_LIMIT_EXTERNAL: int = 120

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def external_api_keys_list(self) -> list[str]:
        """Parse EXTERNAL_API_KEYS into a list, dropping blanks."""
        if not self.EXTERNAL_API_KEYS:
            return []
        return [k.strip() for k in self.EXTERNAL_API_KEYS.split(",") if k.strip()]


settings = Settings()
