"""Application configuration loaded from environment variables.

Settings for database, CORS, authentication, password hashing, directory
listing limits, and rate limiting. Uses pydantic-settings for validation
and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "diradmin_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

# bcrypt accepts cost factors 4..31
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "diradmin"
    database_user: str = "diradmin_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # CORS (Security)
    # CRITICAL: Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3080"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Authentication
    # Tokens are read from the session cookie first, then the Authorization header
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "diradmin"
    auth_audience: str = "diradmin"
    auth_cookie_name: str = "diradmin.session-token"

    # Password hashing (bcrypt cost factor)
    bcrypt_rounds: int = 12
    password_min_length: int = 8

    # Directory listing
    default_page_size: int = 10
    max_page_size: int = 100
    expiring_soon_days: int = 7

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_admin: str = "300/minute"  # every admin route
    rate_limit_create_user: str = "30/hour"
    rate_limit_delete_user: str = "30/hour"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants and production security requirements.

        Checks:
        - bcrypt rounds must be within the range bcrypt accepts
        - Page sizes must be positive, default not above max
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            msg = (
                f"BCRYPT_ROUNDS must be between {_MIN_BCRYPT_ROUNDS} and "
                f"{_MAX_BCRYPT_ROUNDS}. Got: {self.bcrypt_rounds}"
            )
            raise ValueError(msg)

        if self.max_page_size < 1 or not 1 <= self.default_page_size <= self.max_page_size:
            msg = (
                "DEFAULT_PAGE_SIZE must be between 1 and MAX_PAGE_SIZE. "
                f"Got: {self.default_page_size} / {self.max_page_size}"
            )
            raise ValueError(msg)

        if self.expiring_soon_days < 1:
            msg = f"EXPIRING_SOON_DAYS must be positive. Got: {self.expiring_soon_days}"
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters in production."
                )
                raise ValueError(msg)

        return self


settings = Settings()
