"""Application configuration loaded from environment variables.

Settings for the database, the Redis-backed OTP state, token signing,
cookies and outbound email. Uses pydantic-settings for validation and
.env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "storefront_dev_password"  # nosec B105

# Minimum length for token secrets in production (256 bits = 32 bytes)
_MIN_TOKEN_SECRET_LENGTH = 32


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
    database_name: str = "storefront"
    database_user: str = "storefront_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    database_echo: bool = False
    database_create_tables: bool = True

    # Redis (OTP, cooldown, lock and counter keys live here)
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 5.0

    # API
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Tokens
    access_token_secret: SecretStr = SecretStr("")
    refresh_token_secret: SecretStr = SecretStr("")
    auth_issuer: str = "storefront-auth"
    access_token_ttl_minutes: int = 15
    refresh_token_ttl_days: int = 7

    # Cookies
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "none"
    auth_cookie_domain: str = ""

    # Passwords (bcrypt work factor)
    bcrypt_rounds: int = 10

    # OTP policy
    otp_ttl_seconds: int = 120
    otp_cooldown_seconds: int = 60
    otp_request_window_seconds: int = 3600
    otp_max_requests: int = 2
    otp_spam_lock_seconds: int = 3600
    otp_failed_attempt_window_seconds: int = 300
    otp_max_failed_attempts: int = 2
    otp_lock_seconds: int = 1800
    password_reset_grant_seconds: int = 600

    # Email
    email_from: str = "noreply@storefront.example"
    resend_api_key: SecretStr = SecretStr("")

    # Rate Limiting (coarse per-IP guard in front of the OTP state machine)
    rate_limit_enabled: bool = True
    rate_limit_auth: str = "10/minute"

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - OTP windows and thresholds must be positive (all environments)
        - SameSite=None requires the Secure flag (all environments)
        - Token secrets must be set, long enough and distinct in production
        - Database password must not be the default in production
        """
        windows = {
            "OTP_TTL_SECONDS": self.otp_ttl_seconds,
            "OTP_COOLDOWN_SECONDS": self.otp_cooldown_seconds,
            "OTP_REQUEST_WINDOW_SECONDS": self.otp_request_window_seconds,
            "OTP_SPAM_LOCK_SECONDS": self.otp_spam_lock_seconds,
            "OTP_FAILED_ATTEMPT_WINDOW_SECONDS": self.otp_failed_attempt_window_seconds,
            "OTP_LOCK_SECONDS": self.otp_lock_seconds,
            "PASSWORD_RESET_GRANT_SECONDS": self.password_reset_grant_seconds,
            "ACCESS_TOKEN_TTL_MINUTES": self.access_token_ttl_minutes,
            "REFRESH_TOKEN_TTL_DAYS": self.refresh_token_ttl_days,
        }
        for name, value in windows.items():
            if value <= 0:
                msg = f"{name} must be positive. Got: {value}"
                raise ValueError(msg)

        if self.otp_max_requests < 1 or self.otp_max_failed_attempts < 1:
            msg = "OTP_MAX_REQUESTS and OTP_MAX_FAILED_ATTEMPTS must be at least 1."
            raise ValueError(msg)

        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            access = self.access_token_secret.get_secret_value()
            refresh = self.refresh_token_secret.get_secret_value()
            for name, value in (
                ("ACCESS_TOKEN_SECRET", access),
                ("REFRESH_TOKEN_SECRET", refresh),
            ):
                if len(value) < _MIN_TOKEN_SECRET_LENGTH:
                    msg = (
                        f"{name} must be set to at least {_MIN_TOKEN_SECRET_LENGTH} "
                        'characters in production. Generate with: python -c "import '
                        'secrets; print(secrets.token_hex(32))"'
                    )
                    raise ValueError(msg)
            if access == refresh:
                msg = "ACCESS_TOKEN_SECRET and REFRESH_TOKEN_SECRET must differ."
                raise ValueError(msg)

        return self


settings = Settings()
