"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="foamsanat", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment name"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=1, description="Number of workers")
    api_reload: bool = Field(default=True, description="Enable auto-reload")

    # Site / request origin
    site_url: str = Field(
        default="https://foamsanat.com",
        validation_alias=AliasChoices("SITE_URL", "NEXT_PUBLIC_SITE_URL"),
        description="Public site URL (its origin is always allowed)",
    )
    allowed_origins: str = Field(
        default="", description="Extra allowed request origins (comma-separated)"
    )
    trusted_proxy_ips: str = Field(
        default="",
        description="Proxy addresses whose X-Forwarded-For is trusted (comma-separated)",
    )

    # Comments storage
    comments_storage_backend: Literal["sqlite", "postgres"] = Field(
        default="sqlite", description="Comments storage engine"
    )
    comments_database_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("COMMENTS_DATABASE_URL", "DATABASE_URL"),
        description="Postgres connection URL",
    )
    comments_sqlite_path: str = Field(
        default="data/comments.db", description="SQLite database file"
    )
    comments_read_only_filesystem: bool = Field(
        default=False,
        description="Deployment filesystem is read-only (SQLite cannot be written)",
    )
    comments_storage_retry_after_seconds: int = Field(
        default=300, description="Retry hint while storage is unavailable"
    )
    comments_read_only_retry_after_seconds: int = Field(
        default=3600, description="Retry hint for read-only deployments"
    )
    comments_db_pool_size: int = Field(default=5, description="Postgres pool size")
    comments_db_connect_timeout: float = Field(
        default=5.0, description="Postgres connect timeout"
    )

    # Comments admin
    comments_admin_token: str | None = Field(
        default=None, description="Static admin bearer token"
    )
    comments_admin_token_secret: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "COMMENTS_ADMIN_TOKEN_SECRETS", "COMMENTS_ADMIN_TOKEN_SECRET"
        ),
        description="Signing secret(s) for admin session tokens (comma-separated)",
    )
    comments_admin_session_key: str | None = Field(
        default=None, description="Key required to mint admin session tokens"
    )
    comments_admin_token_ttl_minutes: int = Field(
        default=180, description="Default admin session lifetime (minutes)"
    )
    comments_admin_token_max_ttl_minutes: int = Field(
        default=1440, description="Maximum admin session lifetime (minutes)"
    )
    comments_admin_algorithm: str = Field(
        default="HS256", description="Admin session signing algorithm"
    )

    # CAPTCHA
    turnstile_secret_key: str | None = Field(
        default=None, description="Cloudflare Turnstile secret"
    )
    turnstile_verify_url: str = Field(
        default="https://challenges.cloudflare.com/turnstile/v0/siteverify",
        description="Turnstile verification endpoint",
    )
    turnstile_timeout_seconds: float = Field(
        default=5.0, description="Turnstile request timeout"
    )

    # Rate limiting
    comments_rate_limit_window_seconds: int = Field(
        default=15 * 60, description="Submission rate-limit window"
    )
    comments_rate_limit_max_submissions: int = Field(
        default=5, description="Submissions allowed per window"
    )

    # Redis
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL (in-memory rate limiting when unset)",
    )
    redis_max_connections: int = Field(default=10, description="Max Redis connections")
    redis_socket_timeout: float = Field(default=2.0, description="Redis socket timeout")
    redis_socket_connect_timeout: float = Field(
        default=2.0, description="Redis connect timeout"
    )
    redis_health_check_interval: int = Field(
        default=30, description="Health check interval"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", description="Log format"
    )
    log_include_caller_info: bool = Field(
        default=False, description="Include caller info"
    )
    log_to_file: bool = Field(default=True, description="Write rotating log files")
    log_dir: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024, description="Max size per log file (10MB default)"
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )
    log_requests: bool = Field(
        default=True, description="Log HTTP request start/finish"
    )
    log_exclude_paths: list[str] = Field(
        default=["/health", "/health/live", "/health/ready"],
        description="Paths to exclude from request logging",
    )

    # CORS
    cors_origins: list[str] = Field(default=["*"], description="CORS origins")
    cors_allow_credentials: bool = Field(default=False, description="Allow credentials")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        description="Allowed methods",
    )
    cors_allow_headers: list[str] = Field(default=["*"], description="Allowed headers")
    cors_max_age: int = Field(default=600, description="CORS max age")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"

    @property
    def site_origin(self) -> str:
        """Origin (scheme://host[:port]) of the public site URL."""
        parsed = urlparse(self.site_url)
        if not parsed.scheme or not parsed.netloc:
            return "https://foamsanat.com"
        return f"{parsed.scheme}://{parsed.netloc}"

    @property
    def extra_allowed_origins(self) -> list[str]:
        return _split_csv(self.allowed_origins)

    @property
    def trusted_proxies(self) -> set[str]:
        """Loopback addresses plus configured proxy addresses."""
        return {"127.0.0.1", "::1", *_split_csv(self.trusted_proxy_ips)}

    @property
    def admin_token_secrets(self) -> list[str]:
        """Signing secrets, newest first. The first one signs new tokens."""
        return _split_csv(self.comments_admin_token_secret)

    @property
    def admin_session_key(self) -> str | None:
        """Session key, falling back to the primary signing secret."""
        if self.comments_admin_session_key:
            return self.comments_admin_session_key
        secrets = self.admin_token_secrets
        return secrets[0] if secrets else None

    @property
    def comments_read_only_environment(self) -> bool:
        """SQLite on a read-only filesystem with no external database."""
        return (
            self.comments_storage_backend == "sqlite"
            and not self.comments_database_url
            and self.comments_read_only_filesystem
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
