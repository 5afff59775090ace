"""
Configuration for LawBridge
===========================

Environment variables:
- ENVIRONMENT: development|production (default: development)
- JWT_SECRET_KEY: signing key for access tokens
- JWT_ACCESS_TOKEN_EXPIRE_MINUTES: token lifetime (default: 7 days)
- CORS_ALLOW_ORIGINS: comma separated list of allowed origins
- LOG_LEVEL: root log level (default: INFO)
- ENFORCE_HTTPS / HSTS_MAX_AGE: redirect plain HTTP, Strict-Transport-Security max-age
- REDIS_URL: Redis for token revocation and rate limiting
- RATE_LIMIT_ENABLED / RATE_LIMIT_PER_USER: per-user request limit per minute
- OUTBOX_AUTOSTART: start the live event dispatcher on startup (default: true)
- WS_RECONNECT_ATTEMPTS / WS_RECONNECT_DELAY_SECONDS: client reconnection policy

DATABASE_URL is read by lawbridge.db.session at engine creation time.
"""

from typing import List
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables"""

    environment: str = "development"

    # Service info
    service_name: str = "LawBridge"
    service_version: str = "1.0.0"

    # Auth
    jwt_secret_key: str = "dev-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24 * 7

    # HTTP
    cors_allow_origins: str = "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000"
    log_level: str = "INFO"
    enforce_https: bool = False
    hsts_max_age: int = 31536000

    # Redis (token revocation + rate limiting)
    redis_url: str = "redis://localhost:6379/0"
    rate_limit_enabled: bool = False
    rate_limit_per_user: int = 120  # requests per minute

    # Live channel
    outbox_autostart: bool = True
    outbox_poll_seconds: float = 0.5
    ws_reconnect_attempts: int = 3
    ws_reconnect_delay_seconds: float = 1.0

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in ("development", "dev", "local", "test")

    def cors_origins(self) -> List[str]:
        """Parse the comma separated CORS origins."""
        origins: List[str] = []
        for item in self.cors_allow_origins.split(","):
            origin = item.strip().strip('"').strip("'").rstrip("/")
            if origin:
                origins.append(origin)
        return origins


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
