from pydantic_settings import BaseSettings


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str
    host: str
    port: int
    debug: bool
    auth_password: str  # Shared admin password, plain text or a bcrypt hash ("$2b$...")
    session_secret_key: str  # HS256 signing key for session tokens
    session_ttl_hours: int = 24
    timezone: str = "UTC"  # Zone used to evaluate policy days and time windows
    cors_origins: list[str] = []
    cookie_secure: bool = True
    forwarded_allow_ips: str | None = None  # Trusted proxy addresses for X-Forwarded-For, e.g. "127.0.0.1"
    database_timeout_ms: int = 5000  # Upper bound for every MongoDB operation
    audit_queue_size: int = 10000  # Pending audit entries before new ones are dropped
    audit_batch_size: int = 100
    live_feed_queue_size: int = 100  # Per-subscriber buffer for the live log feed
    log_retention_days: int | None = None  # Purge audit logs older than this on startup (disabled if None)

    model_config = {
        "env_file": [".env"],
        "env_prefix": "KEYWARDEN_",
        "extra": "ignore",
    }
