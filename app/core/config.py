from pydantic import Field
from pydantic_settings import BaseSettings

# Floor enforced by the deletion_requests CHECK constraint
JUSTIFICATION_MIN_LENGTH = 10


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database settings
    database_url: str = "sqlite:///./inventory.db"
    statement_timeout_ms: int = 15000  # PostgreSQL only
    sqlite_busy_timeout_seconds: int = 15

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Deletion request workflow
    justification_min_length: int = Field(default=JUSTIFICATION_MIN_LENGTH, ge=JUSTIFICATION_MIN_LENGTH)
    direct_deletion_comment: str = "Auto-approved via direct admin deletion"

    # Read-side cache for display aggregates (stats, badge counts)
    read_cache_ttl_seconds: int = 30

    # Pagination
    default_page_size: int = 10
    audit_log_page_size: int = 50

    # Rate limiting for write endpoints
    rate_limit_enabled: bool = True
    write_rate_limit: str = "30/minute"

    # Application settings
    app_name: str = "Asset Inventory Backend"
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
