"""Application configuration using Pydantic settings."""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    environment: str = "development"
    log_level: Optional[str] = None  # Overrides the environment's default level

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:3001"

    # Redis (for ARQ worker)
    redis_url: str = "redis://127.0.0.1:6379"

    # Recording provider transport
    snapshot_fetch_retries: int = 3
    snapshot_retry_backoff_ms: int = 500
    snapshot_request_timeout_seconds: float = 60.0
    blob_v2_keys_per_batch: int = 20
    error_excerpt_chars: int = 500

    # Event assembly
    reconstruction_work_root: Optional[str] = None  # Defaults to the system temp dir
    dedupe_events: bool = False
    chunk_large_mutations: bool = False
    mutation_chunk_size: int = 5000
    patch_meta_events: bool = False
    work_dir_max_age_minutes: int = 180

    # Supabase Storage (optional events upload)
    supabase_url: Optional[str] = None
    supabase_secret_key: Optional[str] = None

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def storage_configured(self) -> bool:
        """Whether events files can be uploaded to Supabase Storage."""
        return bool(self.supabase_url and self.supabase_secret_key)

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
