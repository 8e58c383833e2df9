from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

DEFAULT_PAGE_SIZE = 12


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Backend selection: the hosted backend, or an in-process store for local runs
    fossil_backend: Literal["supabase", "memory"] = "supabase"

    # Hosted backend
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    storage_bucket: str = "fossil-images"
    http_timeout: float = 10.0

    # Catalog
    default_page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=100)

    # Sessions kept in memory, one per access token
    max_sessions: int = Field(default=1000, ge=1)

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    @model_validator(mode="after")
    def require_backend_credentials(self):
        if self.fossil_backend == "supabase":
            missing = [
                name
                for name, value in (
                    ("SUPABASE_URL", self.supabase_url),
                    ("SUPABASE_ANON_KEY", self.supabase_anon_key),
                )
                if not value
            ]
            if missing:
                raise ValueError(
                    f"Missing required configuration: {', '.join(missing)}"
                )
            self.supabase_url = self.supabase_url.rstrip("/")
        return self


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
