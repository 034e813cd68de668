"""
Configuration management for the SprintBoard API.
"""

from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # API Settings
    api_host: str = "0.0.0.0"
    api_port: int = 18793

    # Remote project tracker (source of truth for tasks and sprints)
    tracker_api_url: str = "http://localhost:8000"
    tracker_api_prefix: str = "/api"
    tracker_api_token: Optional[str] = None
    tracker_timeout: float = 30.0

    # Page sizes used by list calls
    backlog_page_size: int = 50
    sprint_list_page_size: int = 100
    comments_page_size: int = 50

    # Issue editor: send details/assignment/classification even when unchanged
    editor_send_unchanged_groups: bool = False

    # Board sessions idle longer than this are dropped; 0 disables eviction
    session_idle_seconds: float = 1800.0

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    class Config:
        env_file = ".env"
        env_prefix = "SPRINTBOARD_"

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
