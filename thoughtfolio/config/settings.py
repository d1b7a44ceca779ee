from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="THOUGHTFOLIO_", extra="ignore")

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    reload: bool = False
    cors_origins: List[str] = ["*"]

    # Database
    database_url: str = "sqlite:///./thoughtfolio.db"
    database_echo: bool = False

    log_level: str = "INFO"

    # Gemini
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-2.0-flash-001"
    gemini_search_model: str = "gemini-2.0-flash-001"
    matching_timeout_seconds: float = 5.0
    extraction_timeout_seconds: float = 30.0
    discovery_timeout_seconds: float = 45.0

    # Matching rate limit (per user, in-process)
    match_rate_limit: int = 20
    match_rate_window_seconds: int = 60 * 60

    # Daily extraction quota
    daily_extraction_limit: int = 10
    daily_token_limit: int = 50000

    # Discovery sessions per UTC day
    daily_curated_limit: int = 1
    daily_directed_limit: int = 1
    discoveries_per_session: int = 4
    bootstrap_min_contexts: int = 2
    bootstrap_min_thoughts: int = 3

    # Article extraction
    url_fetch_timeout_seconds: float = 10.0
    url_fetch_max_bytes: int = 2 * 1024 * 1024

    # Learning
    learning_helpful_threshold: int = 3
    learning_confidence_threshold: float = 0.7

    # Thought lifecycle
    max_active_list: int = 10
    graduation_threshold: int = 5
    stale_skip_threshold: int = 21

    max_moment_description_length: int = 500
    max_image_bytes: int = 4 * 1024 * 1024


settings = Settings()
