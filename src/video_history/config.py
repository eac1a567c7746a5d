"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Remote store (Supabase)
    supabase_url: str = ""
    supabase_key: str = ""
    history_table: str = "video_history"
    history_fetch_limit: int = 50

    # Local fallback cache
    local_cache_dir: str = "~/.video-history"
    local_cache_key: str = "videoHistory"
    local_cache_max_entries: int = 50

    # Load/write policy
    trust_empty_remote: bool = True
    route_local_writes_to_cache: bool = True

    # Hosts an entry's source URL may be opened on
    external_open_hosts: list[str] = ["youtube.com", "youtu.be"]


settings = Settings()
