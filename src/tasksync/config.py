from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./tasksync.db"
    todoist_base_url: str = "https://api.todoist.com/rest/v2"
    todoist_timeout_seconds: float = 30.0
    sync_interval_minutes: int = 5
    sync_max_concurrency: int = 1  # users reconciled at once by the periodic job
    sync_workers: int = 2  # background workers fed by API mutations
    scheduler_enabled: bool = True
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
