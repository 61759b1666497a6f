from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    data_dir: Path = Path.home() / ".memocloze" / "data"
    sqlite_filename: str = "memocloze.db"
    log_level: str = "INFO"

    # Review engine
    cooling_period_ms: int = 60_000
    hide_before_due_hours: float = 12
    danger_threshold_days: float = 7
    grading_timeout_ms: int = 300_000  # 0 = prompt never auto-dismisses
    primary_store_enabled: bool = True

    model_config = {"env_prefix": "MEMOCLOZE_"}


settings = Settings()
