import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        person_labels: tuple[str, ...],
        currency: str,
        week_start: str,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.person_labels = person_labels
        self.currency = currency
        self.week_start = week_start
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("PLANNER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _split_labels(raw: str) -> tuple[str, ...]:
    labels = tuple(label.strip() for label in raw.split(",") if label.strip())
    if not labels:
        raise ValueError("PLANNER_PERSON_LABELS must name at least one label")
    return labels


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("PLANNER_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "planner.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("PLANNER_TIMEZONE", "Europe/Warsaw")
    person_labels = _split_labels(
        os.getenv("PLANNER_PERSON_LABELS", "Beni,Fabi,Michał,Together")
    )
    currency = os.getenv("PLANNER_CURRENCY", "PLN").upper()
    week_start = os.getenv("PLANNER_WEEK_START", "sunday").lower()
    if week_start not in ("sunday", "monday"):
        raise ValueError("PLANNER_WEEK_START must be 'sunday' or 'monday'")
    log_level = os.getenv("PLANNER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        person_labels=person_labels,
        currency=currency,
        week_start=week_start,
        log_level=log_level,
    )
