import os
from functools import lru_cache
from pathlib import Path


WEEK_START_DAYS = {"monday": 0, "sunday": 6}


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        week_start: str,
        currency_symbol: str,
        top_categories: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.week_start = week_start
        self.currency_symbol = currency_symbol
        self.top_categories = top_categories
        self.log_level = log_level

    @property
    def week_start_weekday(self) -> int:
        return WEEK_START_DAYS[self.week_start]


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Asia/Kolkata")
    week_start = os.getenv("LEDGER_WEEK_START", "sunday").strip().lower()
    if week_start not in WEEK_START_DAYS:
        raise ValueError(f"Unsupported LEDGER_WEEK_START: {week_start}")
    currency_symbol = os.getenv("LEDGER_CURRENCY_SYMBOL", "₹")
    top_categories = int(os.getenv("LEDGER_TOP_CATEGORIES", "10"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        week_start=week_start,
        currency_symbol=currency_symbol,
        top_categories=top_categories,
        log_level=log_level,
    )
