from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Dict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/flight_extractor.db"

    scheduler_enabled: bool = True
    resume_on_startup: bool = True

    search_base_url: str = "https://www.makemytrip.com/flight/search"
    headless: bool = True

    # Card and interaction limits
    card_limit: int = 200
    page_ready_timeout_ms: int = 30000
    popup_timeout_ms: int = 8000
    details_timeout_ms: int = 8000
    navigation_timeout_ms: int = 60000
    settle_delay_ms: int = 400

    return_trip_days: int = 7
    adults: int = 1
    cabin_class: str = "E"

    default_routes: List[Dict[str, str]] = [
        {"source": "BLR", "dest": "PAT"},
        {"source": "IXL", "dest": "DEL"},
        {"source": "BOM", "dest": "IXE"},
        {"source": "PNQ", "dest": "BLR"},
        {"source": "BOM", "dest": "AMD"},
    ]
    default_date_offsets: List[int] = [1, 7, 14, 30]

    output_dir: str = "./data/exports"
    screenshots_dir: str = "./data/screenshots"
    html_snapshots_dir: str = "./data/html_snapshots"

    ntfy_url: str = "http://localhost:8080"
    ntfy_topic: str = ""

    def model_post_init(self, __context):
        if self.card_limit < 1:
            raise ValueError("CARD_LIMIT must be at least 1")

    model_config = SettingsConfigDict(env_file=".env")


@lru_cache
def get_settings() -> Settings:
    return Settings()
