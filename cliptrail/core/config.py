# Purpose: runtime settings for ClipTrail
# every value can be overridden by a CLIPTRAIL_* environment variable or a .env file
# the settings UI is an external producer of these values

from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # database
    sqlite_url: str = "sqlite:///cliptrail.db"
    log_level: str = "INFO"

    # monitors
    auto_start_clipboard_monitoring: bool = True
    auto_start_screenshot_monitoring: bool = True
    clipboard_poll_ms: int = 500
    screenshot_poll_seconds: float = 1.0

    # user-chosen screenshot folder, overrides OS resolution when it still exists
    screenshot_folder_bookmark: Optional[str] = None

    # enrichment
    fetch_favicons: bool = True
    enable_ocr: bool = True
    ocr_languages: List[str] = ["en"]
    url_fetch_timeout: float = 10.0
    enrichment_workers: int = 4

    # dedup + thumbnails
    dedup_window_seconds: float = 5.0
    thumbnail_size: int = 100
    fingerprint_size: int = 36

    # HTTP surface for the UI
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    class Config:
        env_prefix = "CLIPTRAIL_"
        env_file = ".env"
        extra = "ignore"


settings = Settings()
