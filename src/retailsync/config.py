from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # KiotViet public API (OAuth2 client credentials)
    kiot_client_id: str = ""
    kiot_client_secret: str = ""
    kiot_retailer: str = ""
    kiot_base_url: str = "https://public.kiotapi.com"
    kiot_token_url: str = "https://id.kiotviet.vn/connect/token"
    http_timeout_seconds: float = 30.0

    database_url: str = "sqlite:///./retailsync.db"

    # Incremental sync
    sync_interval_minutes: int = 15
    sync_entities: List[str] = [
        "orders", "invoices", "products", "categories", "price_books", "users", "branches", "customers",
    ]
    sync_overlap_minutes: int = 5
    retry_max_attempts: int = 3
    retry_base_delay: float = 1.0
    batch_size: int = 50
    batch_pause_seconds: float = 0.1
    page_size: int = 100
    page_pause_seconds: float = 1.0
    backfill_days: int = 160
    backfill_chunk_days: int = 7

    # Order status notifier
    notifier_enabled: bool = True
    notifier_interval_seconds: int = 15
    notifier_branch_ids: List[int] = [635934, 402819, 154833]
    notify_statuses: List[int] = [3, 4]  # 3 = Completed, 4 = Cancelled
    notifier_max_concurrency: int = 5

    # Notification sinks; the first configured one wins
    telegram_bot_token: str = ""
    telegram_chat_id: Optional[int] = None
    lark_app_id: str = ""
    lark_app_secret: str = ""
    lark_chat_id: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
