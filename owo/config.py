from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    telegram_bot_token: str = ""
    db_path: str = "owo_ledger.json"
    default_opening_balance: int = 10000
    history_limit: int = 20
    # Seconds to wait for an account or group lock before giving up
    lock_timeout: float = 5.0
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
