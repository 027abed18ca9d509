from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    STORE_BACKEND: Literal["sql", "memory"] = "sql"
    DATABASE_URL_ASYNC: str = "sqlite+aiosqlite:///./watchparty.db"
    DATABASE_URL_SYNC: str = "sqlite:///./watchparty.db"
    CREATE_TABLES: bool = True            # metadata.create_all on startup (use alembic in prod)

    CHAT_HISTORY_SIZE: int = 50           # messages kept per room
    CHAT_HISTORY_TTL_SECONDS: int = 3600  # idle buffers of empty rooms are dropped after this

    REAPER_INTERVAL_SECONDS: int = 300
    STALE_PARTICIPANT_SECONDS: int = 300
    TOUCH_INTERVAL_SECONDS: int = 30      # min gap between last_active writes per connection


settings = Settings()
