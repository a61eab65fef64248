# backend/app/core/config_loader.py

from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: Optional[str] = None
    chat_model: str = "gpt-4o-mini"
    max_tokens: int = 2048
    temperature: float = 0.7

    # number of stored messages replayed to the model as history
    history_limit: int = 20

    DB_PATH: str = "data.sqlite3"
    log_dir: Optional[str] = None
    timezone: str = "UTC"
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
