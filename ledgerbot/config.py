from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import AnyHttpUrl, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DATABASE_FILENAME = "users.sqlite3"


class ParserStrategy(str, Enum):
    DELIMITED = "delimited"
    NLU = "nlu"


class WebhookMode(str, Enum):
    SYNC = "sync"
    BACKGROUND = "background"


class Settings(BaseSettings):
    """Application settings, sourced from environment variables or .env.

    Constructed once at startup and handed to the components that need it.
    """

    app_name: str = Field(default="LedgerBot")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    port: int = Field(default=80, alias="PORT", ge=1, le=65535)

    telegram_bot_token: str = Field(alias="TELEGRAM_BOT_TOKEN", min_length=1)
    telegram_operator_chat_id: int = Field(
        alias="TELEGRAM_OPERATOR_CHAT_ID",
        description="Chat that receives reports about failed updates.",
    )
    telegram_register_webhook_on_start: bool = Field(
        default=False, alias="TELEGRAM_REGISTER_WEBHOOK_ON_START"
    )
    public_base_url: Optional[AnyHttpUrl] = Field(
        default=None,
        alias="PUBLIC_BASE_URL",
        description="The public URL where the service is reachable (used for the Telegram webhook).",
    )
    webhook_mode: WebhookMode = Field(default=WebhookMode.SYNC, alias="WEBHOOK_MODE")

    storage_path: Path = Field(
        alias="APP_STORAGE_PATH",
        description="SQLite file, or a directory that will hold one, for user records.",
    )
    database_url: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL",
        description="Optional SQLAlchemy URL overriding the storage path.",
    )
    auto_run_migrations: bool = Field(default=False, alias="AUTO_RUN_MIGRATIONS")

    parser_strategy: ParserStrategy = Field(
        default=ParserStrategy.DELIMITED, alias="PARSER_STRATEGY"
    )
    wit_access_token: Optional[str] = Field(default=None, alias="WIT_ACCESS_TOKEN")
    wit_api_url: str = Field(default="https://api.wit.ai", alias="WIT_API_URL")
    wit_api_version: str = Field(default="20210928", alias="WIT_API_VERSION")

    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT_SECONDS", gt=0)
    http_connect_timeout_seconds: float = Field(
        default=10.0, alias="HTTP_CONNECT_TIMEOUT_SECONDS", gt=0
    )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @model_validator(mode="after")
    def _require_nlu_token(self) -> "Settings":
        if self.parser_strategy is ParserStrategy.NLU and not self.wit_access_token:
            raise ValueError("WIT_ACCESS_TOKEN is required when PARSER_STRATEGY=nlu")
        return self

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite+aiosqlite:///{self.database_file}"

    @property
    def database_file(self) -> Path:
        if self.storage_path.suffix:
            return self.storage_path
        return self.storage_path / DEFAULT_DATABASE_FILENAME

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.public_base_url:
            return None
        return str(self.public_base_url).rstrip("/") + "/hook"
