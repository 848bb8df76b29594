from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_MAX_HISTORY = 200


class Settings(BaseSettings):
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 8080
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "*"
    MAX_HISTORY: int = DEFAULT_MAX_HISTORY
    HUB_CAPACITY: int = 256
    # blank disables persistence; redis:// selects the redis backend
    HISTORY_DB_PATH: str = "chat.db"
    MAX_TEXT_LENGTH: int = 0
    RATE_LIMIT_TOKENS_PER_SEC: float = 0.0
    RATE_LIMIT_BURST: int = 20

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("MAX_HISTORY", mode="before")
    @classmethod
    def _positive_history(cls, v):
        try:
            value = int(v)
        except (TypeError, ValueError):
            return DEFAULT_MAX_HISTORY
        return value if value > 0 else DEFAULT_MAX_HISTORY

    @field_validator("HUB_CAPACITY")
    @classmethod
    def _positive_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("HUB_CAPACITY must be at least 1")
        return v


settings = Settings()
