import os
from typing import Literal
from pydantic import field_validator
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    APP_NAME: str = "Link Tracker"
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./links.db")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", 6379))
    REDIS_DB: int = int(os.getenv("REDIS_DB", 0))
    REDIS_URL: str = os.getenv("REDIS_URL", f"redis://{REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")

    SECRET_KEY: str = os.getenv("SECRET_KEY", "supersecretkey")
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "admin123")
    ADMIN_COOKIE_NAME: str = "admin_session"

    # Публичный путь редиректа: /news/<token>
    REDIRECT_PREFIX: str = "news"
    TOKEN_BYTES: int = 9
    TOKEN_GENERATION_ATTEMPTS: int = 5

    NOT_ADMITTED_STATUS: int = 404
    SINGLE_USE_HARD_DELETE: bool = False
    LOG_FAILED_ATTEMPTS: bool = True
    VISIT_LOGGING: Literal["sync", "deferred"] = "sync"
    VISIT_FLUSH_INTERVAL: int = 30
    TRUST_FORWARDED_FOR: bool = True

    CACHE_ENABLED: bool = True
    CACHE_EXPIRY: int = 3600

    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = None

    @field_validator("TOKEN_BYTES")
    def validate_token_bytes(cls, v):
        if v < 6:
            raise ValueError("TOKEN_BYTES должен быть не меньше 6 (48 бит энтропии)")
        return v

    @field_validator("NOT_ADMITTED_STATUS")
    def validate_not_admitted_status(cls, v):
        if v not in (404, 410):
            raise ValueError("NOT_ADMITTED_STATUS должен быть 404 или 410")
        return v

    @field_validator("REDIRECT_PREFIX")
    def validate_prefix(cls, v):
        v = v.strip("/")
        if not v:
            raise ValueError("REDIRECT_PREFIX не может быть пустым")
        return v

settings = Settings()
