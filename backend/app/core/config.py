"""Application configuration.

Environment variables override all defaults. A backend/.env file is loaded for
local development.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

# Load .env for local development
_BACKEND_DIR = Path(__file__).resolve().parents[2]
load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


class Settings:
    # Durable store: stores, products, orders, payments
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./orderlyy.db")
    # Ephemeral conversation cursor, on its own engine
    SESSION_DATABASE_URL: str = os.getenv("SESSION_DATABASE_URL", "sqlite:///./orderlyy_sessions.db")
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", "1800"))

    # Telegram Bot (Must be set via .env, never in code)
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    BOT_USERNAME: str = os.getenv("BOT_USERNAME", "").strip().lstrip("@")
    # Checked against X-Telegram-Bot-Api-Secret-Token when set
    TELEGRAM_WEBHOOK_SECRET: str = os.getenv("TELEGRAM_WEBHOOK_SECRET", "")
    # Public base URL Telegram posts to; webhook is registered on startup when set
    WEBHOOK_BASE_URL: str = os.getenv("WEBHOOK_BASE_URL", "").rstrip("/")

    # Dashboard
    APP_BASE_URL: str = os.getenv("APP_BASE_URL", "http://localhost:3000").rstrip("/")

    # Subscription
    FREE_TRIAL_DAYS: int = int(os.getenv("FREE_TRIAL_DAYS", "14"))
    SUPPORT_USERNAME: str = os.getenv("SUPPORT_USERNAME", "orderlyysupport").strip().lstrip("@") or "orderlyysupport"

    # CORS (Restrictive - specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = _split_csv(
        os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    DEBUG: bool = ENVIRONMENT == "development"

    @property
    def support_link(self) -> str:
        return f"https://t.me/{self.SUPPORT_USERNAME}"


settings = Settings()
