# config/settings.py
import os
from dataclasses import dataclass, field
from typing import List, Optional


def _split_tokens(raw: str) -> List[str]:
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


@dataclass
class Settings:
    """Process-level settings read once from the environment."""
    bot_token: Optional[str] = None
    database_url: Optional[str] = None
    base_url: str = "http://localhost:8000"
    port: int = 8000
    admin_tokens: List[str] = field(default_factory=list)
    upload_dir: str = "uploads"
    payment_http_timeout: float = 15.0
    payment_currency: str = "UAH"
    broadcast_delay_sec: float = 0.05
    log_level: str = "INFO"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bot_token=os.getenv("TG_TOKEN") or os.getenv("TELEGRAM_BOT_TOKEN"),
            database_url=os.getenv("DATABASE_URL"),
            base_url=os.getenv("BASE_URL", "http://localhost:8000"),
            port=int(os.getenv("PORT", "8000")),
            admin_tokens=_split_tokens(os.getenv("ADMIN_API_TOKENS", "")),
            upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
            payment_http_timeout=float(os.getenv("PAYMENT_HTTP_TIMEOUT", "15")),
            payment_currency=os.getenv("PAYMENT_CURRENCY", "UAH"),
            broadcast_delay_sec=float(os.getenv("BROADCAST_DELAY_SEC", "0.05")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            environment=os.getenv("ENVIRONMENT", "development"),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
