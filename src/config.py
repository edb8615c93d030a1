from __future__ import annotations
from typing import Any

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    gateway_base_url: str = "https://localhost:5050/v1/api"
    gateway_verify_ssl: bool = False          # the Client Portal gateway ships a self-signed cert
    gateway_user_agent: str = "IBKR-Pulse/1.0"
    gateway_cache_ttl: int = 300

    telegram_token: str = ""
    telegram_chat: str = ""

    # how far back to request transactions; 0 asks for all available history
    ibkr_txn_days: int = 3650

    @property
    def transaction_days(self) -> int | None:
        return self.ibkr_txn_days or None


def load_app_config(path: str = "config/config.yaml") -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f)


settings = Settings()
app_config = load_app_config()
