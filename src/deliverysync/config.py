"""Configuration for the order sync engine.

Loaded from environment variables (and a local .env file via python-dotenv).
Only DATABASE_URL is required; every marketplace setting has an iFood
default.
"""
import os
from typing import Optional

from dotenv import load_dotenv

from .api.exceptions import ConfigurationError

load_dotenv()

DEFAULT_AUTH_URL = "https://merchant-api.ifood.com.br/authentication/v1.0/oauth/token"
DEFAULT_ORDER_API_URL = "https://merchant-api.ifood.com.br/order/v1.0"
DEFAULT_MERCHANT_API_URL = "https://merchant-api.ifood.com.br/merchant/v1.0"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(
            f"Environment variable {name} must be an integer, got {raw!r}",
            details={"variable": name},
        )


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"Environment variable {name} must be a number, got {raw!r}",
            details={"variable": name},
        )


class SyncConfig:
    """Sync engine configuration loaded from environment variables."""

    def __init__(self):
        self.database_url: Optional[str] = os.getenv("DATABASE_URL")
        self.provider = os.getenv("MARKETPLACE_PROVIDER", "ifood")
        self.auth_url = os.getenv("MARKETPLACE_AUTH_URL", DEFAULT_AUTH_URL)
        self.order_api_url = os.getenv("MARKETPLACE_ORDER_API_URL", DEFAULT_ORDER_API_URL)
        self.merchant_api_url = os.getenv(
            "MARKETPLACE_MERCHANT_API_URL", DEFAULT_MERCHANT_API_URL
        )
        self.http_timeout = _env_float("MARKETPLACE_HTTP_TIMEOUT", "30")
        self.max_concurrent_tenants = max(1, _env_int("SYNC_MAX_CONCURRENT_TENANTS", "4"))
        self.fallback_enabled = _env_bool("SYNC_FALLBACK_ENABLED", "true")
        self.fallback_min_interval_seconds = _env_float("FALLBACK_MIN_INTERVAL_SECONDS", "300")
        self.fallback_order_limit = max(1, _env_int("FALLBACK_ORDER_LIMIT", "5"))

    def validate(self, require_database: bool = True) -> "SyncConfig":
        """Raise ConfigurationError if a required setting is missing."""
        missing = []
        if require_database and not self.database_url:
            missing.append("DATABASE_URL")
        if not self.auth_url:
            missing.append("MARKETPLACE_AUTH_URL")
        if not self.order_api_url:
            missing.append("MARKETPLACE_ORDER_API_URL")

        if missing:
            raise ConfigurationError(
                f"Missing required environment variable(s): {', '.join(missing)}",
                missing_keys=missing,
            )
        return self

    def __repr__(self):
        return (
            f"SyncConfig("
            f"provider={self.provider}, "
            f"order_api={self.order_api_url}, "
            f"concurrency={self.max_concurrent_tenants}, "
            f"fallback={self.fallback_enabled}, "
            f"fallback_interval={self.fallback_min_interval_seconds}s, "
            f"database={'set' if self.database_url else 'unset'})"
        )
