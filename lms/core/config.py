from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]


def _getenv(name: str, default: str) -> str:
    # Centralize env access so casting and validation live in one place
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    client_url: str = "http://localhost:5173"
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    payment_currency: str = "inr"
    rate_limit_capacity: int = 100
    rate_limit_window_seconds: int = 900
    jwt_public_key: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getenv_int("PORT", 8000)
    rate_limit_capacity = _getenv_int("RATE_LIMIT_CAPACITY", 100)
    rate_limit_window = _getenv_int("RATE_LIMIT_WINDOW_SECONDS", 900)
    if rate_limit_capacity < 1 or rate_limit_window < 1:
        raise ValueError("RATE_LIMIT_CAPACITY and RATE_LIMIT_WINDOW_SECONDS must be >= 1")

    stripe_secret_key = _getenv("STRIPE_SECRET_KEY", "") or None
    stripe_webhook_secret = _getenv("STRIPE_WEBHOOK_SECRET", "") or None
    if app_env_raw == "prod" and (
        stripe_secret_key is None or stripe_webhook_secret is None
    ):
        # The in-memory gateway is for dev/test only
        raise ValueError(
            "STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET are required when APP_ENV=prod"
        )
    if stripe_secret_key is not None and stripe_webhook_secret is None:
        raise ValueError("STRIPE_WEBHOOK_SECRET is required when STRIPE_SECRET_KEY is set")

    jwt_public_key = _getenv("JWT_PUBLIC_KEY", "") or None
    if app_env_raw == "prod" and jwt_public_key is None:
        # Without it every token would be checked against a throwaway dev key
        raise ValueError("JWT_PUBLIC_KEY is required when APP_ENV=prod")

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", False),
        port=port,
        database_url=_getenv("DATABASE_URL", "") or None,
        redis_url=_getenv("REDIS_URL", "") or None,
        client_url=_getenv("CLIENT_URL", "http://localhost:5173").rstrip("/"),
        stripe_secret_key=stripe_secret_key,
        stripe_webhook_secret=stripe_webhook_secret,
        payment_currency=_getenv("PAYMENT_CURRENCY", "inr").lower(),
        rate_limit_capacity=rate_limit_capacity,
        rate_limit_window_seconds=rate_limit_window,
        jwt_public_key=jwt_public_key,
    )


# Module-level singleton so imports are cheap
SETTINGS = load_settings()
