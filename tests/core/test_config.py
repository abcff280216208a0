from __future__ import annotations

import pytest

from lms.core.config import load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "APP_ENV",
        "LOG_LEVEL",
        "LOG_JSON",
        "CLIENT_URL",
        "PAYMENT_CURRENCY",
        "RATE_LIMIT_CAPACITY",
        "RATE_LIMIT_WINDOW_SECONDS",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "JWT_PUBLIC_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.client_url == "http://localhost:5173"
    assert settings.payment_currency == "inr"
    assert settings.rate_limit_capacity == 100
    assert settings.rate_limit_window_seconds == 900
    assert settings.stripe_secret_key is None


def test_load_settings_normalizes_case_and_whitespace(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "  TEST ")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("PAYMENT_CURRENCY", "USD")
    settings = load_settings()
    assert settings.is_test
    assert settings.log_level == "warning"
    assert settings.payment_currency == "usd"


def test_client_url_trailing_slash_stripped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CLIENT_URL", "https://learn.example.com/")
    assert load_settings().client_url == "https://learn.example.com"


@pytest.mark.parametrize("raw", ["1", "true", "YES", "on"])
def test_log_json_truthy_values(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("LOG_JSON", raw)
    assert load_settings().log_json is True


def test_prod_with_payment_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("JWT_PUBLIC_KEY", "-----BEGIN PUBLIC KEY-----...")
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_live_x")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_x")
    settings = load_settings()
    assert settings.is_prod
    assert settings.stripe_webhook_secret == "whsec_x"


# ---- invalid values ----


def test_rejects_invalid_app_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_rejects_invalid_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL"):
        load_settings()


def test_rejects_bad_log_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "maybe")
    with pytest.raises(ValueError, match="LOG_JSON must be a boolean"):
        load_settings()


def test_rejects_non_integer_capacity(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_CAPACITY", "lots")
    with pytest.raises(ValueError, match="RATE_LIMIT_CAPACITY must be an integer"):
        load_settings()


def test_rejects_zero_window(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "0")
    with pytest.raises(ValueError, match=">= 1"):
        load_settings()


def test_prod_requires_payment_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("JWT_PUBLIC_KEY", "-----BEGIN PUBLIC KEY-----...")
    with pytest.raises(ValueError, match="required when APP_ENV=prod"):
        load_settings()


def test_secret_key_requires_webhook_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_x")
    with pytest.raises(ValueError, match="STRIPE_WEBHOOK_SECRET is required"):
        load_settings()


def test_prod_requires_jwt_public_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_live_x")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_x")
    with pytest.raises(ValueError, match="JWT_PUBLIC_KEY is required when APP_ENV=prod"):
        load_settings()


def test_dev_without_jwt_public_key_is_allowed() -> None:
    assert load_settings().jwt_public_key is None
