"""Runtime settings for the checkout engine.

Everything comes from environment variables so the same build runs against
provider sandboxes locally and live credentials in production.
"""

import os
from dataclasses import dataclass
from functools import lru_cache


def _clean_env(value: str | None) -> str:
    """Strip whitespace and stray quotes that sneak in from .env files and CI secrets."""
    return (value or "").strip().strip("'").strip('"').strip("`")


def _env(name: str, default: str = "") -> str:
    return _clean_env(os.getenv(name)) or default


def _env_float(name: str, default: float) -> float:
    raw = _env(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    return int(raw) if raw else default


@dataclass(frozen=True)
class Settings:
    currency: str = "nok"
    shipping_flat_fee: float = 99.0
    free_shipping_threshold: float = 1500.0

    order_number_prefix: str = "HS"
    order_number_max_attempts: int = 5

    provider_timeout_seconds: float = 10.0

    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    vipps_base_url: str = "https://apitest.vipps.no"
    vipps_client_id: str = ""
    vipps_client_secret: str = ""
    vipps_subscription_key: str = ""
    vipps_merchant_serial_number: str = ""
    vipps_webhook_secret: str = ""

    klarna_base_url: str = "https://api.playground.klarna.com"
    klarna_username: str = ""
    klarna_password: str = ""
    klarna_webhook_secret: str = ""
    klarna_purchase_country: str = "NO"
    klarna_locale: str = "nb-NO"
    klarna_default_tax_rate: int = 2500

    # Shared secret for staff-only payment operations (capture, cancel, refund); empty disables them
    admin_api_key: str = ""

    frontend_url: str = "http://localhost:3000"
    api_url: str = "http://localhost:8000"

    notification_max_retries: int = 3
    notification_retry_base_seconds: int = 60

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            currency=_env("STORE_CURRENCY", defaults.currency).lower(),
            shipping_flat_fee=_env_float("SHIPPING_FLAT_FEE", defaults.shipping_flat_fee),
            free_shipping_threshold=_env_float("FREE_SHIPPING_THRESHOLD", defaults.free_shipping_threshold),
            order_number_prefix=_env("ORDER_NUMBER_PREFIX", defaults.order_number_prefix),
            order_number_max_attempts=_env_int("ORDER_NUMBER_MAX_ATTEMPTS", defaults.order_number_max_attempts),
            provider_timeout_seconds=_env_float("PROVIDER_TIMEOUT_SECONDS", defaults.provider_timeout_seconds),
            stripe_secret_key=_env("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=_env("STRIPE_WEBHOOK_SECRET"),
            vipps_base_url=_env("VIPPS_BASE_URL", defaults.vipps_base_url).rstrip("/"),
            vipps_client_id=_env("VIPPS_CLIENT_ID"),
            vipps_client_secret=_env("VIPPS_CLIENT_SECRET"),
            vipps_subscription_key=_env("VIPPS_SUBSCRIPTION_KEY"),
            vipps_merchant_serial_number=_env("VIPPS_MERCHANT_SERIAL_NUMBER"),
            vipps_webhook_secret=_env("VIPPS_WEBHOOK_SECRET"),
            klarna_base_url=_env("KLARNA_BASE_URL", defaults.klarna_base_url).rstrip("/"),
            klarna_username=_env("KLARNA_USERNAME"),
            klarna_password=_env("KLARNA_PASSWORD"),
            klarna_webhook_secret=_env("KLARNA_WEBHOOK_SECRET"),
            klarna_purchase_country=_env("KLARNA_PURCHASE_COUNTRY", defaults.klarna_purchase_country),
            klarna_locale=_env("KLARNA_LOCALE", defaults.klarna_locale),
            klarna_default_tax_rate=_env_int("KLARNA_DEFAULT_TAX_RATE", defaults.klarna_default_tax_rate),
            admin_api_key=_env("ADMIN_API_KEY"),
            frontend_url=_env("FRONTEND_URL", defaults.frontend_url).rstrip("/"),
            api_url=_env("API_URL", defaults.api_url).rstrip("/"),
            notification_max_retries=_env_int("NOTIFICATION_MAX_RETRIES", defaults.notification_max_retries),
            notification_retry_base_seconds=_env_int(
                "NOTIFICATION_RETRY_BASE_SECONDS", defaults.notification_retry_base_seconds
            ),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return process-wide settings, read from the environment on first use."""
    return Settings.from_env()


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment (tests)."""
    get_settings.cache_clear()
