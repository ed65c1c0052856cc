"""
Settings — environment-driven configuration.

Values come from the process environment, optionally seeded from a
`.env` file in the working directory.
"""

import logging.config
import os
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from dotenv import load_dotenv


# ═══════════════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Settings:
    database_url: str = "sqlite+aiosqlite:///./storefront.db"
    site_url: str = "http://localhost:3000"

    # Hosted-session provider
    hosted_api_base: str = "https://api.stripe.com"
    hosted_secret_key: str = ""
    hosted_webhook_secret: str = ""

    # Two-phase provider
    paypal_api_base: str = "https://api-m.sandbox.paypal.com"
    paypal_client_id: str = ""
    paypal_client_secret: str = ""

    # Finalizer
    amount_tolerance: Decimal = Decimal("0.01")
    finalize_lease: timedelta = timedelta(seconds=30)
    finalize_wait: timedelta = timedelta(seconds=10)
    persist_retries: int = 3

    # Order confirmation mail
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    http_timeout: float = 15.0
    log_level: str = "INFO"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_from)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        env = os.environ.get
        return cls(
            database_url=env("DATABASE_URL", "sqlite+aiosqlite:///./storefront.db"),
            site_url=env("SITE_URL", "http://localhost:3000").rstrip("/"),
            hosted_api_base=env("HOSTED_API_BASE", "https://api.stripe.com"),
            hosted_secret_key=env("HOSTED_SECRET_KEY", ""),
            hosted_webhook_secret=env("HOSTED_WEBHOOK_SECRET", ""),
            paypal_api_base=env("PAYPAL_API_BASE", "https://api-m.sandbox.paypal.com"),
            paypal_client_id=env("PAYPAL_CLIENT_ID", ""),
            paypal_client_secret=env("PAYPAL_CLIENT_SECRET", ""),
            amount_tolerance=Decimal(env("AMOUNT_TOLERANCE", "0.01")),
            finalize_lease=timedelta(seconds=float(env("FINALIZE_LEASE_SECONDS", "30"))),
            finalize_wait=timedelta(seconds=float(env("FINALIZE_WAIT_SECONDS", "10"))),
            persist_retries=int(env("PERSIST_RETRIES", "3")),
            smtp_host=env("SMTP_HOST", ""),
            smtp_port=int(env("SMTP_PORT", "587")),
            smtp_user=env("SMTP_USER", ""),
            smtp_password=env("SMTP_PASS", ""),
            smtp_from=env("SMTP_FROM", ""),
            http_timeout=float(env("HTTP_TIMEOUT", "15")),
            log_level=env("LOG_LEVEL", "INFO").upper(),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════════


def logging_config(level: str = "INFO") -> dict:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "{levelname} {asctime} {name} {message}",
                "style": "{",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "verbose",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": "WARNING",
        },
        "loggers": {
            "storefront": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            "uvicorn": {
                "handlers": ["console"],
                "level": "INFO",
                "propagate": False,
            },
        },
    }


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(logging_config(level))


__all__ = ("Settings", "logging_config", "configure_logging")
