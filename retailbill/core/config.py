"""Application configuration with security-first defaults.

Environment variables override all defaults.
CRITICAL: SECRET_KEY must be set in .env - will fail fast if missing in production.
"""

import os
from pathlib import Path
from typing import List


# Load .env for local development (safe no-op if not installed)
try:
    from dotenv import load_dotenv  # type: ignore

    _PROJECT_DIR = Path(__file__).resolve().parents[2]
    load_dotenv(dotenv_path=_PROJECT_DIR / ".env", override=False)
except ImportError:
    pass


def _env_list(name: str, default: str) -> List[str]:
    return [part.strip() for part in os.getenv(name, default).split(",") if part.strip()]


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./retailbill.db")
    SQLITE_BUSY_TIMEOUT_SECONDS: int = int(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))

    # Environment
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # JWT Security - CRITICAL
    SECRET_KEY: str = os.getenv("SECRET_KEY", "")
    if not SECRET_KEY:
        # In production, this will fail immediately (no weak defaults)
        if ENVIRONMENT == "production":
            raise ValueError(
                "SECRET_KEY must be set in production environment. "
                "Generate with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        import warnings
        warnings.warn(
            "SECRET_KEY not set in environment. Using development default. "
            "Set SECRET_KEY in .env to a strong random value before deploying.",
            RuntimeWarning
        )
        SECRET_KEY = "development-only-weak-default-change-in-production"

    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))

    # CORS (Restrictive - specific origins only, no wildcards)
    CORS_ORIGINS: List[str] = _env_list(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173",
    )

    # SECURITY: Hosts the app answers for (TrustedHostMiddleware)
    ALLOWED_HOSTS: List[str] = _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1")

    # Rate Limiting
    RATE_LIMIT_REQUESTS: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    # Stricter budget for the sale-recording endpoint
    SALE_RATE_LIMIT_REQUESTS: int = int(os.getenv("SALE_RATE_LIMIT_REQUESTS", "30"))

    # Sale transaction engine
    SALE_COMMIT_ATTEMPTS: int = int(os.getenv("SALE_COMMIT_ATTEMPTS", "3"))
    SALE_RETRY_BACKOFF_SECONDS: float = float(os.getenv("SALE_RETRY_BACKOFF_SECONDS", "0.05"))
    INVOICE_PREFIX: str = os.getenv("INVOICE_PREFIX", "INV")
    INVOICE_SEQUENCE_WIDTH: int = int(os.getenv("INVOICE_SEQUENCE_WIDTH", "6"))
    # Calendar year of an invoice number is taken in the shop's local time
    INVOICE_TIMEZONE: str = os.getenv("INVOICE_TIMEZONE", "Asia/Kolkata")
    MAX_ITEM_QUANTITY: int = int(os.getenv("MAX_ITEM_QUANTITY", "1000"))
    MAX_TAX_RATE: int = int(os.getenv("MAX_TAX_RATE", "50"))
    MAX_NOTES_LENGTH: int = 500
    WALK_IN_CUSTOMER_NAME: str = os.getenv("WALK_IN_CUSTOMER_NAME", "Walk-in Customer")

    # Roles
    BILLING_ROLES: List[str] = _env_list("BILLING_ROLES", "staff,manager,admin,superadmin")
    STORE_FALLBACK_ROLES: List[str] = _env_list("STORE_FALLBACK_ROLES", "admin,manager,staff")

    # Document branding
    COMPANY_NAME: str = os.getenv("COMPANY_NAME", "Smart Shop")
    COMPANY_PHONE: str = os.getenv("COMPANY_PHONE", "+91 9876543210")
    COMPANY_EMAIL: str = os.getenv("COMPANY_EMAIL", "support@smartshop.com")

    # Email channel (disabled unless credentials are present)
    SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
    SMTP_EMAIL: str = os.getenv("SMTP_EMAIL", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_USE_TLS: bool = _env_bool("SMTP_USE_TLS", "true")

    # Telegram channel (Must be set via .env, never in code)
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")

    # WhatsApp stays registered but switched off until a provider is wired in
    WHATSAPP_ENABLED: bool = _env_bool("WHATSAPP_ENABLED", "false")

    NOTIFICATION_TIMEOUT_SECONDS: float = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "15"))


settings = Settings()
