"""
RetailBill Backend: sale-transaction engine for small retail shops.

ARCHITECTURE:
- FastAPI Backend: request validation, auth, error rendering
- Sale engine: stock check, pricing, invoice number and stock decrement in one transaction
- SQLite/PostgreSQL DB: Source of truth for stock and sales
- Notifications (email/Telegram): after commit, best effort

A sale is either fully recorded or not at all. Notification failures never
undo a recorded sale.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from retailbill.api.routes import billing
from retailbill.core.config import settings
from retailbill.core.exceptions import register_exception_handlers
from retailbill.core.rate_limiter import RateLimitMiddleware
from retailbill.db.init_db import init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    1. Initialize database tables
    2. Report which notification channels are configured
    """
    logger.info("Initializing database...")
    init_db()
    logger.info("Database initialized")

    if not (settings.SMTP_EMAIL and settings.SMTP_PASSWORD):
        logger.warning("Email notifications disabled (no SMTP credentials)")
    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("Telegram notifications disabled (no token)")

    yield


app = FastAPI(
    title="RetailBill API",
    description="Sale recording and invoicing. Stock, pricing and invoice numbers commit together.",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)

# SECURITY: Trust only specific hosts
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# SECURITY: Restrict CORS to specific methods and headers (not wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "Authorization",
        "Accept",
        "Origin",
    ],  # Explicit headers only
    max_age=600,  # Cache preflight for 10 minutes
    expose_headers=["Content-Type", "Content-Disposition"],
)

# SECURITY: Rate limiting to prevent brute force and DoS attacks
app.add_middleware(RateLimitMiddleware)


# SECURITY: Add security headers middleware
@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"  # Prevent MIME sniffing
    response.headers["X-Frame-Options"] = "DENY"  # Prevent clickjacking
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"  # HSTS
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


app.include_router(billing.router, prefix="/billing", tags=["billing"])


@app.get("/health")
def health():
    return {"status": "ok"}
