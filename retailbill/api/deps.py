"""FastAPI dependencies: DB session, current user from JWT, billing services.

SECURITY: Supports JWT from:
1. Authorization header (for API clients)
2. httpOnly cookie (for web frontend)
"""
from functools import lru_cache
from typing import Generator, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from retailbill.core.audit import AuditLog
from retailbill.core.config import settings
from retailbill.core.exceptions import BusinessError
from retailbill.core.security import decode_access_token
from retailbill.db.session import SessionLocal
from retailbill.models.user import User
from retailbill.notifications.dispatcher import InvoiceNotificationDispatcher
from retailbill.services.sale_service import Caller, SaleService

security = HTTPBearer(auto_error=False)

TOKEN_COOKIE = "retailbill_token"


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> int:
    """
    Extract user ID from JWT token.
    SECURITY: Checks both Authorization header and httpOnly cookie.
    Header takes precedence over cookie.
    """
    token = None

    if credentials:
        token = credentials.credentials
    elif TOKEN_COOKIE in request.cookies:
        token = request.cookies[TOKEN_COOKIE]

    if not token:
        raise BusinessError.unauthorized("missing token")

    sub = decode_access_token(token)
    if not sub:
        raise BusinessError.unauthorized("invalid or expired token")

    try:
        return int(sub)
    except ValueError:
        raise BusinessError.unauthorized(f"non-numeric subject {sub!r}")


def get_current_user(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
) -> User:
    """Load current (active) user from DB."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise BusinessError.unauthorized(f"user {user_id} missing or inactive")
    # End the read transaction: on SQLite it holds the write lock that the
    # sale's own session needs
    db.commit()
    return user


def require_billing_role(request: Request, user: User = Depends(get_current_user)) -> Caller:
    """Only staff roles listed in BILLING_ROLES may use billing endpoints."""
    if user.role not in settings.BILLING_ROLES:
        AuditLog.log_access_denied(
            f"{request.method} {request.url.path}", "billing", user.id, f"Role '{user.role}' not allowed"
        )
        raise BusinessError.forbidden(f"user {user.id} with role {user.role} on billing")
    return Caller.from_user(user)


@lru_cache
def get_dispatcher() -> InvoiceNotificationDispatcher:
    return InvoiceNotificationDispatcher()


def get_sale_service(
    dispatcher: InvoiceNotificationDispatcher = Depends(get_dispatcher),
) -> SaleService:
    return SaleService(SessionLocal, dispatcher=dispatcher)
