"""
Audit logging for sale-critical operations.

Every committed sale, every failed attempt to record one, every notification
round and every denied billing call is written as one JSON line on the
``audit`` logger so it can be shipped to centralized logging.

Audit logging must never break the operation being audited.
"""
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")
logger = logging.getLogger(__name__)


def _default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _emit(level: int, log_entry: Dict[str, Any]) -> None:
    log_entry.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    try:
        audit_logger.log(level, json.dumps(log_entry, default=_default))
    except (TypeError, ValueError) as e:
        logger.error(f"Could not serialize audit entry {log_entry.get('event_type')}: {e}")


class AuditLog:
    """Central audit logging for billing events."""

    @staticmethod
    def log_sale_created(
        sale,
        actor_id: Optional[int],
        attempts: int = 1,
    ):
        """
        Log a committed sale.

        Usage:
            AuditLog.log_sale_created(sale, actor_id=current_user.id)
        """
        _emit(logging.INFO, {
            "event_type": "sale.create",
            "actor_id": actor_id,
            "sale_id": sale.id,
            "invoice_number": sale.invoice_number,
            "store_id": sale.store_id,
            "customer_id": sale.customer_id,
            "items_count": len(sale.items),
            "total_amount": sale.total_amount,
            "payment_mode": sale.payment_mode,
            "attempts": attempts,
        })

    @staticmethod
    def log_sale_failed(
        error_code: str,
        actor_id: Optional[int],
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        """Log a sale that was rejected or rolled back."""
        log_entry = {
            "event_type": "sale.create_failed",
            "actor_id": actor_id,
            "error_code": error_code,
        }
        if reason:
            log_entry["reason"] = reason
        if details:
            log_entry["details"] = details
        _emit(logging.WARNING, log_entry)

    @staticmethod
    def log_notification(
        invoice_number: str,
        actor_id: Optional[int],
        summary: Dict[str, Any],
    ):
        """Log the per-channel outcome of a notification round."""
        _emit(logging.INFO, {
            "event_type": "sale.notify",
            "actor_id": actor_id,
            "invoice_number": invoice_number,
            "summary": summary,
        })

    @staticmethod
    def log_access_denied(
        action: str,
        resource_type: str,
        user_id: Optional[int],
        reason: str,
    ):
        """
        Log denied access attempts (potential attacks).

        Usage:
            AuditLog.log_access_denied("record_sale", "sale", 2, "Role 'customer' not allowed")
        """
        _emit(logging.WARNING, {
            "event_severity": "WARNING",
            "event_type": "access_denied",
            "action": action,
            "resource_type": resource_type,
            "user_id": user_id,
            "reason": reason,
        })
