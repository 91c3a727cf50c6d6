"""
Audit logging for admin actions

Tracks administrative state changes (return transitions, order status
updates, manual invoice generation, new discount codes) on the structured
"audit" logger.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Any

from app.core.config import settings

# Structured audit logger
audit_logger = logging.getLogger("audit")
audit_logger.setLevel(logging.INFO)

# Action categories
ACTION_ORDER_STATUS = "order.status"
ACTION_RETURN_STATUS = "return.status"
ACTION_INVOICE_GENERATE = "invoice.generate"
ACTION_DISCOUNT_CREATE = "discount.create"

SENSITIVE_KEYS = ("password", "secret", "token", "key", "credential")


def log_admin_action(
    action: str,
    resource_type: str,
    resource_id: Optional[Any] = None,
    details: Optional[dict] = None,
    ip_address: Optional[str] = None,
    success: bool = True,
):
    """
    Log an administrative action.

    Args:
        action: Action identifier (e.g., "return.status")
        resource_type: Type of resource affected (e.g., "order", "return")
        resource_id: ID of the affected resource (if applicable)
        details: Additional context about the action
        ip_address: IP address of the request
        success: Whether the action succeeded
    """
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "action": action,
        "resource_type": resource_type,
        "resource_id": str(resource_id) if resource_id is not None else None,
        "success": success,
        "ip_address": ip_address,
        "environment": settings.ENVIRONMENT,
    }

    if details:
        log_entry["details"] = {
            k: v for k, v in details.items()
            if k.lower() not in SENSITIVE_KEYS
        }

    if success:
        audit_logger.info(
            f"AUDIT: {action} on {resource_type}/{resource_id}",
            extra={"audit": log_entry}
        )
    else:
        audit_logger.warning(
            f"AUDIT FAILED: {action} on {resource_type}/{resource_id}",
            extra={"audit": log_entry}
        )
