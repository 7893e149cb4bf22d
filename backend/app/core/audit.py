"""
Audit logging for order/payment status transitions and dashboard mutations.

Entries go to a separate "audit" logger as one JSON object per line so they can
be shipped to centralized logging. Bearer tokens and bank details are never logged.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


class AuditLog:
    """Central audit logging for state transitions."""

    @staticmethod
    def log_transition(
        resource_type: str,  # "order", "payment"
        resource_id: str,
        from_status: Optional[str],
        to_status: str,
        actor_id: str,
        via: str = "chat",  # "chat", "dashboard"
    ):
        """
        Usage:
            AuditLog.log_transition("payment", pay.id, "awaiting", "confirmed", seller_id)
            AuditLog.log_transition("order", order.id, "packed", "returned", seller_id, via="dashboard")
        """
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": f"{resource_type}.transition",
            "resource_id": resource_id,
            "from": from_status,
            "to": to_status,
            "actor_id": str(actor_id),
            "via": via,
        }
        audit_logger.info(json.dumps(log_entry))

    @staticmethod
    def log_action(
        action: str,  # "create", "update", "link_channel"
        resource_type: str,  # "store", "product", "order", "payment"
        resource_id: str,
        actor_id: str,
        changes: Optional[Dict[str, Any]] = None,
    ):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": f"{resource_type}.{action}",
            "resource_id": resource_id,
            "actor_id": str(actor_id),
        }
        if changes:
            log_entry["changes"] = changes
        audit_logger.info(json.dumps(log_entry, default=str))
