"""
Audit logging service for tracking mutating actions.
Independent of the stock movement ledger.
"""
from sjfulfillment.models.audit_log import AuditLog, AuditAction
from flask import request, g, has_request_context
from datetime import datetime, timezone
import json
import logging

logger = logging.getLogger(__name__)


def _serialize(values):
    if values is None:
        return None
    try:
        return json.dumps(values, default=str)
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to serialize audit values: {e}")
        return str(values)


def log_action(
    session,
    action: AuditAction,
    entity_type: str = None,
    entity_id=None,
    old_values: dict = None,
    new_values: dict = None,
    user_id: int = None,
    actor: str = None
):
    """
    Log an auditable action to the database.

    Args:
        session: Database session
        action: AuditAction enum value
        entity_type: Type of entity affected (e.g., 'stock_items')
        entity_id: ID of the affected entity
        old_values: Dict with the previous state (JSON encoded)
        new_values: Dict with the new state (JSON encoded)
        user_id: Acting user; defaults to g.user inside a request
        actor: Free-form performer tag (user id or API_KEY_{id})
    """
    try:
        ip_address = None
        user_agent = None
        if has_request_context():
            if user_id is None and g.get('user') is not None:
                user_id = g.user.id
            ip_address = request.remote_addr
            user_agent = request.headers.get('User-Agent', '')[:255]

        if actor is None and user_id is not None:
            actor = str(user_id)

        audit_entry = AuditLog(
            user_id=user_id,
            actor=actor,
            action=action.value,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_values=_serialize(old_values),
            new_values=_serialize(new_values),
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.now(timezone.utc)
        )

        session.add(audit_entry)
        # Note: Caller is responsible for committing the session

        logger.info(f"Audit log created: {action.value} by {actor} on {entity_type} {entity_id}")

    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        # Don't raise exception - audit failures should not break business logic
