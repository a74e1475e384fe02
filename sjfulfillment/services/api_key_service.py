"""
API key authentication, permission checks and request logging for the
external (merchant integration) API.
"""
import json
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from werkzeug.security import generate_password_hash

from sjfulfillment.exceptions import UnauthorizedError, ForbiddenError, RateLimitError
from sjfulfillment.models import ApiKey, ApiLog

logger = logging.getLogger(__name__)

_KEY_ALPHABET = string.ascii_letters + string.digits


def _random_string(length: int) -> str:
    return ''.join(secrets.choice(_KEY_ALPHABET) for _ in range(length))


def generate_api_key_pair():
    """Return (public_key, secret_key)."""
    return f"pk_{_random_string(32)}", f"sk_{_random_string(64)}"


def create_api_key(session, merchant_id: int, name: str, permissions: dict, rate_limit: int = 1000):
    """
    Create and commit an API key. Returns (api_key, secret_key); the secret
    is only stored hashed and cannot be recovered later.
    """
    public_key, secret_key = generate_api_key_pair()
    api_key = ApiKey(
        merchant_id=merchant_id,
        name=name,
        public_key=public_key,
        secret_key_hash=generate_password_hash(secret_key, method='scrypt'),
        permissions=permissions or {},
        rate_limit=rate_limit,
    )
    session.add(api_key)
    session.commit()
    logger.info(f"Created API key {api_key.id} for merchant {merchant_id}")
    return api_key, secret_key


def parse_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header or not auth_header.startswith('Bearer '):
        return None
    token = auth_header[len('Bearer '):].strip()
    return token or None


def authenticate_api_key(session, auth_header: Optional[str]) -> ApiKey:
    """
    Resolve the Authorization header to an active API key.

    Raises:
        UnauthorizedError: missing header, unknown or deactivated key
        ForbiddenError: merchant inactive or not approved
        RateLimitError: hourly request budget exhausted
    """
    token = parse_bearer_token(auth_header)
    if token is None:
        raise UnauthorizedError('Missing or invalid authorization header. Use: Authorization: Bearer <api-key>')

    api_key = session.query(ApiKey).filter(ApiKey.public_key == token).first()
    if api_key is None:
        raise UnauthorizedError('Invalid API key')

    if not api_key.is_active:
        raise UnauthorizedError('API key is deactivated')

    merchant = api_key.merchant
    if merchant is None or not merchant.is_active or not merchant.is_approved():
        raise ForbiddenError('Merchant account is not active or approved')

    one_hour_ago = datetime.now(timezone.utc) - timedelta(hours=1)
    recent_usage = session.query(ApiLog).filter(
        ApiLog.api_key_id == api_key.id,
        ApiLog.created_at >= one_hour_ago
    ).count()
    if recent_usage >= api_key.rate_limit:
        raise RateLimitError()

    api_key.usage_count = (api_key.usage_count or 0) + 1
    api_key.last_used = datetime.now(timezone.utc)
    session.commit()

    return api_key


def has_api_permission(permissions: Any, required_permission: str) -> bool:
    """
    Check a permission such as 'inventory:read'.

    Accepts an exact key ({'inventory:read': True}), the wildcard
    ({'*': True}) or a nested resource map ({'inventory': {'read': True}}).
    """
    if not permissions or not isinstance(permissions, dict):
        return False

    if permissions.get(required_permission) is True:
        return True

    if permissions.get('*') is True:
        return True

    resource, _, action = required_permission.partition(':')
    resource_permissions = permissions.get(resource)
    if isinstance(resource_permissions, dict) and resource_permissions.get(action) is True:
        return True

    return False


def _dump(body) -> Optional[str]:
    if body is None:
        return None
    try:
        return json.dumps(body, default=str)
    except (TypeError, ValueError):
        return str(body)


def log_api_request(session, api_key_id: int, endpoint: str, method: str, status_code: int,
                    response_time: Optional[int] = None, ip_address: Optional[str] = None,
                    user_agent: Optional[str] = None, request_body=None, response_body=None,
                    error: Optional[str] = None) -> None:
    """Persist one ApiLog row in its own commit. Failures are logged, never raised."""
    try:
        session.add(ApiLog(
            api_key_id=api_key_id,
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            response_time=response_time,
            ip_address=ip_address,
            user_agent=(user_agent or '')[:255],
            request_body=_dump(request_body),
            response_body=_dump(response_body),
            error=error,
        ))
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Failed to log API request: {e}")
