"""
Permission decorators for role-based and API-key access control.
Extends the basic require_login decorator with role and key checks.
"""
import logging
import time
from functools import wraps

from flask import g, jsonify, request

from sjfulfillment.database import get_session
from sjfulfillment.exceptions import FulfillmentError
from sjfulfillment.services.access_scope import AccessScope
from sjfulfillment.services.api_key_service import (
    authenticate_api_key, has_api_permission, log_api_request
)

logger = logging.getLogger(__name__)


def require_role(*allowed_roles):
    """
    Decorator to restrict access to specific roles.

    Usage:
        @require_role('SJFS_ADMIN')
        @require_role('SJFS_ADMIN', 'WAREHOUSE_STAFF')

    Returns 401 without a session user and 403 for any other role.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not g.get('user'):
                return jsonify({'status': 'error', 'message': 'Unauthorized'}), 401

            user_role = g.get('user_role')
            if not user_role or user_role not in allowed_roles:
                return jsonify({'status': 'error', 'message': 'Forbidden'}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def _client_ip():
    return request.headers.get('X-Forwarded-For', request.remote_addr or 'unknown')


def require_api_key(permission):
    """
    Decorator for the external API.

    Authenticates the Bearer key, checks `permission` (e.g. 'inventory:read'),
    sets g.api_key and g.scope, and writes one ApiLog row per request once
    the key is known, whatever the outcome. Errors are rendered here so the
    log sees the final status.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            start_time = time.time()
            db_session = get_session()

            # Unauthenticated requests have no key to log against
            api_key = authenticate_api_key(db_session, request.headers.get('Authorization'))
            g.api_key = api_key
            g.scope = AccessScope.for_api_key(api_key)

            request_body = request.get_json(silent=True) if request.method != 'GET' else None
            response_body = None
            error = None

            if not has_api_permission(api_key.permissions, permission):
                status_code = 403
                error = 'Insufficient permissions'
                response = jsonify({'status': 'error', 'message': error})
            else:
                try:
                    response_body, status_code = f(*args, **kwargs)
                    response = jsonify(response_body)
                except FulfillmentError as e:
                    db_session.rollback()
                    status_code = e.status_code
                    if status_code >= 500:
                        # Internal details stay in the server log
                        logger.error(f"External API error on {request.path}: {e.message}")
                        error = e.message
                        response = jsonify({'status': 'error', 'message': 'Internal Server Error'})
                    else:
                        error = e.message
                        response = jsonify(e.to_dict())
                except Exception as e:
                    db_session.rollback()
                    logger.exception(f"Unhandled error on external API {request.path}: {e}")
                    status_code = 500
                    error = str(e)
                    response = jsonify({'status': 'error', 'message': 'Internal Server Error'})

            log_api_request(
                db_session,
                api_key_id=api_key.id,
                endpoint=request.path,
                method=request.method,
                status_code=status_code,
                response_time=int((time.time() - start_time) * 1000),
                ip_address=_client_ip(),
                user_agent=request.headers.get('User-Agent', 'unknown'),
                request_body=request_body,
                response_body=response_body,
                error=error,
            )
            return response, status_code

        return decorated_function
    return decorator
