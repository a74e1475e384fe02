"""Middleware for authentication and merchant scope."""
from functools import wraps
from flask import session, g, jsonify, current_app
from sjfulfillment.database import get_session
from sjfulfillment.models import AppUser
from sjfulfillment.services.access_scope import AccessScope


def load_user():
    """
    Load current user into g (Flask's per-request global).

    Called before each request. Sets g.user, g.user_role and g.scope when a
    session user is present; API-key routes set their own scope.
    """
    g.user = None
    g.user_role = None
    g.scope = None

    try:
        user_id = session.get('user_id')
        if user_id:
            db_session = get_session()
            user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
            if user:
                g.user = user
                g.user_role = user.role
                g.scope = AccessScope.for_user(user)
            else:
                session.pop('user_id', None)
    except Exception as e:
        # Context loading must not take the whole app down
        current_app.logger.error(f"Error in load_user: {e}")


def require_login(f):
    """
    Decorator: Require user to be logged in.

    Returns 401 JSON when no session user is loaded.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'status': 'error', 'message': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function
