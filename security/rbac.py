from functools import wraps
from flask import jsonify

from utils.auth_context import current_user

PLAYER = "PLAYER"
ADMIN = "ADMIN"  # facility owner
SUPER_ADMIN = "SUPER_ADMIN"

def has_role(role_name: str, user=None) -> bool:
    user = user or current_user()
    if not user:
        return False
    return role_name in user.role_names

def can_manage_venue(venue, user=None) -> bool:
    """Super admins manage everything; admins only the venues they own."""
    user = user or current_user()
    if not user or venue is None:
        return False
    if has_role(SUPER_ADMIN, user):
        return True
    return has_role(ADMIN, user) and venue.owner_user_id == user.id

def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    SUPER_ADMIN passes every check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = current_user()
            if user is None:
                return jsonify(error="Authentication required"), 401
            if user.is_banned:
                return jsonify(error="Account suspended"), 403

            user_roles = user.role_names
            if SUPER_ADMIN not in user_roles and not user_roles.intersection(set(role_names)):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator
