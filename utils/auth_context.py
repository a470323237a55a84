from functools import wraps
from flask import g, jsonify
from models import db
from models.user import User
from security.session import get_session_from_request

def current_user():
    return getattr(g, "user", None)

def load_current_user():
    """before_request hook: resolve the session cookie to ``g.user``."""
    g.user = None
    g.session = get_session_from_request()
    if g.session is not None:
        g.user = db.session.get(User, g.session.user_id)

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = current_user()
        if user is None:
            return jsonify(error="Authentication required"), 401
        if user.is_banned:
            return jsonify(error="Account suspended"), 403
        return fn(*args, **kwargs)
    return wrapper
