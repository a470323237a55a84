import hashlib
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.session import Session

def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "quickcourt_session")

def create_session(user_id: int) -> str:
    """
    Creates a server-side session and returns the RAW token (to set as cookie).
    Only the hash is stored in DB.
    """
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)

    row = Session(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
        ip=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    )
    db.session.add(row)
    db.session.commit()
    return raw_token

def set_session_cookie(resp, raw_token: str):
    cfg = current_app.config
    resp.set_cookie(
        cookie_name(),
        raw_token,
        httponly=True,
        secure=cfg.get("SESSION_COOKIE_SECURE", False),
        samesite=cfg.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=cfg.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    return resp

def clear_session_cookie(resp):
    resp.delete_cookie(cookie_name(), path="/")
    return resp

def get_session_from_request():
    raw_token = request.cookies.get(cookie_name())
    if not raw_token:
        return None

    now = datetime.utcnow()
    sess = Session.query.filter_by(token_hash=_hash_token(raw_token)).first()
    if sess is None or not sess.is_live(now, current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)):
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess

def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    count = (
        Session.query
        .filter_by(token_hash=_hash_token(raw_token), revoked=False)
        .update({"revoked": True}, synchronize_session=False)
    )
    db.session.commit()
    return count > 0

def revoke_all_sessions(user_id: int) -> int:
    # login rotation and bans both go through here
    count = (
        Session.query
        .filter_by(user_id=user_id, revoked=False)
        .update({"revoked": True}, synchronize_session=False)
    )
    db.session.commit()
    return count
