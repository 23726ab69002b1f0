import hashlib
import secrets
from datetime import timedelta
from flask import request, current_app

from models import db
from models.session import Session
from utils.clock import utcnow


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def session_cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "courtbook_session")


def create_session(user_id: int) -> str:
    """
    Start a login session and return the raw token for the cookie.
    Only its hash is persisted.
    """
    raw_token = secrets.token_urlsafe(32)
    now = utcnow()
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)

    db.session.add(Session(
        user_id=user_id,
        token_hash=hash_token(raw_token),
        created_at=now,
        last_seen_at=now,
        expires_at=now + timedelta(seconds=lifetime),
        ip=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=(request.headers.get("User-Agent") or "")[:255] or None,
    ))
    db.session.commit()
    return raw_token


def get_session_from_request():
    """The live session behind the request cookie, or None. Slides the idle window."""
    raw_token = request.cookies.get(session_cookie_name())
    if not raw_token:
        return None

    sess = Session.query.filter_by(token_hash=hash_token(raw_token)).first()
    now = utcnow()
    if not sess or not sess.is_usable(now, current_app.config.get("IDLE_TIMEOUT_SECONDS", 1800)):
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def revoke_session(raw_token: str) -> bool:
    if not raw_token:
        return False
    sess = Session.query.filter_by(token_hash=hash_token(raw_token), revoked_at=None).first()
    if not sess:
        return False
    sess.revoked_at = utcnow()
    db.session.commit()
    return True
