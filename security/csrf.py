import hashlib
import hmac
from flask import request, jsonify, current_app

from security.session import session_cookie_name

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def csrf_token_for(session_token: str) -> str:
    # bound to one login session, so it rotates on every login
    key = current_app.config["SECRET_KEY"].encode("utf-8")
    return hmac.new(key, session_token.encode("utf-8"), hashlib.sha256).hexdigest()


def set_csrf_cookie(resp, session_token: str):
    resp.set_cookie(
        CSRF_COOKIE,
        csrf_token_for(session_token),
        httponly=False,  # the client echoes it back in the header
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        path="/",
    )
    return resp


def require_csrf():
    """Returns a 403 response unless the header carries this session's token."""
    session_token = request.cookies.get(session_cookie_name())
    header_token = request.headers.get(CSRF_HEADER)
    if not session_token or not header_token:
        return jsonify(error="CSRF validation failed", code="CSRF_FAILED"), 403
    if not hmac.compare_digest(header_token, csrf_token_for(session_token)):
        return jsonify(error="CSRF validation failed", code="CSRF_FAILED"), 403
    return None
